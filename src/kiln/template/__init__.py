"""Compiled template objects."""

from kiln.template.core import Template

__all__ = ["Template"]
