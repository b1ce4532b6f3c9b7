"""Kiln environment: configuration, loading, errors, and the default instance."""

from kiln.environment.core import (
    Environment,
    Options,
    compile,
    get_default_environment,
    init,
    render,
    view,
)
from kiln.environment.exceptions import (
    ErrorCode,
    TemplateError,
    TemplateIncludeCycleError,
    TemplateNotFoundError,
    TemplateSyntaxError,
)
from kiln.environment.loaders import FileSystemLoader

__all__ = [
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "Options",
    "TemplateError",
    "TemplateIncludeCycleError",
    "TemplateNotFoundError",
    "TemplateSyntaxError",
    "compile",
    "get_default_environment",
    "init",
    "render",
    "view",
]
