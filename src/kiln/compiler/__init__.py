"""Kiln compiler: fragment stream → instruction sequence → Python code object."""

from kiln.compiler.core import CompiledUnit, Compiler
from kiln.compiler.instructions import Instruction, Op, Program

__all__ = ["CompiledUnit", "Compiler", "Instruction", "Op", "Program"]
