"""Rendering of machine operands as NASM assembly text."""

from __future__ import annotations

import sys

from splcompiler.machine_instruction import (
    Address,
    Immediate,
    MachineOperand,
    VirtualRegister,
)

_SIZE_NAMES = {64: "qword", 32: "dword", 16: "word", 8: "byte"}


def size_name(size: int) -> str:
    """The NASM size keyword for an operand of ``size`` bits."""
    try:
        return _SIZE_NAMES[size]
    except KeyError:
        raise ValueError(f"invalid operand size: {size}") from None


def extern_name(name: str) -> str:
    """The symbol name of a C function; prefixed with an underscore on macOS."""
    if sys.platform == "darwin":
        return "_" + name
    return name


def format_operand(operand: MachineOperand, in_brackets: bool = False, size: int = 0) -> str:
    """Render a register, immediate or address operand.

    ``size`` overrides the operand's own size for registers; addresses
    inside brackets are made RIP-relative.
    """
    if size == 0:
        size = operand.size

    if isinstance(operand, VirtualRegister):
        if operand.assignment is None:
            raise ValueError(f"register {operand} has no hardware assignment")
        return operand.assignment.register_name(size)

    if isinstance(operand, Immediate):
        return str(operand)

    if isinstance(operand, Address):
        prefix = "rel " if in_brackets else ""
        name = extern_name(operand.name) if operand.clinkage else operand.name
        return f"{prefix}${name}"

    raise ValueError(f"operand {operand} cannot be printed directly")