"""Removal of register-to-register moves made redundant by allocation."""

from __future__ import annotations

from splcompiler.machine_instruction import MachineFunction, MachineInst, Opcode, VirtualRegister


def _is_redundant(inst: MachineInst) -> bool:
    if inst.opcode is not Opcode.MOVrd:
        return False
    src, dest = inst.inputs[0], inst.outputs[0]
    return (
        isinstance(src, VirtualRegister)
        and isinstance(dest, VirtualRegister)
        and src.assignment is dest.assignment
        and src.size == dest.size
    )


def remove_redundant_moves(function: MachineFunction) -> None:
    """Drop moves whose source and destination share a register and size."""
    for block in function.blocks:
        block.instructions = [inst for inst in block.instructions if not _is_redundant(inst)]