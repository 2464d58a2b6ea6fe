"""Assignment of frame offsets to stack variables."""

from __future__ import annotations

from splcompiler.machine_instruction import MachineFunction, MachineInst, Opcode, ValueType


def allocate_stack(function: MachineFunction) -> int:
    """Give each stack variable an rbp-relative offset and reserve the frame.

    Returns the number of bytes reserved, kept a multiple of 16.
    """
    for number, variable in enumerate(function.stack_variables, start=1):
        variable.offset = -8 * number

    needed = 8 * len(function.stack_variables)
    if needed == 0:
        return 0

    # Keep 16-byte alignment
    if needed % 16:
        needed += 8

    context = function.context
    rsp = function.create_precolored_reg(context.rsp, ValueType.U64)
    reserve = MachineInst(
        Opcode.ADD,
        [rsp],
        [rsp, context.create_immediate(-needed, ValueType.I64)],
    )
    # The entry block always begins with: push rbp; mov rbp, rsp
    function.blocks[0].instructions.insert(2, reserve)
    return needed