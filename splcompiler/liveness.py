"""Register liveness and interference analysis over machine functions."""

from __future__ import annotations

from typing import Any, Iterable

from splcompiler.machine_instruction import (
    HardwareRegister,
    MachineBB,
    MachineFunction,
    MachineOperand,
    Opcode,
    VirtualRegister,
)

RegSet = set[MachineOperand]
InterferenceGraph = dict[MachineOperand, set[MachineOperand]]


def _registers(operands: Iterable[MachineOperand]) -> list[VirtualRegister]:
    return [operand for operand in operands if isinstance(operand, VirtualRegister)]


def gather_use_def(
    function: MachineFunction,
) -> tuple[dict[MachineBB, RegSet], dict[MachineBB, RegSet]]:
    """Per block: registers used before being defined, and registers defined.

    Returns ``(uses, definitions)``.
    """
    uses: dict[MachineBB, RegSet] = {}
    definitions: dict[MachineBB, RegSet] = {}

    for block in function.blocks:
        used: RegSet = set()
        defined: RegSet = set()
        for inst in block.instructions:
            used.update(reg for reg in _registers(inst.inputs) if reg not in defined)
            defined.update(_registers(inst.outputs))
        uses[block] = used
        definitions[block] = defined

    return uses, definitions


def compute_liveness(
    function: MachineFunction,
    uses: dict[MachineBB, RegSet],
    definitions: dict[MachineBB, RegSet],
) -> dict[MachineBB, RegSet]:
    """Registers live on entry to each block, iterated to a fixed point."""
    live: dict[MachineBB, RegSet] = {}
    changed = True
    while changed:
        changed = False
        for block in function.blocks:
            # live[n] = (union of live[s] for s in succ[n]) - def[n] + use[n]
            regs: RegSet = set()
            for succ in block.successors():
                regs |= live.get(succ, set())
            regs -= definitions.get(block, set())
            regs |= uses.get(block, set())
            if live.get(block) != regs:
                live[block] = regs
                changed = True
    return live


def _color_of(context: Any, hreg: HardwareRegister) -> int:
    for color, candidate in enumerate(context.hregs):
        if candidate is hreg:
            return color
    raise ValueError(f"{hreg!r} is not a register of this context")


def get_precolored(function: MachineFunction, context: Any) -> dict[MachineOperand, int]:
    """Colours of the registers that already carry a hardware assignment."""
    precolored: dict[MachineOperand, int] = {}
    for block in function.blocks:
        for inst in block.instructions:
            for reg in _registers([*inst.inputs, *inst.outputs]):
                if reg.assignment is not None:
                    precolored.setdefault(reg, _color_of(context, reg.assignment))
    return precolored


def _add_edge(graph: InterferenceGraph, a: MachineOperand, b: MachineOperand) -> None:
    graph.setdefault(a, set()).add(b)
    graph.setdefault(b, set()).add(a)


def compute_interference(
    function: MachineFunction,
    live: dict[MachineBB, RegSet],
    precolored: dict[MachineOperand, int],
) -> InterferenceGraph:
    """The interference graph: which registers are live at the same time."""
    graph: InterferenceGraph = {}

    for block in function.blocks:
        live_out: RegSet = set()
        for succ in block.successors():
            live_out |= live[succ]

        for inst in reversed(block.instructions):
            new_live_out = set(live_out)

            for output in _registers(inst.outputs):
                # Destinations interfere with every live-out register
                for other in live_out:
                    # A move's source and destination need not interfere
                    if inst.opcode is Opcode.MOVrd and any(other is src for src in inst.inputs):
                        continue
                    if other is not output:
                        _add_edge(graph, other, output)
                new_live_out.discard(output)

            new_live_out.update(_registers(inst.inputs))
            live_out = new_live_out

    # Precoloured registers of different colours always interfere
    for first, first_color in precolored.items():
        for second, second_color in precolored.items():
            if first_color != second_color and first is not second:
                _add_edge(graph, first, second)

    return graph