"""Graph-colouring register allocation for machine functions."""

from __future__ import annotations

from typing import Iterable

from splcompiler.liveness import (
    InterferenceGraph,
    compute_interference,
    compute_liveness,
    gather_use_def,
    get_precolored,
)
from splcompiler.machine_instruction import (
    MachineBB,
    MachineFunction,
    MachineInst,
    MachineOperand,
    Opcode,
    VirtualRegister,
)

# rsp and rbp are never handed out
AVAILABLE_COLORS = 14


def _registers(operands: Iterable[MachineOperand]) -> list[VirtualRegister]:
    return [operand for operand in operands if isinstance(operand, VirtualRegister)]


def _remove_from_graph(graph: InterferenceGraph, reg: MachineOperand) -> None:
    for other in graph.pop(reg, set()):
        graph[other].discard(reg)


class RegAlloc:
    """Assigns a hardware register to every virtual register of a function.

    After ``run`` every register operand carries an assignment, and
    registers live across calls are saved before and restored after them.
    """

    def __init__(self, function: MachineFunction) -> None:
        self.function = function
        self.context = function.context
        self._live: dict[MachineBB, set[MachineOperand]] = {}
        self._precolored: dict[MachineOperand, int] = {}
        self._graph: InterferenceGraph = {}
        self._coloring: dict[MachineOperand, int] = {}

    def run(self) -> None:
        self._color_graph()
        self._assign_regs()
        self._spill_around_calls()

    def _analyze(self) -> None:
        uses, definitions = gather_use_def(self.function)
        self._live = compute_liveness(self.function, uses, definitions)
        self._precolored = get_precolored(self.function, self.context)
        self._graph = compute_interference(self.function, self._live, self._precolored)

    def _color_graph(self) -> None:
        while True:
            self._analyze()
            self._coalesce_moves()
            self._analyze()
            if self._try_color_graph():
                return

    def _coalesce_moves(self) -> None:
        """Merge registers joined by a move whose live ranges do not interfere."""
        replacements: dict[MachineOperand, MachineOperand] = {}

        for block in self.function.blocks:
            for inst in block.instructions:
                if inst.opcode is not Opcode.MOVrd:
                    continue
                src, dest = inst.inputs[0], inst.outputs[0]
                if (
                    isinstance(src, VirtualRegister)
                    and isinstance(dest, VirtualRegister)
                    and src.size == dest.size
                    and src.assignment is None
                    and dest.assignment is None
                    and src is not dest
                    and dest not in self._graph.get(src, set())
                ):
                    replacements[dest] = src

        if not replacements:
            return

        for block in self.function.blocks:
            for inst in block.instructions:
                inst.inputs = [replacements.get(op, op) for op in inst.inputs]
                inst.outputs = [replacements.get(op, op) for op in inst.outputs]

    def _try_color_graph(self) -> bool:
        self._coloring = {}
        graph: InterferenceGraph = {reg: set(adj) for reg, adj in self._graph.items()}
        stack: list[MachineOperand] = []

        # Repeatedly remove a vertex of degree < k; if there is none, remove
        # any vertex and leave the decision to spill until it is coloured
        while True:
            candidates = [reg for reg in graph if reg not in self._precolored]
            if not candidates:
                break
            reg = next(
                (r for r in candidates if len(graph[r]) < AVAILABLE_COLORS),
                candidates[0],
            )
            stack.append(reg)
            _remove_from_graph(graph, reg)

        # Precoloured registers go back into the graph first
        for reg in self._precolored:
            stack.append(reg)
            _remove_from_graph(graph, reg)

        while stack:
            reg = stack.pop()
            self._add_vertex_back(graph, reg)
            if not self._find_color_for(graph, reg):
                self._spill_variable(reg)
                return False

        return True

    def _add_vertex_back(self, graph: InterferenceGraph, reg: MachineOperand) -> None:
        graph.setdefault(reg, set())
        for other in self._graph.get(reg, ()):
            graph[reg].add(other)
            graph.setdefault(other, set()).add(reg)

    def _find_color_for(self, graph: InterferenceGraph, reg: MachineOperand) -> bool:
        used = {self._coloring[other] for other in graph.get(reg, ()) if other in self._coloring}

        color = self._precolored.get(reg)
        if color is not None:
            if color in used:
                raise RuntimeError(f"precoloured register {reg} conflicts with a neighbour")
            self._coloring[reg] = color
            return True

        for candidate in range(AVAILABLE_COLORS):
            if candidate not in used:
                self._coloring[reg] = candidate
                return True
        return False

    def _spill_variable(self, reg: MachineOperand) -> None:
        """Keep ``reg`` on the stack, loading before each use and storing after each definition."""
        if not isinstance(reg, VirtualRegister):
            raise TypeError(f"cannot spill non-register operand {reg}")

        location = self.function.create_stack_variable(reg.type, f"vreg{reg.id}")

        for block in self.function.blocks:
            rewritten: list[MachineInst] = []
            for inst in block.instructions:
                store = None

                if any(op is reg for op in inst.inputs):
                    loaded = self.function.create_vreg(reg.type)
                    rewritten.append(MachineInst(Opcode.MOVrm, [loaded], [location]))
                    inst.inputs = [loaded if op is reg else op for op in inst.inputs]

                if any(op is reg for op in inst.outputs):
                    result = self.function.create_vreg(reg.type)
                    inst.outputs = [result if op is reg else op for op in inst.outputs]
                    store = MachineInst(Opcode.MOVmd, [], [location, result])

                rewritten.append(inst)
                if store is not None:
                    rewritten.append(store)
            block.instructions = rewritten

    def _assign_regs(self) -> None:
        hregs = self.context.hregs
        for block in self.function.blocks:
            for inst in block.instructions:
                for reg in _registers([*inst.inputs, *inst.outputs]):
                    color = self._coloring.get(reg, self._precolored.get(reg, 0))
                    reg.assignment = hregs[color]

    def _spill_around_calls(self) -> None:
        """Save every live register (except rbp, rsp) before a call and restore it after."""
        self._analyze()
        context = self.context

        for block in self.function.blocks:
            regs: set[MachineOperand] = set()
            for succ in block.successors():
                regs |= self._live[succ]

            insertions: dict[MachineInst, tuple[list[MachineInst], list[MachineInst]]] = {}

            for inst in reversed(block.instructions):
                if inst.opcode is Opcode.CALL:
                    saves: list[MachineInst] = []
                    restores: list[MachineInst] = []
                    for live_reg in sorted(_registers(regs), key=lambda r: r.id):
                        hreg = live_reg.assignment
                        if hreg is context.rbp or hreg is context.rsp:
                            continue
                        # rax is redefined by a call that returns a value
                        if inst.outputs and hreg is context.rax:
                            continue
                        slot = self.function.create_stack_variable(live_reg.type)
                        saves.append(MachineInst(Opcode.MOVmd, [], [slot, live_reg]))
                        restores.append(MachineInst(Opcode.MOVrm, [live_reg], [slot]))
                    insertions[inst] = (saves, restores)

                # Spills are based on live-out registers, so update afterwards
                for output in _registers(inst.outputs):
                    regs.discard(output)
                regs.update(_registers(inst.inputs))

            if not insertions:
                continue

            rewritten: list[MachineInst] = []
            for inst in block.instructions:
                saves_restores = insertions.get(inst)
                if saves_restores is None:
                    rewritten.append(inst)
                    continue
                saves, restores = saves_restores
                rewritten.extend(saves)
                rewritten.append(inst)
                rewritten.extend(reversed(restores))
            block.instructions = rewritten