"""Output of machine functions and program data as NASM assembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TextIO

from splcompiler.asm_operands import extern_name, format_operand, size_name
from splcompiler.machine_instruction import (
    HardwareRegister,
    MachineBB,
    MachineFunction,
    MachineInst,
    MachineOperand,
    Opcode,
    StackLocation,
    ValueType,
    VirtualRegister,
    get_assignment,
)

# Header tag of a heap array whose elements are not references (strings)
_UNBOXED_ARRAY_TAG = 1 << 32

_BINARY = {
    Opcode.ADD: "add",
    Opcode.AND: "and",
    Opcode.SAL: "sal",
    Opcode.SUB: "sub",
}

_JUMPS = {
    Opcode.JA: "ja",
    Opcode.JAE: "jae",
    Opcode.JB: "jb",
    Opcode.JBE: "jbe",
    Opcode.JE: "je",
    Opcode.JG: "jg",
    Opcode.JGE: "jge",
    Opcode.JL: "jl",
    Opcode.JLE: "jle",
    Opcode.JMP: "jmp",
    Opcode.JNE: "jne",
}

_STOS_SUFFIX = {8: "b", 16: "w", 32: "d", 64: "q"}
_SIGN_EXTEND = {64: "cqo", 32: "cdq", 16: "cwd"}


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def _arity(inst: MachineInst, outputs: int, inputs: int) -> None:
    _require(
        len(inst.outputs) == outputs and len(inst.inputs) == inputs,
        f"{inst}: expected {outputs} outputs and {inputs} inputs",
    )


@dataclass(frozen=True)
class _StackMapEntry:
    function_name: str
    counter: int
    offsets: tuple[int, ...]


class AsmPrinter:
    """Writes NASM assembly for machine functions to a text stream.

    Call sites seen by ``print_function`` are collected into the stack map
    that ``print_program`` emits for the garbage collector.
    """

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._function: MachineFunction | None = None
        self._context: Any = None
        self._call_site_counter = 0
        self._stack_map: list[_StackMapEntry] = []
        self._handlers: dict[Opcode, Callable[[MachineInst], None]] = {
            Opcode.SAR: self._print_sar,
            Opcode.IMUL: self._print_imul,
            Opcode.INC: self._print_inc,
            Opcode.MOVrm: self._print_movrm,
            Opcode.MOVmd: self._print_movmd,
            Opcode.REP_STOS: self._print_rep_stos,
            Opcode.MOVrd: self._print_movrd,
            Opcode.MOVSXrr: self._print_movsx,
            Opcode.MOVZXrr: self._print_movzx,
            Opcode.LEA: self._print_lea,
            Opcode.CALL: self._print_call,
            Opcode.CMP: self._print_compare,
            Opcode.TEST: self._print_compare,
            Opcode.CQO: self._print_cqo,
            Opcode.IDIV: lambda inst: self._print_division(inst, "idiv"),
            Opcode.DIV: lambda inst: self._print_division(inst, "div"),
            Opcode.POP: self._print_pop,
            Opcode.PUSHQ: self._print_push,
            Opcode.RET: self._print_ret,
        }

    def _line(self, text: str = "") -> None:
        self._out.write(text + "\n")

    # Program and functions

    def print_program(self, context: Any) -> None:
        self._line("bits 64")
        self._line("section .text")
        self._line()

        for name in context.externs:
            self._line("extern $" + extern_name(name))
        self._line()

        for function in context.functions:
            self.print_function(function)

        self._line("section .data")

        for name, _ in context.globals:
            self._line(f"${name}: dq 0")

        for name, content in context.static_strings:
            self._line(f"${name}:")
            self._line(f"\tdq {_UNBOXED_ARRAY_TAG}, {len(content)}")
            self._line(f'\tdb "{content}"')

        # Stack map, for the garbage collector
        stack_map_label = extern_name("__stackMap")
        self._line("global " + stack_map_label)
        self._line(stack_map_label + ":")
        self._line(f"\tdq {len(self._stack_map)}")
        for entry in self._stack_map:
            fields = [f"{entry.function_name}.CS{entry.counter}", str(len(entry.offsets))]
            fields.extend(str(offset) for offset in entry.offsets)
            self._line("\tdq " + ", ".join(fields))

        # Global variables holding references, for the garbage collector
        references = [name for name, type in context.globals if type is ValueType.REFERENCE]
        self._line("global __globalVarTable")
        self._line("__globalVarTable:")
        self._line(f"\tdq {len(references)}")
        for name in references:
            self._line(f"\tdq ${name}")
        self._line("\tdq 0")

    def print_function(self, function: MachineFunction) -> None:
        self._function = function
        self._context = function.context
        self._call_site_counter = 0

        self._line(f"global ${function.name}")
        self._line(f"${function.name}:")

        for block in function.blocks:
            self._line(f".{block.id}:")
            for inst in block.instructions:
                self._print_instruction(inst)

        self._line()

    # Instruction forms

    def _print_instruction(self, inst: MachineInst) -> None:
        opcode = inst.opcode
        if opcode in _BINARY:
            _arity(inst, 1, 2)
            _require(inst.outputs[0] is inst.inputs[0], f"{inst}: destination must be the first input")
            self._binary(_BINARY[opcode], inst.outputs[0], inst.inputs[1])
        elif opcode in _JUMPS:
            _arity(inst, 0, 1)
            self._jump(_JUMPS[opcode], inst.inputs[0])
        else:
            handler = self._handlers.get(opcode)
            if handler is None:
                raise ValueError(f"cannot print instruction {inst}")
            handler(inst)

    def _simple(self, mnemonic: str, *operands: MachineOperand) -> None:
        text = "\t" + mnemonic
        if operands:
            text += " " + ", ".join(format_operand(operand) for operand in operands)
        self._line(text)

    def _binary(self, mnemonic: str, dest: MachineOperand, src: MachineOperand) -> None:
        _require(isinstance(dest, VirtualRegister), f"destination {dest} must be a register")
        self._line(f"\t{mnemonic} {format_operand(dest)}, {format_operand(src)}")

    def _jump(self, mnemonic: str, target: MachineOperand) -> None:
        _require(isinstance(target, MachineBB), f"jump target {target} must be a block")
        self._line(f"\t{mnemonic} .{target.id}")

    def _assigned(self, operand: MachineOperand, hreg: HardwareRegister) -> bool:
        return get_assignment(operand) is hreg

    @staticmethod
    def _frame_slot(location: StackLocation) -> str:
        _require(location.offset != 0, f"stack location {location} has no frame offset")
        return f"rbp + {location.offset}"

    def _print_sar(self, inst: MachineInst) -> None:
        _arity(inst, 1, 2)
        dest, src = inst.outputs[0], inst.inputs[0]
        _require(
            isinstance(dest, VirtualRegister) and isinstance(src, VirtualRegister),
            f"{inst}: operands must be registers",
        )
        _require(get_assignment(dest) is get_assignment(src), f"{inst}: operands must share a register")
        self._binary("sar", dest, inst.inputs[1])

    def _print_imul(self, inst: MachineInst) -> None:
        _arity(inst, 1, 2)
        dest = inst.outputs[0]
        _require(dest is inst.inputs[0], f"{inst}: destination must be the first input")
        _require(isinstance(dest, VirtualRegister), f"{inst}: destination must be a register")
        if self._assigned(dest, self._context.rax) and dest.size == 8:
            # There is no IMUL r8, r/m8: use the one-operand form on al
            self._simple("imul", inst.inputs[1])
        else:
            self._binary("imul", dest, inst.inputs[1])

    def _print_inc(self, inst: MachineInst) -> None:
        _arity(inst, 1, 1)
        _require(inst.outputs[0] is inst.inputs[0], f"{inst}: destination must be the input")
        _require(isinstance(inst.outputs[0], VirtualRegister), f"{inst}: operand must be a register")
        self._simple("inc", inst.outputs[0])

    def _print_movrm(self, inst: MachineInst) -> None:
        _require(len(inst.outputs) == 1 and len(inst.inputs) in (1, 2), f"{inst}: bad operand count")
        dest, base = inst.outputs[0], inst.inputs[0]
        _require(isinstance(dest, VirtualRegister), f"{inst}: destination must be a register")

        if len(inst.inputs) == 1:
            if isinstance(base, StackLocation):
                address = self._frame_slot(base)
            else:
                address = format_operand(base, True)
            self._line(f"\tmov {format_operand(dest)}, {size_name(base.size)} [{address}]")
        else:
            _require(not isinstance(base, StackLocation), f"{inst}: stack locations take no offset")
            offset = inst.inputs[1]
            _require(offset.size == 64, f"{inst}: offset must be 64 bits")
            self._line(
                f"\tmov {format_operand(dest)}, {size_name(dest.size)} "
                f"[{format_operand(base, True)} + {format_operand(offset)}]"
            )

    def _print_movmd(self, inst: MachineInst) -> None:
        _require(not inst.outputs and len(inst.inputs) in (2, 3), f"{inst}: bad operand count")
        base, src = inst.inputs[0], inst.inputs[1]

        if len(inst.inputs) == 2:
            _require(base.size == src.size, f"{inst}: operand sizes differ")
            if isinstance(base, StackLocation):
                address = self._frame_slot(base)
            else:
                address = format_operand(base, True)
        else:
            _require(not isinstance(base, StackLocation), f"{inst}: stack locations take no offset")
            offset = inst.inputs[2]
            _require(offset.size == 64, f"{inst}: offset must be 64 bits")
            address = f"{format_operand(base, True)} + {format_operand(offset)}"

        self._line(f"\tmov {size_name(src.size)} [{address}], {format_operand(src)}")

    def _print_rep_stos(self, inst: MachineInst) -> None:
        _arity(inst, 0, 3)
        ctx = self._context
        dest, count, value = inst.inputs
        _require(self._assigned(dest, ctx.rdi), f"{inst}: destination must be in rdi")
        _require(self._assigned(count, ctx.rcx), f"{inst}: count must be in rcx")
        _require(self._assigned(value, ctx.rax), f"{inst}: value must be in rax")
        suffix = _STOS_SUFFIX.get(value.size)
        _require(suffix is not None, f"{inst}: bad value size")
        self._line("\trep stos" + suffix)

    def _print_movrd(self, inst: MachineInst) -> None:
        _arity(inst, 1, 1)
        dest = inst.outputs[0]
        _require(isinstance(dest, VirtualRegister), f"{inst}: destination must be a register")
        # Narrowing moves read the source at the destination's size
        self._line(f"\tmov {format_operand(dest)}, {format_operand(inst.inputs[0], False, dest.size)}")

    def _extending(self, inst: MachineInst) -> tuple[MachineOperand, MachineOperand]:
        _arity(inst, 1, 1)
        dest, src = inst.outputs[0], inst.inputs[0]
        _require(
            isinstance(dest, VirtualRegister) and isinstance(src, VirtualRegister),
            f"{inst}: operands must be registers",
        )
        _require(dest.size > src.size, f"{inst}: destination must be wider than source")
        return dest, src

    def _print_movsx(self, inst: MachineInst) -> None:
        dest, src = self._extending(inst)
        self._binary("movsx", dest, src)

    def _print_movzx(self, inst: MachineInst) -> None:
        dest, src = self._extending(inst)
        _require(src.size != 32, f"{inst}: no zero-extending move from 32 bits")
        self._binary("movzx", dest, src)

    def _print_lea(self, inst: MachineInst) -> None:
        _arity(inst, 1, 1)
        dest, src = inst.outputs[0], inst.inputs[0]
        _require(src.__class__.__name__ == "Address", f"{inst}: source must be an address")
        _require(dest.size == 64 and src.size == 64, f"{inst}: operands must be 64 bits")
        self._line(f"\tlea {format_operand(dest)}, [{format_operand(src, True)}]")

    def _print_call(self, inst: MachineInst) -> None:
        _require(len(inst.outputs) == 1 and inst.inputs, f"{inst}: bad operand count")
        _require(self._assigned(inst.outputs[0], self._context.rax), f"{inst}: result must be in rax")
        _require(
            all(isinstance(arg, VirtualRegister) for arg in inst.inputs[1:]),
            f"{inst}: register arguments must be registers",
        )

        self._simple("call", inst.inputs[0])

        # Label the call site and record which stack slots are live there
        live = self._function.stack_map.get(inst)
        _require(live is not None, f"{inst}: no stack map entry for call site")
        counter = self._call_site_counter
        self._call_site_counter += 1
        self._line(f".CS{counter}:")
        self._stack_map.append(_StackMapEntry(self._function.name, counter, tuple(sorted(live))))

    def _print_compare(self, inst: MachineInst) -> None:
        _arity(inst, 0, 2)
        self._simple("cmp", inst.inputs[0], inst.inputs[1])

    def _print_cqo(self, inst: MachineInst) -> None:
        _arity(inst, 1, 1)
        ctx = self._context
        dest, src = inst.outputs[0], inst.inputs[0]
        _require(self._assigned(dest, ctx.rdx), f"{inst}: output must be in rdx")
        _require(self._assigned(src, ctx.rax), f"{inst}: input must be in rax")
        _require(dest.size == src.size, f"{inst}: operand sizes differ")
        mnemonic = _SIGN_EXTEND.get(dest.size)
        _require(mnemonic is not None, f"{inst}: bad operand size")
        self._simple(mnemonic)

    def _print_division(self, inst: MachineInst, mnemonic: str) -> None:
        ctx = self._context
        if len(inst.inputs) == 3:
            _arity(inst, 2, 3)
            _require(
                self._assigned(inst.outputs[0], ctx.rdx)
                and self._assigned(inst.outputs[1], ctx.rax)
                and self._assigned(inst.inputs[0], ctx.rdx)
                and self._assigned(inst.inputs[1], ctx.rax),
                f"{inst}: dividend and results must be in rdx:rax",
            )
            self._simple(mnemonic, inst.inputs[2])
        else:
            _arity(inst, 1, 2)
            _require(
                self._assigned(inst.outputs[0], ctx.rax) and self._assigned(inst.inputs[0], ctx.rax),
                f"{inst}: dividend and result must be in rax",
            )
            self._simple(mnemonic, inst.inputs[1])

    def _print_pop(self, inst: MachineInst) -> None:
        _arity(inst, 1, 0)
        _require(isinstance(inst.outputs[0], VirtualRegister), f"{inst}: destination must be a register")
        self._simple("pop", inst.outputs[0])

    def _print_push(self, inst: MachineInst) -> None:
        _arity(inst, 0, 1)
        # Always push the full 64-bit register
        self._line("\tpush " + format_operand(inst.inputs[0], False, 64))

    def _print_ret(self, inst: MachineInst) -> None:
        _require(not inst.outputs and len(inst.inputs) <= 1, f"{inst}: bad operand count")
        _require(
            not inst.inputs or self._assigned(inst.inputs[0], self._context.rax),
            f"{inst}: return value must be in rax",
        )
        self._simple("ret")