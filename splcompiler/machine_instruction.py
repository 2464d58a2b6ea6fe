"""Machine-level operands, instructions, basic blocks and functions."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Any, Iterable


class ValueType(enum.Enum):
    """Machine value types used by operands."""

    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    REFERENCE = "reference"
    NON_HEAP_ADDRESS = "non_heap_address"


_SIZES = {
    ValueType.U8: 8,
    ValueType.I8: 8,
    ValueType.U16: 16,
    ValueType.I16: 16,
    ValueType.U32: 32,
    ValueType.I32: 32,
    ValueType.U64: 64,
    ValueType.I64: 64,
    ValueType.REFERENCE: 64,
    ValueType.NON_HEAP_ADDRESS: 64,
}

_SIGNED = frozenset({ValueType.I8, ValueType.I16, ValueType.I32, ValueType.I64})
_INTEGERS = _SIGNED | {ValueType.U8, ValueType.U16, ValueType.U32, ValueType.U64}


def get_size(type: ValueType) -> int:
    """Size of a value of this type, in bits."""
    return _SIZES[type]


def is_signed(type: ValueType) -> bool:
    return type in _SIGNED


def is_integer(type: ValueType) -> bool:
    return type in _INTEGERS


class Opcode(enum.Enum):
    """x86-64 opcodes.

    Suffixes: m = indirect memory location, r = register,
    d = register or immediate ("direct").
    """

    ADD = "ADD"
    AND = "AND"
    CALL = "CALL"
    CMP = "CMP"
    CQO = "CQO"
    DIV = "DIV"
    IDIV = "IDIV"
    IMUL = "IMUL"
    INC = "INC"
    JA = "JA"
    JAE = "JAE"
    JB = "JB"
    JBE = "JBE"
    JE = "JE"
    JG = "JG"
    JGE = "JGE"
    JL = "JL"
    JLE = "JLE"
    JMP = "JMP"
    JNE = "JNE"
    LEA = "LEA"
    MOVmd = "MOVmd"
    MOVrd = "MOVrd"
    MOVrm = "MOVrm"
    MOVSXrr = "MOVSXrr"
    MOVZXrr = "MOVZXrr"
    POP = "POP"
    PUSHQ = "PUSHQ"
    REP_STOS = "REP_STOS"
    RET = "RET"
    SAL = "SAL"
    SAR = "SAR"
    SUB = "SUB"
    TEST = "TEST"


_JUMPS = frozenset(
    {
        Opcode.JA,
        Opcode.JAE,
        Opcode.JB,
        Opcode.JBE,
        Opcode.JE,
        Opcode.JG,
        Opcode.JGE,
        Opcode.JL,
        Opcode.JLE,
        Opcode.JMP,
        Opcode.JNE,
    }
)


class MachineOperand(ABC):
    """An operand of a machine instruction. Compared by identity."""

    def __init__(self, type: ValueType) -> None:
        self.type = type

    @property
    def size(self) -> int:
        """Size in bits."""
        return get_size(self.type)

    @abstractmethod
    def __str__(self) -> str: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self}>"


class HardwareRegister:
    """A physical register, addressable at 64, 32, 16 and 8 bits."""

    def __init__(self, qword_name: str, dword_name: str, word_name: str, byte_name: str) -> None:
        self._names = {64: qword_name, 32: dword_name, 16: word_name, 8: byte_name}

    def register_name(self, size: int) -> str:
        try:
            name = self._names[size]
        except KeyError:
            raise ValueError(f"invalid register size: {size}") from None
        if not name:
            raise ValueError(f"register {self._names[64]} is not byte-addressable")
        return name

    def __str__(self) -> str:
        return "%" + self._names[64]

    def __repr__(self) -> str:
        return f"<HardwareRegister {self._names[64]}>"


class VirtualRegister(MachineOperand):
    def __init__(self, type: ValueType, id: int, assignment: HardwareRegister | None = None) -> None:
        super().__init__(type)
        self.id = id
        # Filled in by the register allocator
        self.assignment = assignment

    def __str__(self) -> str:
        if self.assignment is not None:
            return "%" + self.assignment.register_name(self.size)
        return f"%vreg{self.id}"


def get_assignment(operand: MachineOperand) -> HardwareRegister | None:
    """The hardware register assigned to a register operand."""
    if not isinstance(operand, VirtualRegister):
        raise TypeError(f"operand {operand} is not a register")
    return operand.assignment


class Address(MachineOperand):
    """Constant address, such as that of a global variable or function."""

    def __init__(self, name: str, type: ValueType, clinkage: bool = False) -> None:
        super().__init__(type)
        self.name = name
        self.clinkage = clinkage

    def __str__(self) -> str:
        return "@" + self.name


class StackLocation(MachineOperand):
    def __init__(self, type: ValueType, name: str = "", id: int = -1) -> None:
        super().__init__(type)
        self.name = name
        self.id = id
        # Filled in by the stack allocator
        self.offset = 0

    def __str__(self) -> str:
        if self.id == -1:
            return "$" + self.name
        return f"${self.id}"


class StackParameter(StackLocation):
    def __init__(self, type: ValueType, name: str, index: int) -> None:
        super().__init__(type, name)
        self.index = index
        self.offset = 16 + 8 * index


class Immediate(MachineOperand):
    def __init__(self, value: int, type: ValueType) -> None:
        super().__init__(type)
        self.value = value

    def __str__(self) -> str:
        return str(self.value)


class MachineBB(MachineOperand):
    """A basic block; also usable as a jump-target operand."""

    def __init__(self, id: int) -> None:
        super().__init__(ValueType.NON_HEAP_ADDRESS)
        self.id = id
        self.instructions: list[MachineInst] = []

    def __str__(self) -> str:
        return f".{self.id}"

    def successors(self) -> list[MachineBB]:
        """Targets of the trailing jump instructions, last jump first."""
        result = []
        for inst in reversed(self.instructions):
            if not inst.is_jump():
                break
            target = inst.inputs[0]
            if not isinstance(target, MachineBB):
                raise TypeError(f"jump target {target} is not a block")
            result.append(target)
        return result


def format_operands(operands: Iterable[MachineOperand]) -> str:
    text = ", ".join(str(operand) for operand in operands)
    return text or "{}"


class MachineInst:
    def __init__(
        self,
        opcode: Opcode,
        outputs: Iterable[MachineOperand] = (),
        inputs: Iterable[MachineOperand] = (),
    ) -> None:
        self.opcode = opcode
        self.outputs: list[MachineOperand] = list(outputs)
        self.inputs: list[MachineOperand] = list(inputs)

    def is_jump(self) -> bool:
        return self.opcode in _JUMPS

    def __str__(self) -> str:
        return f"{format_operands(self.outputs)} = {self.opcode.value} {format_operands(self.inputs)}"

    def __repr__(self) -> str:
        return f"<MachineInst {self}>"


class MachineFunction:
    def __init__(self, context: Any, name: str) -> None:
        self.context = context
        self.name = name
        self.blocks: list[MachineBB] = []
        self.stack_map: dict[MachineInst, set[int]] = {}
        self.parameters: list[StackParameter] = []
        self.stack_variables: list[StackLocation] = []
        self._next_vreg_number = 1
        self._next_stack_var = 1

    def create_block(self, seq_number: int) -> MachineBB:
        block = MachineBB(seq_number)
        self.blocks.append(block)
        return block

    def create_stack_parameter(self, type: ValueType, name: str, index: int) -> StackParameter:
        param = StackParameter(type, name, index)
        self.parameters.append(param)
        return param

    def create_precolored_reg(self, hreg: HardwareRegister, type: ValueType) -> VirtualRegister:
        vreg = VirtualRegister(type, self._next_vreg_number, hreg)
        self._next_vreg_number += 1
        return vreg

    def create_vreg(self, type: ValueType) -> VirtualRegister:
        vreg = VirtualRegister(type, self._next_vreg_number)
        self._next_vreg_number += 1
        return vreg

    def create_stack_variable(self, type: ValueType, name: str | None = None) -> StackLocation:
        if name is None:
            location = StackLocation(type, id=self._next_stack_var)
            self._next_stack_var += 1
        else:
            location = StackLocation(type, name)
        self.stack_variables.append(location)
        return location