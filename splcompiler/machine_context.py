"""Per-program machine state: hardware registers, functions and globals."""

from __future__ import annotations

from splcompiler.machine_instruction import (
    Address,
    HardwareRegister,
    Immediate,
    MachineFunction,
    ValueType,
)


class MachineContext:
    """Owns the hardware registers and the functions of one program."""

    def __init__(self) -> None:
        self.functions: list[MachineFunction] = []
        self.externs: list[str] = []
        self.static_strings: list[tuple[str, str]] = []
        self.globals: list[tuple[str, ValueType]] = []

        self.rax = HardwareRegister("rax", "eax", "ax", "al")
        self.rbx = HardwareRegister("rbx", "ebx", "bx", "bl")
        self.rcx = HardwareRegister("rcx", "ecx", "cx", "cl")
        self.rdx = HardwareRegister("rdx", "edx", "dx", "dl")
        self.rsi = HardwareRegister("rsi", "esi", "si", "sil")
        self.rdi = HardwareRegister("rdi", "edi", "di", "dil")
        self.rbp = HardwareRegister("rbp", "ebp", "bp", "bpl")
        self.rsp = HardwareRegister("rsp", "esp", "sp", "spl")
        self.r8 = HardwareRegister("r8", "r8d", "r8w", "r8b")
        self.r9 = HardwareRegister("r9", "r9d", "r9w", "r9b")
        self.r10 = HardwareRegister("r10", "r10d", "r10w", "r10b")
        self.r11 = HardwareRegister("r11", "r11d", "r11w", "r11b")
        self.r12 = HardwareRegister("r12", "r12d", "r12w", "r12b")
        self.r13 = HardwareRegister("r13", "r13d", "r13w", "r13b")
        self.r14 = HardwareRegister("r14", "r14d", "r14w", "r14b")
        self.r15 = HardwareRegister("r15", "r15d", "r15w", "r15b")

        # Colour order used by the register allocator; rbp and rsp come last
        self.hregs: tuple[HardwareRegister, ...] = (
            self.rax, self.rbx, self.rcx, self.rdx, self.rsi, self.rdi, self.r8, self.r9,
            self.r10, self.r11, self.r12, self.r13, self.r14, self.r15, self.rbp, self.rsp,
        )

        self._globals: dict[str, Address] = {}

    def create_immediate(self, value: int, type: ValueType) -> Immediate:
        return Immediate(value, type)

    def create_global(self, name: str, type: ValueType, clinkage: bool = False) -> Address:
        """The address operand for a global name, created once per name."""
        address = self._globals.get(name)
        if address is None:
            address = Address(name, type, clinkage)
            self._globals[name] = address
        return address