import sys
from unittest import mock

import pytest

from splcompiler.asm_operands import extern_name, format_operand, size_name
from splcompiler.machine_context import MachineContext
from splcompiler.machine_instruction import MachineFunction, StackLocation, ValueType


@pytest.mark.parametrize(
    "size, expected",
    [(64, "qword"), (32, "dword"), (16, "word"), (8, "byte")],
)
def test_size_name(size, expected):
    assert size_name(size) == expected


def test_size_name_rejects_unknown_size():
    with pytest.raises(ValueError):
        size_name(12)


def test_extern_name_on_macos_is_prefixed():
    with mock.patch.object(sys, "platform", "darwin"):
        assert extern_name("gcAllocate") == "_gcAllocate"


def test_extern_name_elsewhere_is_unchanged():
    with mock.patch.object(sys, "platform", "linux"):
        assert extern_name("gcAllocate") == "gcAllocate"


def test_register_uses_own_size_or_override():
    ctx = MachineContext()
    fn = MachineFunction(ctx, "f")
    reg = fn.create_precolored_reg(ctx.rax, ValueType.U64)
    assert format_operand(reg) == "rax"
    assert format_operand(reg, False, 8) == "al"
    small = fn.create_precolored_reg(ctx.r9, ValueType.I32)
    assert format_operand(small) == "r9d"


def test_unassigned_register_is_rejected():
    ctx = MachineContext()
    fn = MachineFunction(ctx, "f")
    with pytest.raises(ValueError):
        format_operand(fn.create_vreg(ValueType.I64))


def test_immediate_prints_its_value():
    ctx = MachineContext()
    assert format_operand(ctx.create_immediate(-16, ValueType.I64)) == "-16"


def test_address_inside_brackets_is_relative():
    ctx = MachineContext()
    address = ctx.create_global("counter", ValueType.U64)
    assert format_operand(address) == "$counter"
    assert format_operand(address, True) == "rel $counter"


def test_c_linkage_address_uses_extern_name():
    ctx = MachineContext()
    address = ctx.create_global("ccall", ValueType.NON_HEAP_ADDRESS, True)
    with mock.patch.object(sys, "platform", "darwin"):
        assert format_operand(address) == "$_ccall"
    with mock.patch.object(sys, "platform", "linux"):
        assert format_operand(address, True) == "rel $ccall"


def test_stack_location_is_not_a_simple_operand():
    with pytest.raises(ValueError):
        format_operand(StackLocation(ValueType.I64, "x"))