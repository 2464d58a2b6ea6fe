from splcompiler.machine_context import MachineContext
from splcompiler.machine_instruction import Address, ValueType


def test_hardware_register_order():
    context = MachineContext()
    assert len(context.hregs) == 16
    assert len(set(map(id, context.hregs))) == 16
    assert context.hregs[0] is context.rax
    assert context.hregs[-2] is context.rbp
    assert context.hregs[-1] is context.rsp


def test_register_names():
    context = MachineContext()
    assert context.r8.register_name(8) == "r8b"
    assert context.rsi.register_name(8) == "sil"
    assert context.rdx.register_name(32) == "edx"


def test_create_global_is_cached():
    context = MachineContext()
    first = context.create_global("main", ValueType.NON_HEAP_ADDRESS)
    second = context.create_global("main", ValueType.U64, True)
    assert first is second
    assert isinstance(first, Address)
    assert first.clinkage is False
    assert first.type is ValueType.NON_HEAP_ADDRESS


def test_create_global_clinkage():
    context = MachineContext()
    address = context.create_global("ccall", ValueType.NON_HEAP_ADDRESS, True)
    assert address.clinkage is True
    assert address.name == "ccall"
    assert context.create_global("other", ValueType.U64) is not address


def test_create_immediate():
    context = MachineContext()
    a = context.create_immediate(7, ValueType.U64)
    b = context.create_immediate(7, ValueType.U64)
    assert a.value == b.value == 7
    assert a is not b
    assert a.type is ValueType.U64


def test_initial_collections_empty():
    context = MachineContext()
    assert context.functions == []
    assert context.externs == []
    assert context.static_strings == []
    assert context.globals == []