# splcompiler

The back end of a small compiler that targets x86-64 assembly in NASM
syntax. It is pure Python and has no dependencies.

## Modules

- `splcompiler.machine_instruction` holds the machine-level IR:
  - `ValueType`, with the helpers `get_size`, `is_signed` and `is_integer`.
  - `Opcode`.
  - Operands: `VirtualRegister`, `HardwareRegister`, `Immediate`, `Address`,
    `StackLocation` and `StackParameter`.
  - `MachineBB` blocks, `MachineInst` instructions and `MachineFunction`.
  - `MachineFunction` has factory methods such as `create_vreg`,
    `create_precolored_reg`, `create_block` and `create_stack_variable`.
    Its `stack_map` maps each call instruction to the set of live frame
    offsets.
- `splcompiler.machine_context` provides `MachineContext`. It holds the 16
  hardware registers (`rax` … `r15`, and `hregs` in colour order) and a
  program's `functions`, `externs`, `globals` and `static_strings`.
  - `create_immediate` builds an immediate.
  - `create_global` returns one shared `Address` per name.
- `splcompiler.liveness` analyses registers:
  - `gather_use_def` collects the registers each block uses and defines.
  - `compute_liveness` works out which registers are live on entry to each block.
  - `get_precolored` finds the registers that already have a hardware register.
  - `compute_interference` builds the interference graph.
- `splcompiler.reg_alloc` provides `RegAlloc(function).run()`, a
  graph-colouring allocator. It:
  - coalesces moves;
  - spills registers to the stack when colouring fails;
  - saves live registers before each call and restores them after.
- `splcompiler.redundant_moves` provides `remove_redundant_moves(function)`,
  which drops register moves whose source and destination share a hardware
  register and a size.
- `splcompiler.stack_alloc` provides `allocate_stack(function)`. It:
  - gives every stack variable an `rbp`-relative offset;
  - inserts the frame reservation after the prologue;
  - returns the number of bytes reserved, a multiple of 16.
- `splcompiler.asm_operands` renders operands as NASM text with
  `format_operand`, `size_name` and `extern_name`. On macOS, `extern_name`
  adds a leading underscore.
- `splcompiler.asm_printer` provides `AsmPrinter`, which writes a whole program
  to a text stream. The output covers:
  - the code;
  - the data section with globals and static strings;
  - a `__stackMap` table of live reference slots at each call site;
  - a `__globalVarTable` of reference-typed globals.
- `splcompiler.runtime` holds runtime helpers for compiled programs:
  - `str_hash`, a 64-bit FNV-1a hash over signed bytes;
  - `round_up`;
  - `save_command_line`, `get_argc` and `get_argv`;
  - `panic`.

  `get_argv` with an index out of range and `panic` both raise `SplPanic`.

## Install

```
pip install .
```

## Usage

```python
import io

from splcompiler.asm_printer import AsmPrinter
from splcompiler.machine_context import MachineContext
from splcompiler.machine_instruction import MachineFunction, MachineInst, Opcode, ValueType
from splcompiler.redundant_moves import remove_redundant_moves
from splcompiler.reg_alloc import RegAlloc
from splcompiler.stack_alloc import allocate_stack

context = MachineContext()
function = MachineFunction(context, "answer")
context.functions.append(function)

block = function.create_block(0)
rsp = function.create_precolored_reg(context.rsp, ValueType.NON_HEAP_ADDRESS)
rbp = function.create_precolored_reg(context.rbp, ValueType.NON_HEAP_ADDRESS)
result = function.create_precolored_reg(context.rax, ValueType.I64)
block.instructions += [
    MachineInst(Opcode.PUSHQ, [], [rbp]),
    MachineInst(Opcode.MOVrd, [rbp], [rsp]),
    MachineInst(Opcode.MOVrd, [result], [context.create_immediate(42, ValueType.I64)]),
    MachineInst(Opcode.MOVrd, [rsp], [rbp]),
    MachineInst(Opcode.POP, [rbp], []),
    MachineInst(Opcode.RET, [], [result]),
]

RegAlloc(function).run()
remove_redundant_moves(function)
allocate_stack(function)

out = io.StringIO()
AsmPrinter(out).print_program(context)
print(out.getvalue())
```

Every block must begin with a label, and the entry block must start with
`push rbp` and `mov rbp, rsp`, because `allocate_stack` inserts the frame
reservation right after those two instructions.

Before a function containing `CALL` instructions is printed, every call
must have an entry in `function.stack_map`. `AsmPrinter` raises
`ValueError` when a call has no entry, and for any instruction whose
operands it cannot print.

## What this package does not do

- It has no parser and no syntax tree.
- It does not translate source code or intermediate code into
  `MachineInst` sequences. Machine functions are built by the caller, as
  above.
- It does not work out which stack slots are live at call sites. The
  caller fills in `MachineFunction.stack_map`.
- It does not assemble or link its output, and it has no garbage collector.
  It only emits the tables that a collector would read.

## Tests

```
pip install .[test]
pytest
```