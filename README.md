# rvsim

A simulator for 32-bit RISC-V programs using the RV32IM instruction set
(base integer instructions plus multiply and divide). It loads a RISC-V ELF
executable or a raw binary image, runs it, and gives the program a small set
of system calls for console input and output. An interactive debugger lets
you step through the program, set breakpoints, look at registers and
memory, and disassemble instructions.

## Installation

```
pip install .
```

To run the test suite, install the test extra and run pytest:

```
pip install .[test]
pytest
```

## Running a program

```
rvsim [options] executable
```

Options:

| Option | Meaning |
| --- | --- |
| `-d`, `--debug` | Start in the debugger before the first instruction runs, and log loading details to stderr |
| `-e`, `--entry=ADDR` | Start at ADDR instead of the executable's entry point |
| `-l`, `--load-addr=ADDR` | Address to load a raw binary at (raw binaries only) |
| `-x`, `--prg-exit-code` | Exit with the simulated program's own exit code; on errors and faults, exit with POSIX-style codes |
| `-h`, `--help` | Show the options |

Addresses may be written in decimal, hexadecimal (`0x...`) or octal (`0...`).

A file whose first four bytes are the ELF magic is loaded as an ELF file;
it must be a 32-bit, little-endian RISC-V executable, and only loadable
(and null or note) program segments are accepted. Any other file of at
least four bytes is treated as a raw binary image of at most 128 MiB. A raw
binary is loaded at the load address (0 by default) and, unless `--entry`
is given, starts running there too.

The stack ends just below `0x80000000`, and the stack pointer starts at
`0x7ffffffc`. When the program touches memory in the page just below the
current bottom of the stack, one more 4 KiB page is mapped and the
instruction is retried. Any other access to unmapped memory is a memory
fault.

### System calls

A program makes a system call with `ecall`. It puts the call number in `a7`
and its argument in `a0`:

| `a7` | Action |
| --- | --- |
| 1 | Print `a0` as a signed integer |
| 5 | Print `int value? >` and read a decimal integer into `a0` (0 if none is read) |
| 10 | Exit with code 0 |
| 11 | Print the character whose code is the low byte of `a0` |
| 12 | Read one character into `a0` (-1 at end of input) |
| 93 | Exit with the code in `a0` |

Any other call number stops the program.

### Exit status

| Situation | Default | With `-x` |
| --- | --- | --- |
| Program ran to the end | 0 | the program's exit code |
| `--help` | 0 | 126 |
| Invalid arguments | 1 | 126 |
| File cannot be opened or loaded | 2 | 126 |
| Memory fault | 100 | 139 |
| Illegal instruction | 101 | 132 |

An address given to `-e` or `-l` that is not a number always exits with 1.

## The debugger

Start the debugger with `-d`. When it is enabled, an `ebreak` instruction
in the program also stops in it. At each stop it shows the current
instruction and all registers; at the `debug>` prompt you can use these
commands:

```
q               Exit the simulator
c               Continue (up to the next breakpoint if any)
s               Step in
n               Step over (a call through ra runs until it returns)
b <address>     Add a breakpoint at the specified address
bl              List all breakpoints
br <id>         Remove breakpoint number <id>
v               Print current CPU state
u <start> <len> Disassemble 'len' instructions from address 'start'
d <start> <len> Dump 'len' bytes from address 'start'
```

Any other input prints this list. End of input at the prompt exits the
simulator.

## Using it as a library

The parts of the simulator can be used on their own:

```python
from rvsim.memory import Memory
from rvsim.cpu import Cpu, CpuStatus
from rvsim.isa import disassemble

memory = Memory()
memory.map_area(0x1000, 0x100)
memory.write32(0x1000, 0x00500093)   # addi x1, x0, 5

cpu = Cpu(memory)
cpu.reset(0x1000)
print(disassemble(memory.read32(0x1000)))   # ADDI x1, x0, 5
assert cpu.tick() is CpuStatus.OK
print(cpu.get_register(1))                  # 5
```

- `rvsim.isa` decodes instruction fields and turns instruction words into
  text: `disassemble`, `Instruction`, `Reg`, `Opcode`, and the bit helpers
  `bits`, `sign_extend` and `arith_shift_right`.
- `rvsim.memory.Memory` is the sparse address space of zero-filled areas.
  `map_area` raises `AreaOverlapError` for overlapping areas; a read or
  write of memory that is not mapped raises `MappingError`. The
  `debug_read*` methods never raise and give all ones for unmapped memory.
- `rvsim.cpu.Cpu` runs one instruction per `tick()` and reports what
  happened as a `CpuStatus`; a fault or trap is reported again until
  `clear_last_fault()` is called.
- `rvsim.loader` provides `detect_exec_type`, `load_elf` and `load_binary`,
  which raise `LoaderError` or one of its subclasses `LoadMemoryError`,
  `InvalidFormatError` and `InvalidArchError`.
- `rvsim.debugger.Debugger` manages breakpoints, formats CPU state,
  disassembly and memory dumps, and runs the interactive commands
  (`handle_command`, `tick`).
- `rvsim.supervisor.Supervisor` maps the stack (`start`), handles the system
  calls, and runs a loaded program with `run()`.
- `rvsim.cli.main` is the `rvsim` command.

## What it does not do

rvsim only runs programs that are already built: it has no assembler or
compiler, so executables must be produced with a RISC-V toolchain. It
implements only RV32IM user-level instructions plus `ecall` and `ebreak`;
compressed instructions, `fence`, CSR instructions and privileged modes are
treated as illegal instructions.