"""Interactive debugger: breakpoints, stepping and state inspection."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, TextIO

from .cpu import Cpu
from .isa import MASK32, Instruction, Opcode, Reg, disassemble

_ULONG_MAX = (1 << 64) - 1
_NUMBER_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")

_HELP = """\
Debugger commands:
q               Exit the simulator
c               Exit the debugger and continue (up to the next
                  breakpoint if any)
s               Step in
n               Step over
b <address>     Add a breakpoint at the specified address
bl              List all breakpoints
br <id>         Remove breakpoint number <id>
v               Print current CPU state
u <start> <len> Disassemble 'len' instructions from address 'start'
d <start> <len> Dump 'len' bytes from address 'start'
"""


def _strtoul(text: str) -> tuple[int, str] | None:
    """Parse a leading unsigned number in C notation (decimal, 0x hex, 0 octal).

    Returns the value and the unparsed remainder, or None if no number is there.
    """
    match = _NUMBER_RE.match(text)
    if match is None:
        return None
    sign, digits = match.groups()
    value = min(int(digits, 0) if not digits.startswith("0") or len(digits) == 1
                or digits[1] in "xX" else int(digits, 8), _ULONG_MAX)
    if sign == "-":
        value = (-value) & _ULONG_MAX
    return value, text[match.end():]


class DebugResult(Enum):
    """What the simulation should do after a debugger tick."""

    CONTINUE = 0
    EXIT = 1


@dataclass(frozen=True)
class Breakpoint:
    """A breakpoint on an instruction address."""

    id: int
    address: int


class _Trigger(Enum):
    NONE = auto()
    BREAKPOINT = auto()
    STEP_IN = auto()
    STEP_OVER = auto()
    USER = auto()


class Debugger:
    """A command-line debugger attached to a CPU.

    Messages go to ``stderr``, the command help to ``stdout``, and commands
    are read from ``stdin``; unset streams default to the process streams.
    """

    def __init__(
        self,
        cpu: Cpu,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.cpu = cpu
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr
        self._enabled = False
        self._user_requests_enter = False
        self._step_in = False
        self._step_over = False
        self._step_over_addr = 0
        self._breakpoints: list[Breakpoint] = []
        self._next_id = 0

    @property
    def stdin(self) -> TextIO:
        return self._stdin if self._stdin is not None else sys.stdin

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> bool:
        """Enable the debugger; return whether it was already enabled."""
        old, self._enabled = self._enabled, True
        return old

    def disable(self) -> bool:
        """Disable the debugger; return whether it was enabled."""
        old, self._enabled = self._enabled, False
        return old

    def request_enter(self) -> None:
        """Make the next tick enter the interactive prompt."""
        self._user_requests_enter = True

    def log(self, message: str) -> int:
        """Write a message to stderr if enabled; return the characters written."""
        if not self._enabled:
            return 0
        return self.stderr.write(message)

    def add_breakpoint(self, address: int) -> int:
        """Add a breakpoint and return its identifier."""
        bp = Breakpoint(self._next_id, address & MASK32)
        self._next_id += 1
        self._breakpoints.insert(0, bp)
        return bp.id

    def remove_breakpoint(self, bp_id: int) -> bool:
        """Remove a breakpoint; return False if there is no such breakpoint."""
        for bp in self._breakpoints:
            if bp.id == bp_id:
                self._breakpoints.remove(bp)
                return True
        return False

    def get_breakpoint(self, bp_id: int) -> int | None:
        """Return the address of a breakpoint, or None if it does not exist."""
        return next((bp.address for bp in self._breakpoints if bp.id == bp_id), None)

    def breakpoints(self) -> Iterator[Breakpoint]:
        """Iterate over the breakpoints, most recently added first."""
        return iter(list(self._breakpoints))

    def _check_trigger(self) -> tuple[_Trigger, Breakpoint | None]:
        if not self._enabled:
            return _Trigger.NONE, None
        if self._user_requests_enter:
            return _Trigger.USER, None
        if self._step_in:
            return _Trigger.STEP_IN, None
        pc = self.cpu.get_register(Reg.PC)
        if self._step_over and self._step_over_addr == pc:
            return _Trigger.STEP_OVER, None
        for bp in self._breakpoints:
            if bp.address == pc:
                return _Trigger.BREAKPOINT, bp
        return _Trigger.NONE, None

    def cpu_status(self) -> str:
        """Describe the current instruction and all the registers."""
        pc = self.cpu.get_register(Reg.PC)
        word = self.cpu.memory.debug_read32(pc)
        parts = [f"PC : {pc:08x}: {word:08x} {disassemble(word)}\n"]
        for reg in range(Reg.X0, Reg.X31 + 1):
            parts.append(f"X{reg:<2d}: {self.cpu.get_register(reg):08x}")
            parts.append("\n" if (reg + 1) % 4 == 0 else " ")
        return "".join(parts)

    def disassemble(self, address: int, count: int) -> str:
        """Disassemble ``count`` instructions starting at ``address``."""
        lines = []
        for i in range(count):
            cur = (address + 4 * i) & MASK32
            word = self.cpu.memory.debug_read32(cur)
            lines.append(f"{cur:08x}:  {word:08x}  {disassemble(word)}\n")
        return "".join(lines)

    def memory_dump(self, address: int, length: int) -> str:
        """Hex dump of ``length`` bytes from ``address``, 16 bytes per line."""
        mem = self.cpu.memory
        lines = []
        for row in range(0, length, 16):
            start = (address + row) & MASK32
            count = min(16, length - row)
            data = " ".join(
                f"{mem.debug_read8((start + i) & MASK32):02x}" for i in range(count)
            )
            lines.append(f"{start:08x}: {data}\n")
        return "".join(lines)

    def _step_over_command(self) -> None:
        pc = self.cpu.get_register(Reg.PC)
        inst = Instruction(self.cpu.memory.debug_read32(pc))
        is_call = (
            inst.opcode == Opcode.JAL
            or (inst.opcode == Opcode.JALR and inst.funct3 == 0)
        ) and inst.rd == Reg.RA
        if is_call:
            self._step_over = True
            self._step_over_addr = (pc + 4) & MASK32
        else:
            self._step_in = True

    def _parse_two(self, args: str) -> tuple[int, int] | None:
        first = _strtoul(args)
        if first is None:
            self.stderr.write("First argument is not a valid number\n")
            return None
        second = _strtoul(first[1])
        if second is None:
            self.stderr.write("Second argument is not a valid number\n")
            return None
        return first[0], second[0]

    def _cmd_add_breakpoint(self, args: str) -> None:
        parsed = _strtoul(args)
        if parsed is None:
            self.stderr.write("First argument is not a valid number\n")
            return
        addr = parsed[0]
        bp_id = self.add_breakpoint(addr)
        self.stderr.write(f"Added breakpoint {bp_id} at address 0x{addr:08x}\n")

    def _cmd_remove_breakpoint(self, args: str) -> None:
        parsed = _strtoul(args)
        if parsed is None:
            self.stderr.write("First argument is not a valid number\n")
            return
        bp_id = parsed[0]
        if self.remove_breakpoint(bp_id):
            self.stderr.write(f"Removed breakpoint {bp_id}\n")
        else:
            self.stderr.write(f"Breakpoint {bp_id} not found\n")

    def _cmd_list_breakpoints(self) -> None:
        if not self._breakpoints:
            self.stderr.write("No breakpoints defined\n")
            return
        for bp in self._breakpoints:
            self.stderr.write(f"Breakpoint {bp.id:<8d} Address 0x{bp.address:08x}\n")

    def _cmd_disassemble(self, args: str) -> None:
        parsed = self._parse_two(args)
        if parsed is not None:
            self.stderr.write(self.disassemble(*parsed))

    def _cmd_memory_dump(self, args: str) -> None:
        parsed = self._parse_two(args)
        if parsed is None:
            return
        address, length = parsed
        if length == 0:
            self.stderr.write("Length is zero\n")
        else:
            self.stderr.write(self.memory_dump(address, length))

    def handle_command(self, line: str) -> DebugResult | None:
        """Run one debugger command.

        Returns None to keep reading commands, or the result that ends the
        interactive session.
        """
        rest = line.lstrip()
        if rest.startswith("q"):
            return DebugResult.EXIT
        if rest.startswith("c"):
            return DebugResult.CONTINUE
        if rest.startswith("s"):
            self._step_in = True
            return DebugResult.CONTINUE
        if rest.startswith("n"):
            self._step_over_command()
            return DebugResult.CONTINUE
        if rest.startswith("bl"):
            self._cmd_list_breakpoints()
        elif rest.startswith("br"):
            self._cmd_remove_breakpoint(rest[2:])
        elif rest.startswith("b"):
            self._cmd_add_breakpoint(rest[1:])
        elif rest.startswith("v"):
            self.stderr.write(self.cpu_status())
        elif rest.startswith("u"):
            self._cmd_disassemble(rest[1:])
        elif rest.startswith("d"):
            self._cmd_memory_dump(rest[1:])
        elif rest:
            self.stdout.write(_HELP)
        return None

    def tick(self) -> DebugResult:
        """Enter the interactive prompt if a stop condition holds."""
        trigger, bp = self._check_trigger()
        if trigger is _Trigger.NONE:
            return DebugResult.CONTINUE
        if bp is not None:
            self.stderr.write(
                f"Stopped at breakpoint #{bp.id} (PC=0x{bp.address:08x})\n"
            )
        self._step_in = False
        self._step_over = False
        self._user_requests_enter = False
        self.stderr.write(self.cpu_status())

        while True:
            self.stderr.write("debug> ")
            self.stderr.flush()
            line = self.stdin.readline()
            if not line:
                return DebugResult.EXIT
            result = self.handle_command(line)
            if result is not None:
                return result