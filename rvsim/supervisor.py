"""Supervisor: stack management and environment calls for the guest."""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TextIO

from .cpu import Cpu, CpuStatus
from .debugger import DebugResult, Debugger
from .isa import MASK32, Reg, to_signed32
from .memory import MemoryAccessError

_SYSCALL_PRINT_INT = 1
_SYSCALL_READ_INT = 5
_SYSCALL_EXIT_0 = 10
_SYSCALL_PRINT_CHAR = 11
_SYSCALL_READ_CHAR = 12
_SYSCALL_EXIT = 93


class SupervisorError(Exception):
    """The supervisor could not set up the machine."""


class SupervisorStatus(IntEnum):
    """State of the simulated program."""

    RUNNING = 0
    TERMINATED = 1
    KILLED = 2
    MEMORY_FAULT = CpuStatus.MEMORY_FAULT
    ILL_INST_FAULT = CpuStatus.ILL_INST_FAULT
    INVALID_SYSCALL = -1000


class Supervisor:
    """Runs a program on a CPU, servicing its system calls and growing its stack."""

    STACK_TOP = 0x80000000
    STACK_PAGE_SIZE = 4096

    def __init__(
        self,
        cpu: Cpu,
        debugger: Debugger | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.cpu = cpu
        self.debugger = debugger if debugger is not None else Debugger(cpu)
        self._stdin = stdin
        self._stdout = stdout
        self.stack_bottom = self.STACK_TOP
        self.exit_code = 0
        self._pending = ""

    @property
    def stdin(self) -> TextIO:
        return self._stdin if self._stdin is not None else sys.stdin

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def start(self) -> None:
        """Map the first stack page and point the stack pointer at it."""
        self.stack_bottom = self.STACK_TOP - self.STACK_PAGE_SIZE
        try:
            self.cpu.memory.map_area(self.stack_bottom, self.STACK_PAGE_SIZE)
        except MemoryAccessError as exc:
            raise SupervisorError(f"cannot map the stack: {exc}") from exc
        self.cpu.set_register(Reg.SP, self.STACK_TOP - 4)

    def expand_stack(self) -> None:
        """Map one more stack page if the last fault hit just below the stack."""
        fault = self.cpu.memory.last_fault_address
        if self.stack_bottom - self.STACK_PAGE_SIZE <= fault < self.stack_bottom:
            self.stack_bottom -= self.STACK_PAGE_SIZE
            try:
                self.cpu.memory.map_area(self.stack_bottom, self.STACK_PAGE_SIZE)
            except MemoryAccessError:
                pass

    def _getc(self) -> str:
        if not self._pending:
            self._pending = self.stdin.readline()
            if not self._pending:
                return ""
        ch, self._pending = self._pending[0], self._pending[1:]
        return ch

    def _ungetc(self, ch: str) -> None:
        if ch:
            self._pending = ch + self._pending

    def _read_int(self) -> int | None:
        ch = self._getc()
        while ch and ch.isspace():
            ch = self._getc()
        negative = False
        if ch in ("+", "-") and ch:
            negative = ch == "-"
            ch = self._getc()
        digits = ""
        while ch and ch in "0123456789":
            digits += ch
            ch = self._getc()
        self._ungetc(ch)
        if not digits:
            return None
        value = int(digits)
        return -value if negative else value

    def handle_env_call(self) -> SupervisorStatus:
        """Service the system call selected by register a7."""
        cpu = self.cpu
        syscall = cpu.get_register(Reg.A7)
        if syscall == _SYSCALL_PRINT_INT:
            self.stdout.write(str(to_signed32(cpu.get_register(Reg.A0))))
        elif syscall == _SYSCALL_READ_INT:
            self.stdout.write("int value? >")
            self.stdout.flush()
            value = self._read_int()
            cpu.set_register(Reg.A0, (value if value is not None else 0) & MASK32)
        elif syscall == _SYSCALL_EXIT_0:
            self.exit_code = 0
            return SupervisorStatus.TERMINATED
        elif syscall == _SYSCALL_PRINT_CHAR:
            self.stdout.write(chr(cpu.get_register(Reg.A0) & 0xFF))
        elif syscall == _SYSCALL_READ_CHAR:
            ch = self._getc()
            cpu.set_register(Reg.A0, ord(ch) if ch else MASK32)
        elif syscall == _SYSCALL_EXIT:
            self.exit_code = to_signed32(cpu.get_register(Reg.A0))
            return SupervisorStatus.TERMINATED
        else:
            return SupervisorStatus.INVALID_SYSCALL
        return SupervisorStatus.RUNNING

    def tick(self) -> SupervisorStatus:
        """Run the debugger hook and one CPU instruction."""
        if self.debugger.tick() is DebugResult.EXIT:
            return SupervisorStatus.KILLED

        cpu = self.cpu
        status = cpu.tick()
        if status == CpuStatus.MEMORY_FAULT:
            self.expand_stack()
            cpu.clear_last_fault()
            status = cpu.tick()

        if status == CpuStatus.ECALL_TRAP:
            result = self.handle_env_call()
            if result == SupervisorStatus.RUNNING:
                cpu.clear_last_fault()
            return result
        if status == CpuStatus.EBREAK_TRAP:
            if self.debugger.enabled:
                self.debugger.request_enter()
            cpu.clear_last_fault()
            return SupervisorStatus.RUNNING
        if status == CpuStatus.ILL_INST_FAULT:
            return SupervisorStatus.ILL_INST_FAULT
        if status == CpuStatus.MEMORY_FAULT:
            return SupervisorStatus.MEMORY_FAULT
        return SupervisorStatus.RUNNING

    def run(self) -> SupervisorStatus:
        """Tick until the program stops running and return the final status."""
        status = SupervisorStatus.RUNNING
        while status == SupervisorStatus.RUNNING:
            status = self.tick()
        return status