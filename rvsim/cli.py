"""Command-line entry point of the simulator."""

from __future__ import annotations

import getopt
import logging
import sys
from enum import IntEnum

from .cpu import Cpu
from .debugger import Debugger, _strtoul
from .isa import MASK32, Reg
from .loader import (
    ExecFormat,
    InvalidArchError,
    InvalidFormatError,
    LoaderError,
    detect_exec_type,
    load_binary,
    load_elf,
)
from .supervisor import Supervisor, SupervisorError, SupervisorStatus

_PROG = "rvsim"


class SimExit(IntEnum):
    """Reasons the simulator exits."""

    SUCCESS = 0
    HELP = 1
    INVALID_ARGS = 2
    INVALID_FILE = 3
    SIGSEGV = 4
    SIGILL = 5


_NORMAL_CODES = (0, 0, 1, 2, 100, 101)
_POSIX_CODES = (0, 126, 126, 126, 128 + 11, 128 + 4)


def exit_code(code: int, to_posix: bool) -> int:
    """Map an exit reason to a process exit code; unknown codes pass through."""
    if not 0 <= code < len(SimExit):
        return code
    return (_POSIX_CODES if to_posix else _NORMAL_CODES)[code]


def usage(name: str) -> None:
    """Print the command-line help."""
    print("RISC-V RV32IM simulator")
    print(f"usage: {name} [options] executable\n")
    print("Options:")
    print("  -d, --debug           Enters debug mode before starting execution")
    print("  -e, --entry=ADDR      Force the entry point to ADDR")
    print("  -l, --load-addr=ADDR  Sets the executable loading address (only")
    print("                          for executables in raw binary format)")
    print("  -x, --prg-exit-code   Exits the simulator with the same exit code")
    print("                          as the simulated program. In case of faults")
    print("                          produces POSIX-style exit codes.")
    print("  -h, --help            Displays available options")


def _address(text: str) -> int | None:
    parsed = _strtoul(text)
    return None if parsed is None else parsed[0] & MASK32


def main(argv: list[str] | None = None) -> int:
    """Run the simulator; return the process exit code."""
    if argv is None:
        argv = sys.argv[1:]
    name = _PROG

    debug = False
    entry = 0
    entry_is_set = False
    load = 0
    prg_exit_code = False

    try:
        opts, args = getopt.gnu_getopt(
            argv,
            "de:hl:x",
            ["debug", "entry=", "help", "load-addr=", "prg-exit-code"],
        )
    except getopt.GetoptError as exc:
        print(f"{name}: {exc}", file=sys.stderr)
        usage(name)
        return exit_code(SimExit.INVALID_ARGS, prg_exit_code)

    for opt, value in opts:
        if opt in ("-d", "--debug"):
            debug = True
        elif opt in ("-e", "--entry"):
            entry_is_set = True
            parsed = _address(value)
            if parsed is None:
                print("Invalid entry address", file=sys.stderr)
                return 1
            entry = parsed
        elif opt in ("-l", "--load-addr"):
            parsed = _address(value)
            if parsed is None:
                print("Invalid load address", file=sys.stderr)
                return 1
            load = parsed
        elif opt in ("-x", "--prg-exit-code"):
            prg_exit_code = True
        else:
            usage(name)
            return exit_code(SimExit.HELP, prg_exit_code)

    if not args:
        usage(name)
        return exit_code(SimExit.INVALID_ARGS, prg_exit_code)
    if len(args) > 1:
        print("Cannot load more than one file, exiting.", file=sys.stderr)
        return exit_code(SimExit.INVALID_ARGS, prg_exit_code)
    path = args[0]

    cpu = Cpu()
    debugger = Debugger(cpu)
    if debug:
        debugger.enable()
        logging.basicConfig(stream=sys.stderr, level=logging.DEBUG, format="%(message)s")

    try:
        fmt = detect_exec_type(path)
    except LoaderError:
        print("Could not open executable, exiting.", file=sys.stderr)
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)

    try:
        if fmt is ExecFormat.BINARY:
            load_binary(cpu, path, load, entry if entry_is_set else load)
        else:
            load_elf(cpu, path)
            if entry_is_set:
                cpu.set_register(Reg.PC, entry)
    except InvalidArchError:
        print("Not a valid RISC-V executable, exiting.", file=sys.stderr)
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)
    except InvalidFormatError:
        print("Unsupported executable, exiting.", file=sys.stderr)
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)
    except LoaderError:
        print("Error during executable loading, exiting.", file=sys.stderr)
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)

    supervisor = Supervisor(cpu, debugger)
    try:
        supervisor.start()
        status = SupervisorStatus.RUNNING
    except SupervisorError:
        status = SupervisorStatus.MEMORY_FAULT

    if debug:
        debugger.request_enter()

    if status == SupervisorStatus.RUNNING:
        status = supervisor.run()
    sys.stdout.flush()

    if status == SupervisorStatus.MEMORY_FAULT:
        print(
            f"Memory fault at address 0x{cpu.memory.last_fault_address:08x}, "
            "execution stopped.",
            file=sys.stderr,
        )
        return exit_code(SimExit.SIGSEGV, prg_exit_code)
    if status == SupervisorStatus.ILL_INST_FAULT:
        print(
            f"Illegal instruction at address 0x{cpu.get_register(Reg.PC):08x}",
            file=sys.stderr,
        )
        return exit_code(SimExit.SIGILL, prg_exit_code)
    if prg_exit_code:
        return supervisor.exit_code
    return 0


if __name__ == "__main__":
    raise SystemExit(main())