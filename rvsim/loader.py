"""Loading raw binary and ELF executables into the simulated machine."""

from __future__ import annotations

import logging
import os
import struct
from enum import Enum

from .cpu import Cpu
from .memory import MemoryAccessError

log = logging.getLogger(__name__)

_MAX_BINARY_SIZE = 0x8000000

_ELF_MAGIC = b"\x7fELF"
_ELFCLASS32 = 1
_ELFDATA2LSB = 1
_ET_EXEC = 2
_EM_RISCV = 0xF3
_PT_NULL = 0
_PT_LOAD = 1
_PT_NOTE = 4

_EHDR = struct.Struct("<16sHHIIIIIHHHHHH")
_PHDR = struct.Struct("<8I")


class LoaderError(Exception):
    """The executable could not be read."""


class LoadMemoryError(LoaderError):
    """The executable's memory could not be mapped."""


class InvalidFormatError(LoaderError):
    """The file is not a supported executable."""


class InvalidArchError(LoaderError):
    """The executable is not for RISC-V."""


class ExecFormat(Enum):
    """Detected executable file formats."""

    BINARY = "binary"
    ELF = "elf"


def _map(cpu: Cpu, base: int, size: int) -> bytearray:
    try:
        return cpu.memory.map_area(base, size)
    except MemoryAccessError as exc:
        raise LoadMemoryError(str(exc)) from exc


def load_binary(cpu: Cpu, path: str | os.PathLike, base_addr: int, entry: int) -> None:
    """Map a raw binary at ``base_addr`` and reset the CPU to ``entry``."""
    log.debug("Loading raw binary file %r at address %d", str(path), base_addr)
    try:
        with open(path, "rb") as fp:
            data = fp.read(_MAX_BINARY_SIZE + 1)
    except OSError as exc:
        raise LoaderError(f"cannot read {path}: {exc}") from exc
    if len(data) > _MAX_BINARY_SIZE:
        raise LoaderError(f"{path} is too large")
    if not data:
        raise LoaderError(f"{path} is empty")
    buf = _map(cpu, base_addr, len(data))
    buf[:] = data
    cpu.reset(entry)


def load_elf(cpu: Cpu, path: str | os.PathLike) -> None:
    """Load the segments of a 32-bit little-endian RISC-V ELF executable."""
    log.debug("Loading ELF file %r", str(path))
    try:
        with open(path, "rb") as fp:
            _load_elf_from(cpu, fp)
    except OSError as exc:
        raise LoaderError(f"cannot read {path}: {exc}") from exc


def _read_exact(fp, size: int) -> bytes:
    data = fp.read(size)
    if len(data) < size:
        raise LoaderError("unexpected end of file")
    return data


def _load_elf_from(cpu: Cpu, fp) -> None:
    (
        ident, e_type, e_machine, e_version, e_entry, e_phoff, _e_shoff,
        _e_flags, _e_ehsize, e_phentsize, e_phnum, _e_shentsize, _e_shnum,
        _e_shstrndx,
    ) = _EHDR.unpack(_read_exact(fp, _EHDR.size))

    if (
        ident[:4] != _ELF_MAGIC
        or ident[4] != _ELFCLASS32
        or ident[5] != _ELFDATA2LSB
        or ident[6] != 1
    ):
        raise InvalidFormatError("not a 32-bit little-endian ELF file")
    if e_type != _ET_EXEC or e_version != 1:
        raise InvalidFormatError("not an ELF executable")
    if e_machine != _EM_RISCV:
        raise InvalidArchError("not a RISC-V executable")

    for index in range(e_phnum):
        fp.seek(e_phoff + index * e_phentsize)
        (p_type, p_offset, p_vaddr, _p_paddr, p_filesz, p_memsz, _p_flags,
         _p_align) = _PHDR.unpack(_read_exact(fp, _PHDR.size))

        if p_type in (_PT_NULL, _PT_NOTE):
            continue
        if p_type != _PT_LOAD:
            raise InvalidFormatError(f"unsupported segment type {p_type}")

        log.debug(
            "Loaded section at 0x%08x (size=0x%08x) to 0x%08x (size=0x%08x)",
            p_offset, p_filesz, p_vaddr, p_memsz,
        )
        if p_memsz == 0:
            continue
        buf = _map(cpu, p_vaddr, p_memsz)
        if p_filesz > 0:
            fp.seek(p_offset)
            size = min(p_memsz, p_filesz)
            buf[:size] = _read_exact(fp, size)

    log.debug("Setting the entry point to 0x%x", e_entry)
    cpu.reset(e_entry)


def detect_exec_type(path: str | os.PathLike) -> ExecFormat:
    """Tell an ELF file from a raw binary by its first four bytes."""
    try:
        with open(path, "rb") as fp:
            head = fp.read(4)
    except OSError as exc:
        raise LoaderError(f"cannot read {path}: {exc}") from exc
    if len(head) < 4:
        raise LoaderError(f"{path} is too short to be an executable")
    return ExecFormat.ELF if head == _ELF_MAGIC else ExecFormat.BINARY