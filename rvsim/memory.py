"""Sparse, area-based little-endian memory for the simulated machine."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass


class MemoryAccessError(Exception):
    """Base class for memory errors; ``address`` is the offending address."""

    def __init__(self, address: int, message: str) -> None:
        super().__init__(message)
        self.address = address


class AreaOverlapError(MemoryAccessError):
    """A new area would overlap an area that is already mapped."""


class MappingError(MemoryAccessError):
    """An access touched memory that is not mapped."""


@dataclass
class _Area:
    base: int
    data: bytearray

    @property
    def end(self) -> int:
        return self.base + len(self.data)


class Memory:
    """A set of non-overlapping, zero-initialised memory areas."""

    def __init__(self) -> None:
        self._areas: list[_Area] = []
        self._bases: list[int] = []
        self.last_fault_address = 0

    def map_area(self, base: int, extent: int) -> bytearray:
        """Map ``extent`` zeroed bytes at ``base`` and return their buffer.

        Raises AreaOverlapError if the range overlaps an existing area.
        """
        if extent == 0:
            return bytearray()
        idx = bisect_left(self._bases, base + extent)
        if idx > 0 and base < self._areas[idx - 1].end:
            raise AreaOverlapError(base, f"area at 0x{base:08x} overlaps a mapped area")
        area = _Area(base, bytearray(extent))
        self._areas.insert(idx, area)
        self._bases.insert(idx, base)
        return area.data

    def _find(self, addr: int, size: int) -> _Area | None:
        idx = bisect_right(self._bases, addr) - 1
        if idx >= 0:
            area = self._areas[idx]
            if area.base <= addr < area.end and addr + size <= area.end:
                return area
        return None

    def is_mapped(self, addr: int, size: int) -> bool:
        """Tell whether ``size`` bytes at ``addr`` lie inside one mapped area."""
        return self._find(addr, size) is not None

    def _read(self, addr: int, size: int) -> int:
        area = self._find(addr, size)
        if area is None:
            self.last_fault_address = addr
            raise MappingError(addr, f"read from unmapped address 0x{addr:08x}")
        off = addr - area.base
        return int.from_bytes(area.data[off:off + size], "little")

    def _debug_read(self, addr: int, size: int) -> int:
        area = self._find(addr, size)
        if area is None:
            return (1 << (8 * size)) - 1
        off = addr - area.base
        return int.from_bytes(area.data[off:off + size], "little")

    def _write(self, addr: int, size: int, value: int) -> None:
        area = self._find(addr, size)
        if area is None:
            self.last_fault_address = addr
            raise MappingError(addr, f"write to unmapped address 0x{addr:08x}")
        off = addr - area.base
        value &= (1 << (8 * size)) - 1
        area.data[off:off + size] = value.to_bytes(size, "little")

    def read8(self, addr: int) -> int:
        return self._read(addr, 1)

    def read16(self, addr: int) -> int:
        return self._read(addr, 2)

    def read32(self, addr: int) -> int:
        return self._read(addr, 4)

    def debug_read8(self, addr: int) -> int:
        """Read a byte without recording faults; unmapped reads give all ones."""
        return self._debug_read(addr, 1)

    def debug_read16(self, addr: int) -> int:
        """Read a halfword without recording faults; unmapped reads give all ones."""
        return self._debug_read(addr, 2)

    def debug_read32(self, addr: int) -> int:
        """Read a word without recording faults; unmapped reads give all ones."""
        return self._debug_read(addr, 4)

    def write8(self, addr: int, value: int) -> None:
        self._write(addr, 1, value)

    def write16(self, addr: int, value: int) -> None:
        self._write(addr, 2, value)

    def write32(self, addr: int, value: int) -> None:
        self._write(addr, 4, value)