import pytest

from rvsim.memory import AreaOverlapError, MappingError, Memory, MemoryAccessError


@pytest.fixture
def mem():
    m = Memory()
    m.map_area(0x1000, 0x100)
    return m


def test_new_area_is_zeroed(mem):
    assert mem.read32(0x1000) == 0
    assert mem.read8(0x10FF) == 0


@pytest.mark.parametrize(
    "write,read,value",
    [
        ("write8", "read8", 0xAB),
        ("write16", "read16", 0xBEEF),
        ("write32", "read32", 0xDEADBEEF),
    ],
)
def test_write_read_round_trip(mem, write, read, value):
    getattr(mem, write)(0x1010, value)
    assert getattr(mem, read)(0x1010) == value


def test_little_endian_layout(mem):
    mem.write32(0x1020, 0x11223344)
    assert mem.read8(0x1020) == 0x44
    assert mem.read8(0x1023) == 0x11
    assert mem.read16(0x1022) == 0x1122


def test_write_truncates_value(mem):
    mem.write8(0x1000, 0x1FF)
    assert mem.read8(0x1000) == 0xFF
    assert mem.read8(0x1001) == 0


def test_map_area_returns_live_buffer():
    m = Memory()
    buf = m.map_area(0x2000, 8)
    buf[0:4] = bytes([1, 2, 3, 4])
    assert m.read32(0x2000) == int.from_bytes(bytes([1, 2, 3, 4]), "little")
    m.write8(0x2004, 9)
    assert buf[4] == 9


def test_unmapped_read_raises_and_records(mem):
    with pytest.raises(MappingError) as exc:
        mem.read32(0x5000)
    assert exc.value.address == 0x5000
    assert mem.last_fault_address == 0x5000


def test_unmapped_write_raises_and_records(mem):
    with pytest.raises(MappingError):
        mem.write16(0x0FFF, 1)
    assert mem.last_fault_address == 0x0FFF


def test_access_across_area_end_fails(mem):
    with pytest.raises(MappingError):
        mem.read32(0x10FE)
    assert mem.read16(0x10FE) == 0


def test_mapping_error_is_memory_access_error(mem):
    with pytest.raises(MemoryAccessError):
        mem.read8(0)


def test_debug_read_unmapped_returns_all_ones(mem):
    mem.last_fault_address = 0x1234
    assert mem.debug_read8(0x9000) == 0xFF
    assert mem.debug_read16(0x9000) == 0xFFFF
    assert mem.debug_read32(0x9000) == 0xFFFFFFFF
    assert mem.last_fault_address == 0x1234


def test_debug_read_mapped(mem):
    mem.write32(0x1004, 0xCAFEBABE)
    assert mem.debug_read32(0x1004) == 0xCAFEBABE
    assert mem.debug_read16(0x1006) == 0xCAFE
    assert mem.debug_read8(0x1004) == 0xBE


@pytest.mark.parametrize("base,extent", [(0x1000, 1), (0x0F80, 0x100), (0x10FF, 0x10), (0x0F00, 0x400)])
def test_overlap_rejected(mem, base, extent):
    with pytest.raises(AreaOverlapError) as exc:
        mem.map_area(base, extent)
    assert exc.value.address == base


def test_adjacent_areas_allowed(mem):
    mem.map_area(0x1100, 0x10)
    mem.map_area(0x0F00, 0x100)
    mem.write32(0x10FC, 7)
    mem.write32(0x1100, 8)
    assert mem.read32(0x10FC) == 7
    assert mem.read32(0x1100) == 8
    assert mem.read8(0x0F00) == 0


def test_access_spanning_two_areas_fails(mem):
    mem.map_area(0x1100, 0x10)
    assert not mem.is_mapped(0x10FE, 4)
    with pytest.raises(MappingError):
        mem.read32(0x10FE)


def test_zero_extent_maps_nothing():
    m = Memory()
    assert len(m.map_area(0x3000, 0)) == 0
    assert not m.is_mapped(0x3000, 1)


def test_is_mapped(mem):
    assert mem.is_mapped(0x1000, 0x100)
    assert not mem.is_mapped(0x1000, 0x101)
    assert not mem.is_mapped(0x0FFF, 1)


def test_gap_between_areas_unmapped(mem):
    mem.map_area(0x2000, 0x10)
    with pytest.raises(MappingError):
        mem.read8(0x1800)
    assert mem.read8(0x2000) == 0