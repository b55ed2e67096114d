import pytest

from rvsim.isa import (
    Instruction,
    Opcode,
    Reg,
    arith_shift_right,
    bits,
    disassemble,
    sign_extend,
    to_signed32,
)


def _r(funct7, rs2, rs1, funct3, rd, opcode=Opcode.OP):
    return (funct7 << 25) | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode


def _i(imm, rs1, funct3, rd, opcode):
    return ((imm & 0xFFF) << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode


def _s(imm, rs2, rs1, funct3):
    imm &= 0xFFF
    return (
        ((imm >> 5) << 25)
        | (rs2 << 20)
        | (rs1 << 15)
        | (funct3 << 12)
        | ((imm & 0x1F) << 7)
        | Opcode.STORE
    )


def _b(imm, rs2, rs1, funct3):
    imm &= 0x1FFF
    return (
        (((imm >> 12) & 1) << 31)
        | (((imm >> 5) & 0x3F) << 25)
        | (rs2 << 20)
        | (rs1 << 15)
        | (funct3 << 12)
        | (((imm >> 1) & 0xF) << 8)
        | (((imm >> 11) & 1) << 7)
        | Opcode.BRANCH
    )


def _j(imm, rd):
    imm &= 0x1FFFFF
    return (
        (((imm >> 20) & 1) << 31)
        | (((imm >> 1) & 0x3FF) << 21)
        | (((imm >> 11) & 1) << 20)
        | (((imm >> 12) & 0xFF) << 12)
        | (rd << 7)
        | Opcode.JAL
    )


@pytest.mark.parametrize("value", [0, 0x12345678, 0xFFFFFFFF, 0x80000001])
def test_bits_halves_recombine(value):
    assert bits(value, 0, 16) | (bits(value, 16, 32) << 16) == value


def test_sign_extend_negative():
    assert sign_extend(0x800, 12) == 0xFFFFF800


def test_sign_extend_positive_unchanged():
    assert sign_extend(0x7FF, 12) == 0x7FF


@pytest.mark.parametrize("width", [0, 32])
def test_sign_extend_full_width_is_identity(width):
    assert sign_extend(0x80000000, width) == 0x80000000


def test_arith_shift_right_negative():
    assert arith_shift_right(0x80000000, 4) == 0xF8000000


@pytest.mark.parametrize("value", [0, 1, 0x7FFFFFFF, 0x80000000, 0xFFFFFFFF, 0xDEADBEEF])
@pytest.mark.parametrize("amount", [0, 1, 5, 31])
def test_arith_shift_right_matches_signed_shift(value, amount):
    assert to_signed32(arith_shift_right(value, amount)) == to_signed32(value) >> amount


def test_arith_shift_amount_modulo_32():
    assert arith_shift_right(0x80000000, 33) == arith_shift_right(0x80000000, 1)


def test_reg_aliases_decode_as_numbered_registers():
    word = _r(0x00, Reg.A7, Reg.SP, 0, Reg.RA)
    assert disassemble(word) == "ADD x1, x2, x17"
    inst = Instruction(word)
    assert inst.rd == Reg.X1
    assert inst.rs1 == Reg.X2
    assert inst.rs2 == Reg.X17
    assert Reg.PC == 32


def test_register_fields_round_trip():
    inst = Instruction(_r(0x01, 21, 13, 6, 7))
    assert (inst.funct7, inst.rs2, inst.rs1, inst.funct3, inst.rd) == (0x01, 21, 13, 6, 7)
    assert inst.opcode == Opcode.OP


@pytest.mark.parametrize("imm", [-2048, -1, 0, 5, 2047])
def test_i_immediate_round_trip(imm):
    inst = Instruction(_i(imm, 1, 0, 2, Opcode.OPIMM))
    assert to_signed32(inst.i_imm_sext) == imm


@pytest.mark.parametrize("imm", [-2048, -4, 0, 12, 2047])
def test_s_immediate_round_trip(imm):
    inst = Instruction(_s(imm, 3, 4, 2))
    assert to_signed32(inst.s_imm_sext) == imm


@pytest.mark.parametrize("imm", [-4096, -16, 0, 8, 4094])
def test_b_immediate_round_trip(imm):
    inst = Instruction(_b(imm, 2, 1, 0))
    assert to_signed32(inst.b_imm_sext) == imm


@pytest.mark.parametrize("imm", [-(1 << 20), -8, 0, 2048, (1 << 20) - 2])
def test_j_immediate_round_trip(imm):
    inst = Instruction(_j(imm, 1))
    assert to_signed32(inst.j_imm_sext) == imm


@pytest.mark.parametrize(
    "mnem,funct7,funct3",
    [
        ("ADD", 0x00, 0),
        ("SLTU", 0x00, 3),
        ("AND", 0x00, 7),
        ("SUB", 0x20, 0),
        ("SRA", 0x20, 5),
        ("MUL", 0x01, 0),
        ("MULHU", 0x01, 3),
        ("REMU", 0x01, 7),
    ],
)
def test_disassemble_op(mnem, funct7, funct3):
    assert disassemble(_r(funct7, 3, 2, funct3, 1)) == f"{mnem} x1, x2, x3"


@pytest.mark.parametrize("funct7,funct3", [(0x20, 1), (0x20, 7), (0x10, 0)])
def test_disassemble_op_illegal(funct7, funct3):
    assert disassemble(_r(funct7, 3, 2, funct3, 1)) == "<illegal>"


def test_disassemble_addi_negative():
    assert disassemble(_i(-5, 4, 0, 3, Opcode.OPIMM)) == f"ADDI x3, x4, {-5}"


def test_disassemble_sltiu_masks_immediate():
    assert disassemble(_i(-1, 2, 3, 1, Opcode.OPIMM)) == f"SLTIU x1, x2, {0x7FF}"


def test_disassemble_shifts():
    assert disassemble(_i(3, 2, 1, 1, Opcode.OPIMM)) == "SLLI x1, x2, 3"
    assert disassemble(_i(3, 2, 5, 1, Opcode.OPIMM)) == "SRLI x1, x2, 3"
    assert disassemble(_i((0x20 << 5) | 3, 2, 5, 1, Opcode.OPIMM)) == "SRAI x1, x2, 3"


def test_disassemble_shift_illegal():
    assert disassemble(_i((0x20 << 5) | 3, 2, 1, 1, Opcode.OPIMM)) == "<illegal>"
    assert disassemble(_i((0x10 << 5) | 3, 2, 5, 1, Opcode.OPIMM)) == "<illegal>"


def test_disassemble_load_store():
    assert disassemble(_i(-4, 2, 2, 5, Opcode.LOAD)) == f"LW x5, {-4}(x2)"
    assert disassemble(_i(8, 2, 4, 5, Opcode.LOAD)) == "LBU x5, 8(x2)"
    assert disassemble(_s(12, 7, 2, 2)) == "SW x7, 12(x2)"
    assert disassemble(_s(-1, 7, 2, 0)) == f"SB x7, {-1}(x2)"


def test_disassemble_load_store_illegal():
    assert disassemble(_i(0, 2, 3, 5, Opcode.LOAD)) == "<illegal>"
    assert disassemble(_s(0, 7, 2, 3)) == "<illegal>"


def test_disassemble_branch():
    assert disassemble(_b(-16, 2, 1, 1)) == f"BNE x1, x2, *{-16:+d}"
    assert disassemble(_b(8, 4, 3, 7)) == f"BGEU x3, x4, *{8:+d}"
    assert disassemble(_b(8, 4, 3, 2)) == "<illegal>"


def test_disassemble_jumps():
    assert disassemble(_j(-8, 1)) == f"JAL x1, *{-8:+d}"
    assert disassemble(_i(0, 1, 0, 0, Opcode.JALR)) == "JALR x0, 0(x1)"
    assert disassemble(_i(0, 1, 1, 0, Opcode.JALR)) == "<illegal>"


def test_disassemble_upper_immediates():
    word = (0x12345 << 12) | (5 << 7)
    assert disassemble(word | Opcode.LUI) == f"LUI x5, 0x{0x12345:05x}"
    assert disassemble(word | Opcode.AUIPC) == f"AUIPC x5, 0x{0x12345:05x}"


def test_disassemble_system():
    assert disassemble(Opcode.SYSTEM) == "ECALL"
    assert disassemble(_i(1, 0, 0, 0, Opcode.SYSTEM)) == "EBREAK"
    assert disassemble(_i(2, 0, 0, 0, Opcode.SYSTEM)) == "<illegal>"
    assert disassemble(_i(0, 0, 1, 0, Opcode.SYSTEM)) == "<illegal>"


@pytest.mark.parametrize("word", [0, 0xFFFFFFFF, 0x7F])
def test_disassemble_unknown_opcode(word):
    assert disassemble(word) == "<illegal>"