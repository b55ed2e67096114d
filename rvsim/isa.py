"""RV32IM instruction-set definitions, field decoding and disassembly."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

XLEN = 32
MASK32 = 0xFFFFFFFF


def bits(value: int, lo: int, hi: int) -> int:
    """Return bits ``lo`` (inclusive) to ``hi`` (exclusive) of a 32-bit value."""
    return ((value & MASK32) >> lo) & ((1 << (hi - lo)) - 1)


def sign_extend(value: int, width: int) -> int:
    """Sign-extend the low ``width`` bits of ``value`` to a 32-bit word.

    A width that is a multiple of 32 leaves the value unchanged.
    """
    width %= 32
    value &= MASK32
    if width == 0:
        return value
    if value & (1 << (width - 1)):
        value |= (MASK32 << width) & MASK32
    return value


def arith_shift_right(value: int, amount: int) -> int:
    """Arithmetic right shift of a 32-bit word; the amount is taken modulo 32."""
    amount %= 32
    return sign_extend((value & MASK32) >> amount, 32 - amount)


def to_signed32(value: int) -> int:
    """Interpret a 32-bit word as a two's complement integer."""
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


class Reg(IntEnum):
    """CPU register identifiers, with their ABI aliases."""

    X0 = 0
    X1 = 1
    X2 = 2
    X3 = 3
    X4 = 4
    X5 = 5
    X6 = 6
    X7 = 7
    X8 = 8
    X9 = 9
    X10 = 10
    X11 = 11
    X12 = 12
    X13 = 13
    X14 = 14
    X15 = 15
    X16 = 16
    X17 = 17
    X18 = 18
    X19 = 19
    X20 = 20
    X21 = 21
    X22 = 22
    X23 = 23
    X24 = 24
    X25 = 25
    X26 = 26
    X27 = 27
    X28 = 28
    X29 = 29
    X30 = 30
    X31 = 31
    PC = 32

    ZERO = 0
    RA = 1
    SP = 2
    GP = 3
    TP = 4
    T0 = 5
    T1 = 6
    T2 = 7
    FP = 8
    S0 = 8
    S1 = 9
    A0 = 10
    A1 = 11
    A2 = 12
    A3 = 13
    A4 = 14
    A5 = 15
    A6 = 16
    A7 = 17
    S2 = 18
    S3 = 19
    S4 = 20
    S5 = 21
    S6 = 22
    S7 = 23
    S8 = 24
    S9 = 25
    S10 = 26
    S11 = 27
    T3 = 28
    T4 = 29
    T5 = 30
    T6 = 31


def _opcode(major: int) -> int:
    return (major << 2) | 3


class Opcode(IntEnum):
    """Major opcodes of the supported instructions."""

    LOAD = _opcode(0x00)
    OPIMM = _opcode(0x04)
    AUIPC = _opcode(0x05)
    STORE = _opcode(0x08)
    OP = _opcode(0x0C)
    LUI = _opcode(0x0D)
    BRANCH = _opcode(0x18)
    JALR = _opcode(0x19)
    JAL = _opcode(0x1B)
    SYSTEM = _opcode(0x1C)


@dataclass(frozen=True)
class Instruction:
    """A 32-bit instruction word with accessors for its encoded fields."""

    word: int

    @property
    def opcode(self) -> int:
        return bits(self.word, 0, 7)

    @property
    def rd(self) -> int:
        return bits(self.word, 7, 12)

    @property
    def funct3(self) -> int:
        return bits(self.word, 12, 15)

    @property
    def rs1(self) -> int:
        return bits(self.word, 15, 20)

    @property
    def rs2(self) -> int:
        return bits(self.word, 20, 25)

    @property
    def funct7(self) -> int:
        return bits(self.word, 25, 32)

    @property
    def i_imm(self) -> int:
        return bits(self.word, 20, 32)

    @property
    def i_imm_sext(self) -> int:
        return sign_extend(self.i_imm, 12)

    @property
    def s_imm(self) -> int:
        return bits(self.word, 7, 12) | (bits(self.word, 25, 32) << 5)

    @property
    def s_imm_sext(self) -> int:
        return sign_extend(self.s_imm, 12)

    @property
    def b_imm(self) -> int:
        w = self.word
        return (
            (bits(w, 7, 8) << 11)
            | (bits(w, 8, 12) << 1)
            | (bits(w, 25, 31) << 5)
            | (bits(w, 31, 32) << 12)
        )

    @property
    def b_imm_sext(self) -> int:
        return sign_extend(self.b_imm, 13)

    @property
    def u_imm(self) -> int:
        return bits(self.word, 12, 32)

    @property
    def u_imm_sext(self) -> int:
        return sign_extend(self.u_imm, 20)

    @property
    def j_imm(self) -> int:
        w = self.word
        return (
            (bits(w, 12, 20) << 12)
            | (bits(w, 20, 21) << 11)
            | (bits(w, 21, 31) << 1)
            | (bits(w, 31, 32) << 20)
        )

    @property
    def j_imm_sext(self) -> int:
        return sign_extend(self.j_imm, 21)


_ILLEGAL = "<illegal>"

_OP_MNEMONICS = {
    0x00: ("ADD", "SLL", "SLT", "SLTU", "XOR", "SRL", "OR", "AND"),
    0x20: ("SUB", None, None, None, None, "SRA", None, None),
    0x01: ("MUL", "MULH", "MULHSU", "MULHU", "DIV", "DIVU", "REM", "REMU"),
}
_OPIMM_MNEMONICS = ("ADDI", "SLLI", "SLTI", "SLTIU", "XORI", "SRLI", "ORI", "ANDI")
_LOAD_MNEMONICS = ("LB", "LH", "LW", None, "LBU", "LHU", None, None)
_STORE_MNEMONICS = ("SB", "SH", "SW", None, None, None, None, None)
_BRANCH_MNEMONICS = ("BEQ", "BNE", None, None, "BLT", "BGE", "BLTU", "BGEU")


def _dis_op(inst: Instruction) -> str:
    table = _OP_MNEMONICS.get(inst.funct7)
    if table is None or table[inst.funct3] is None:
        return _ILLEGAL
    return f"{table[inst.funct3]} x{inst.rd}, x{inst.rs1}, x{inst.rs2}"


def _dis_opimm(inst: Instruction) -> str:
    imm = to_signed32(inst.i_imm_sext)
    mnem = _OPIMM_MNEMONICS[inst.funct3]
    if inst.funct3 == 3:
        imm &= 0x7FF
    elif inst.funct3 == 1:
        if inst.funct7 != 0:
            return _ILLEGAL
    elif inst.funct3 == 5:
        if inst.funct7 == 0x20:
            mnem = "SRAI"
            imm &= 0x1F
        elif inst.funct7 != 0:
            return _ILLEGAL
    return f"{mnem} x{inst.rd}, x{inst.rs1}, {imm}"


def _dis_load(inst: Instruction) -> str:
    mnem = _LOAD_MNEMONICS[inst.funct3]
    if mnem is None:
        return _ILLEGAL
    return f"{mnem} x{inst.rd}, {to_signed32(inst.i_imm_sext)}(x{inst.rs1})"


def _dis_store(inst: Instruction) -> str:
    mnem = _STORE_MNEMONICS[inst.funct3]
    if mnem is None:
        return _ILLEGAL
    return f"{mnem} x{inst.rs2}, {to_signed32(inst.s_imm_sext)}(x{inst.rs1})"


def _dis_branch(inst: Instruction) -> str:
    mnem = _BRANCH_MNEMONICS[inst.funct3]
    if mnem is None:
        return _ILLEGAL
    offset = to_signed32(inst.b_imm_sext)
    return f"{mnem} x{inst.rs1}, x{inst.rs2}, *{offset:+d}"


def _dis_jal(inst: Instruction) -> str:
    return f"JAL x{inst.rd}, *{to_signed32(inst.j_imm_sext):+d}"


def _dis_jalr(inst: Instruction) -> str:
    if inst.funct3 != 0:
        return _ILLEGAL
    return f"JALR x{inst.rd}, {to_signed32(inst.i_imm_sext)}(x{inst.rs1})"


def _dis_lui(inst: Instruction) -> str:
    return f"LUI x{inst.rd}, 0x{inst.u_imm:05x}"


def _dis_auipc(inst: Instruction) -> str:
    return f"AUIPC x{inst.rd}, 0x{inst.u_imm:05x}"


def _dis_system(inst: Instruction) -> str:
    if inst.funct3 != 0:
        return _ILLEGAL
    if inst.i_imm == 0:
        return "ECALL"
    if inst.i_imm == 1:
        return "EBREAK"
    return _ILLEGAL


_DISASSEMBLERS = {
    Opcode.OP: _dis_op,
    Opcode.OPIMM: _dis_opimm,
    Opcode.LOAD: _dis_load,
    Opcode.STORE: _dis_store,
    Opcode.BRANCH: _dis_branch,
    Opcode.JAL: _dis_jal,
    Opcode.JALR: _dis_jalr,
    Opcode.LUI: _dis_lui,
    Opcode.AUIPC: _dis_auipc,
    Opcode.SYSTEM: _dis_system,
}


def disassemble(word: int) -> str:
    """Return the assembly text of an instruction word, or ``<illegal>``."""
    inst = Instruction(word & MASK32)
    handler = _DISASSEMBLERS.get(inst.opcode)
    if handler is None:
        return _ILLEGAL
    return handler(inst)