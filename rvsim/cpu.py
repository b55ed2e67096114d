"""RV32IM processor core: register file, fetch and execution."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable

from .isa import (
    MASK32,
    Instruction,
    Opcode,
    Reg,
    arith_shift_right,
    sign_extend,
    to_signed32,
)
from .memory import Memory, MemoryAccessError

_NUM_REGS = 32


class CpuStatus(IntEnum):
    """Outcome of executing one instruction."""

    OK = 0
    MEMORY_FAULT = -1
    ILL_INST_FAULT = -2
    ECALL_TRAP = -3
    EBREAK_TRAP = -4


def _trunc_div(a: int, b: int) -> int:
    """Signed division rounding toward zero."""
    q = abs(a) // abs(b)
    return -q if (a < 0) != (b < 0) else q


class Cpu:
    """A single RV32IM hart attached to a memory.

    Once a fault or trap is reported, further ticks report it again until
    :meth:`clear_last_fault` is called.
    """

    def __init__(self, memory: Memory | None = None) -> None:
        self.memory = memory if memory is not None else Memory()
        self._regs = [0] * _NUM_REGS
        self.pc = 0
        self.last_status = CpuStatus.OK
        self._handlers: dict[int, Callable[[Instruction], CpuStatus]] = {
            Opcode.LOAD: self._exec_load,
            Opcode.OPIMM: self._exec_opimm,
            Opcode.AUIPC: self._exec_auipc,
            Opcode.STORE: self._exec_store,
            Opcode.OP: self._exec_op,
            Opcode.LUI: self._exec_lui,
            Opcode.BRANCH: self._exec_branch,
            Opcode.JALR: self._exec_jalr,
            Opcode.JAL: self._exec_jal,
            Opcode.SYSTEM: self._exec_system,
        }

    def get_register(self, reg: int) -> int:
        """Return the value of a register; x0 always reads as zero."""
        if reg == Reg.ZERO:
            return 0
        if reg == Reg.PC:
            return self.pc
        return self._regs[reg]

    def set_register(self, reg: int, value: int) -> None:
        """Set a register; writes to x0 are ignored."""
        value &= MASK32
        if reg == Reg.PC:
            self.pc = value
        elif reg != Reg.ZERO:
            self._regs[reg] = value

    def reset(self, pc: int) -> None:
        """Clear all registers and the fault state and set the program counter."""
        self.last_status = CpuStatus.OK
        self.pc = pc & MASK32
        self._regs = [0] * _NUM_REGS

    def clear_last_fault(self) -> CpuStatus:
        """Acknowledge the pending fault, skipping trapping instructions."""
        if self.last_status in (
            CpuStatus.ILL_INST_FAULT,
            CpuStatus.EBREAK_TRAP,
            CpuStatus.ECALL_TRAP,
        ):
            self.pc = (self.pc + 4) & MASK32
        self.last_status = CpuStatus.OK
        return self.last_status

    def tick(self) -> CpuStatus:
        """Fetch and execute one instruction."""
        if self.last_status != CpuStatus.OK:
            return self.last_status
        try:
            word = self.memory.read32(self.pc)
        except MemoryAccessError:
            self.last_status = CpuStatus.MEMORY_FAULT
            return self.last_status
        inst = Instruction(word)
        handler = self._handlers.get(inst.opcode)
        status = handler(inst) if handler is not None else CpuStatus.ILL_INST_FAULT
        self._regs[Reg.ZERO] = 0
        self.last_status = status
        return status

    def _advance(self) -> CpuStatus:
        self.pc = (self.pc + 4) & MASK32
        return CpuStatus.OK

    def _exec_load(self, inst: Instruction) -> CpuStatus:
        addr = (self._regs[inst.rs1] + inst.i_imm_sext) & MASK32
        mem = self.memory
        readers = {
            0: (mem.read8, 8),
            1: (mem.read16, 16),
            2: (mem.read32, None),
            4: (mem.read8, None),
            5: (mem.read16, None),
        }
        entry = readers.get(inst.funct3)
        if entry is None:
            return CpuStatus.ILL_INST_FAULT
        reader, sext_width = entry
        try:
            value = reader(addr)
        except MemoryAccessError:
            return CpuStatus.MEMORY_FAULT
        if sext_width is not None:
            value = sign_extend(value, sext_width)
        self._regs[inst.rd] = value
        return self._advance()

    def _exec_opimm(self, inst: Instruction) -> CpuStatus:
        a = self._regs[inst.rs1]
        imm = inst.i_imm_sext
        shamt = inst.i_imm & 0x1F
        f3 = inst.funct3
        if f3 == 0:
            result = a + imm
        elif f3 == 1:
            if inst.funct7 != 0x00:
                return CpuStatus.ILL_INST_FAULT
            result = a << shamt
        elif f3 == 2:
            result = int(to_signed32(a) < to_signed32(imm))
        elif f3 == 3:
            # compared against the raw 12-bit immediate
            result = int(a < inst.i_imm)
        elif f3 == 4:
            result = a ^ imm
        elif f3 == 5:
            if inst.funct7 == 0x00:
                result = a >> shamt
            elif inst.funct7 == 0x20:
                result = arith_shift_right(a, shamt)
            else:
                return CpuStatus.ILL_INST_FAULT
        elif f3 == 6:
            result = a | imm
        else:
            result = a & imm
        self._regs[inst.rd] = result & MASK32
        return self._advance()

    def _exec_auipc(self, inst: Instruction) -> CpuStatus:
        self._regs[inst.rd] = (self.pc + (inst.u_imm << 12)) & MASK32
        return self._advance()

    def _exec_store(self, inst: Instruction) -> CpuStatus:
        addr = (self._regs[inst.rs1] + inst.s_imm_sext) & MASK32
        value = self._regs[inst.rs2]
        mem = self.memory
        writers = {
            0: (mem.write8, 0xFF),
            1: (mem.write16, 0xFFFF),
            2: (mem.write32, MASK32),
        }
        entry = writers.get(inst.funct3)
        if entry is None:
            return CpuStatus.ILL_INST_FAULT
        writer, mask = entry
        try:
            writer(addr, value & mask)
        except MemoryAccessError:
            return CpuStatus.MEMORY_FAULT
        return self._advance()

    def _exec_op(self, inst: Instruction) -> CpuStatus:
        a = self._regs[inst.rs1]
        b = self._regs[inst.rs2]
        f3 = inst.funct3
        f7 = inst.funct7
        if f7 == 0x00:
            result = (
                a + b,
                a << (b & 0x1F),
                int(to_signed32(a) < to_signed32(b)),
                int(a < b),
                a ^ b,
                a >> (b & 0x1F),
                a | b,
                a & b,
            )[f3]
        elif f7 == 0x20:
            if f3 == 0:
                result = a - b
            elif f3 == 5:
                result = arith_shift_right(a, b & 0x1F)
            else:
                return CpuStatus.ILL_INST_FAULT
        elif f7 == 0x01:
            result = self._mul_div(f3, a, b)
        else:
            return CpuStatus.ILL_INST_FAULT
        self._regs[inst.rd] = result & MASK32
        return self._advance()

    @staticmethod
    def _mul_div(f3: int, a: int, b: int) -> int:
        sa, sb = to_signed32(a), to_signed32(b)
        if f3 == 0:
            return a * b
        if f3 == 1:
            return (sa * sb) >> 32
        if f3 == 2:
            return (sa * b) >> 32
        if f3 == 3:
            return (a * b) >> 32
        overflow = a == 0x80000000 and b == MASK32
        if f3 == 4:
            if b == 0:
                return MASK32
            if overflow:
                return 0x80000000
            return _trunc_div(sa, sb)
        if f3 == 5:
            return MASK32 if b == 0 else a // b
        if f3 == 6:
            if b == 0:
                return a
            if overflow:
                return 0
            return sa - sb * _trunc_div(sa, sb)
        return a if b == 0 else a % b

    def _exec_lui(self, inst: Instruction) -> CpuStatus:
        self._regs[inst.rd] = (inst.u_imm << 12) & MASK32
        return self._advance()

    def _exec_branch(self, inst: Instruction) -> CpuStatus:
        a = self._regs[inst.rs1]
        b = self._regs[inst.rs2]
        f3 = inst.funct3
        if f3 == 0:
            taken = a == b
        elif f3 == 1:
            taken = a != b
        elif f3 == 4:
            taken = to_signed32(a) < to_signed32(b)
        elif f3 == 5:
            taken = to_signed32(a) >= to_signed32(b)
        elif f3 == 6:
            taken = a < b
        elif f3 == 7:
            taken = a >= b
        else:
            return CpuStatus.ILL_INST_FAULT
        self.pc = (self.pc + (inst.b_imm_sext if taken else 4)) & MASK32
        return CpuStatus.OK

    def _exec_jalr(self, inst: Instruction) -> CpuStatus:
        if inst.funct3 != 0:
            return CpuStatus.ILL_INST_FAULT
        self._regs[inst.rd] = (self.pc + 4) & MASK32
        # bit zero of the target is cleared as the spec suggests
        self.pc = (self._regs[inst.rs1] + inst.i_imm_sext) & MASK32 & ~1
        return CpuStatus.OK

    def _exec_jal(self, inst: Instruction) -> CpuStatus:
        self._regs[inst.rd] = (self.pc + 4) & MASK32
        self.pc = (self.pc + inst.j_imm_sext) & MASK32
        return CpuStatus.OK

    def _exec_system(self, inst: Instruction) -> CpuStatus:
        if inst.funct3 != 0:
            return CpuStatus.ILL_INST_FAULT
        if inst.i_imm == 0:
            return CpuStatus.ECALL_TRAP
        if inst.i_imm == 1:
            return CpuStatus.EBREAK_TRAP
        return CpuStatus.ILL_INST_FAULT