"""
LC-3 Virtual Machine — Instruction Decoder

Maps a 16-bit instruction word to one variant per opcode. Bits [15:12]
are always the opcode; the remaining 12 bits are laid out differently
for each opcode, so every variant only carries the fields it owns:

  0000  BR    n z p | pcOffset9
  0001  ADD   DR | SR1 | 0 | 00 | SR2        DR | SR1 | 1 | imm5
  0010  LD    DR | pcOffset9
  0011  ST    SR | pcOffset9
  0100  JSR   1 | pcOffset11                 JSRR: 0 | 00 | BaseR | 000000
  0101  AND   (same layout as ADD)
  0110  LDR   DR | BaseR | offset6
  0111  STR   SR | BaseR | offset6
  1000  RTI   (privileged — not supported)
  1001  NOT   DR | SR | 111111
  1010  LDI   DR | pcOffset9
  1011  STI   SR | pcOffset9
  1100  JMP   000 | BaseR | 000000           (RET = JMP R7)
  1101  RES   (reserved)
  1110  LEA   DR | pcOffset9
  1111  TRAP  0000 | trapvect8

Fields are stored raw (unsigned bit patterns). Sign extension happens
in the executor, where the field is used. decode() never fails: every
4-bit opcode maps to a variant. RTI and RES are rejected later when
they are executed.

encode() on each variant is the inverse of decode() for the bits the
variant carries. Bits an opcode ignores (e.g. ADD register-mode [4:3],
NOT's trailing 111111) are emitted in their canonical form.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from ..config import TRAP_GETC, TRAP_OUT, TRAP_PUTS, TRAP_IN, TRAP_PUTSP, TRAP_HALT
from .alu import sign_extend, to_signed


class IllegalOpcode(Exception):
    """Opcode has no defined execution (RTI, RES)."""

    def __init__(self, opcode, address=None):
        self.opcode = opcode
        self.address = address
        where = f" at x{address:04X}" if address is not None else ""
        super().__init__(f"Illegal opcode {opcode.name} ({int(opcode):#06b}){where}")


class Opcode(IntEnum):
    BR   = 0x0
    ADD  = 0x1
    LD   = 0x2
    ST   = 0x3
    JSR  = 0x4
    AND  = 0x5
    LDR  = 0x6
    STR  = 0x7
    RTI  = 0x8
    NOT  = 0x9
    LDI  = 0xA
    STI  = 0xB
    JMP  = 0xC
    RES  = 0xD
    LEA  = 0xE
    TRAP = 0xF


TRAP_NAMES = {
    TRAP_GETC:  "GETC",
    TRAP_OUT:   "OUT",
    TRAP_PUTS:  "PUTS",
    TRAP_IN:    "IN",
    TRAP_PUTSP: "PUTSP",
    TRAP_HALT:  "HALT",
}


# ──────────────────────────────────────────────
# Field helpers
# ──────────────────────────────────────────────

def _bits(word: int, hi: int, lo: int) -> int:
    return (word >> lo) & ((1 << (hi - lo + 1)) - 1)


def _reg(n: int) -> str:
    return f"R{n}"


def _imm(value: int, bit_count: int) -> str:
    return f"#{to_signed(sign_extend(value, bit_count))}"


def _target(address: Optional[int], offset: int, bit_count: int) -> str:
    """PC-relative operand. Resolved to an absolute address when known."""
    if address is None:
        return _imm(offset, bit_count)
    return f"x{(address + 1 + sign_extend(offset, bit_count)) & 0xFFFF:04X}"


# ──────────────────────────────────────────────
# Instruction variants
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Instruction:
    """Base for all decoded instruction variants."""
    opcode = None  # set on each subclass

    def encode(self) -> int:
        raise NotImplementedError

    def format(self, address: Optional[int] = None) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class Br(Instruction):
    n: bool
    z: bool
    p: bool
    pc_offset9: int
    opcode = Opcode.BR

    def encode(self) -> int:
        return ((self.opcode << 12) | (self.n << 11) | (self.z << 10)
                | (self.p << 9) | (self.pc_offset9 & 0x1FF))

    def format(self, address: Optional[int] = None) -> str:
        cond = ('n' if self.n else '') + ('z' if self.z else '') + ('p' if self.p else '')
        if not cond:
            return "NOP"
        return f"BR{cond} {_target(address, self.pc_offset9, 9)}"


@dataclass(frozen=True)
class _AluOp(Instruction):
    """Shared shape of ADD and AND."""
    dst: int
    src1: int
    imm_mode: bool
    src2: int = 0
    imm5: int = 0

    def encode(self) -> int:
        word = (self.opcode << 12) | (self.dst << 9) | (self.src1 << 6)
        if self.imm_mode:
            return word | 0x20 | (self.imm5 & 0x1F)
        return word | (self.src2 & 0x7)

    def format(self, address: Optional[int] = None) -> str:
        operand = _imm(self.imm5, 5) if self.imm_mode else _reg(self.src2)
        return f"{self.opcode.name} {_reg(self.dst)}, {_reg(self.src1)}, {operand}"


@dataclass(frozen=True)
class Add(_AluOp):
    opcode = Opcode.ADD


@dataclass(frozen=True)
class And(_AluOp):
    opcode = Opcode.AND


@dataclass(frozen=True)
class _PcRelative(Instruction):
    """Shared shape of LD, ST, LDI, STI, LEA: reg | pcOffset9."""
    reg: int
    pc_offset9: int

    def encode(self) -> int:
        return (self.opcode << 12) | (self.reg << 9) | (self.pc_offset9 & 0x1FF)

    def format(self, address: Optional[int] = None) -> str:
        return f"{self.opcode.name} {_reg(self.reg)}, {_target(address, self.pc_offset9, 9)}"


@dataclass(frozen=True)
class Ld(_PcRelative):
    opcode = Opcode.LD


@dataclass(frozen=True)
class St(_PcRelative):
    opcode = Opcode.ST


@dataclass(frozen=True)
class Ldi(_PcRelative):
    opcode = Opcode.LDI


@dataclass(frozen=True)
class Sti(_PcRelative):
    opcode = Opcode.STI


@dataclass(frozen=True)
class Lea(_PcRelative):
    opcode = Opcode.LEA


@dataclass(frozen=True)
class Jsr(Instruction):
    """JSR (pc_relative=True) and JSRR (pc_relative=False)."""
    pc_relative: bool
    pc_offset11: int = 0
    base: int = 0
    opcode = Opcode.JSR

    def encode(self) -> int:
        if self.pc_relative:
            return (self.opcode << 12) | 0x800 | (self.pc_offset11 & 0x7FF)
        return (self.opcode << 12) | (self.base << 6)

    def format(self, address: Optional[int] = None) -> str:
        if self.pc_relative:
            return f"JSR {_target(address, self.pc_offset11, 11)}"
        return f"JSRR {_reg(self.base)}"


@dataclass(frozen=True)
class _BaseOffset(Instruction):
    """Shared shape of LDR and STR: reg | BaseR | offset6."""
    reg: int
    base: int
    offset6: int

    def encode(self) -> int:
        return ((self.opcode << 12) | (self.reg << 9) | (self.base << 6)
                | (self.offset6 & 0x3F))

    def format(self, address: Optional[int] = None) -> str:
        return (f"{self.opcode.name} {_reg(self.reg)}, {_reg(self.base)}, "
                f"{_imm(self.offset6, 6)}")


@dataclass(frozen=True)
class Ldr(_BaseOffset):
    opcode = Opcode.LDR


@dataclass(frozen=True)
class Str(_BaseOffset):
    opcode = Opcode.STR


@dataclass(frozen=True)
class Not(Instruction):
    dst: int
    src: int
    opcode = Opcode.NOT

    def encode(self) -> int:
        return (self.opcode << 12) | (self.dst << 9) | (self.src << 6) | 0x3F

    def format(self, address: Optional[int] = None) -> str:
        return f"NOT {_reg(self.dst)}, {_reg(self.src)}"


@dataclass(frozen=True)
class Jmp(Instruction):
    base: int
    opcode = Opcode.JMP

    def encode(self) -> int:
        return (self.opcode << 12) | (self.base << 6)

    def format(self, address: Optional[int] = None) -> str:
        if self.base == 7:
            return "RET"
        return f"JMP {_reg(self.base)}"


@dataclass(frozen=True)
class Trap(Instruction):
    trapvect8: int
    opcode = Opcode.TRAP

    def encode(self) -> int:
        return (self.opcode << 12) | (self.trapvect8 & 0xFF)

    def format(self, address: Optional[int] = None) -> str:
        name = TRAP_NAMES.get(self.trapvect8)
        if name:
            return name
        return f"TRAP x{self.trapvect8:02X}"


@dataclass(frozen=True)
class Rti(Instruction):
    opcode = Opcode.RTI

    def encode(self) -> int:
        return self.opcode << 12

    def format(self, address: Optional[int] = None) -> str:
        return "RTI"


@dataclass(frozen=True)
class Reserved(Instruction):
    opcode = Opcode.RES

    def encode(self) -> int:
        return self.opcode << 12

    def format(self, address: Optional[int] = None) -> str:
        return "RES"


# Every variant, one per opcode. The executor checks its dispatch
# table against this so no opcode can be left without a handler.
VARIANTS = (Br, Add, Ld, St, Jsr, And, Ldr, Str,
            Rti, Not, Ldi, Sti, Jmp, Reserved, Lea, Trap)


# ──────────────────────────────────────────────
# Decode
# ──────────────────────────────────────────────

def _decode_br(w):
    return Br(n=bool(w & 0x800), z=bool(w & 0x400), p=bool(w & 0x200),
              pc_offset9=_bits(w, 8, 0))


def _decode_alu(cls):
    def decode_fn(w):
        if w & 0x20:
            return cls(dst=_bits(w, 11, 9), src1=_bits(w, 8, 6),
                       imm_mode=True, imm5=_bits(w, 4, 0))
        return cls(dst=_bits(w, 11, 9), src1=_bits(w, 8, 6),
                   imm_mode=False, src2=_bits(w, 2, 0))
    return decode_fn


def _decode_pc_relative(cls):
    return lambda w: cls(reg=_bits(w, 11, 9), pc_offset9=_bits(w, 8, 0))


def _decode_base_offset(cls):
    return lambda w: cls(reg=_bits(w, 11, 9), base=_bits(w, 8, 6),
                         offset6=_bits(w, 5, 0))


def _decode_jsr(w):
    if w & 0x800:
        return Jsr(pc_relative=True, pc_offset11=_bits(w, 10, 0))
    return Jsr(pc_relative=False, base=_bits(w, 8, 6))


_DECODERS = {
    Opcode.BR:   _decode_br,
    Opcode.ADD:  _decode_alu(Add),
    Opcode.LD:   _decode_pc_relative(Ld),
    Opcode.ST:   _decode_pc_relative(St),
    Opcode.JSR:  _decode_jsr,
    Opcode.AND:  _decode_alu(And),
    Opcode.LDR:  _decode_base_offset(Ldr),
    Opcode.STR:  _decode_base_offset(Str),
    Opcode.RTI:  lambda w: Rti(),
    Opcode.NOT:  lambda w: Not(dst=_bits(w, 11, 9), src=_bits(w, 8, 6)),
    Opcode.LDI:  _decode_pc_relative(Ldi),
    Opcode.STI:  _decode_pc_relative(Sti),
    Opcode.JMP:  lambda w: Jmp(base=_bits(w, 8, 6)),
    Opcode.RES:  lambda w: Reserved(),
    Opcode.LEA:  _decode_pc_relative(Lea),
    Opcode.TRAP: lambda w: Trap(trapvect8=_bits(w, 7, 0)),
}


def decode(instruction: int) -> Instruction:
    """Decode a 16-bit word into its opcode variant."""
    instruction &= 0xFFFF
    return _DECODERS[Opcode(instruction >> 12)](instruction)


def disassemble(word: int, address: Optional[int] = None) -> str:
    """Assembler-style text for one word.

    With an address, PC-relative operands are shown as absolute
    targets (x3005) instead of signed offsets (#4).
    """
    return decode(word).format(address)
