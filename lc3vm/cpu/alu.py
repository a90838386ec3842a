"""
LC-3 Virtual Machine — Bit-field Arithmetic Helpers

Sign/zero extension of instruction fields and N/Z/P flag computation.

Field widths used by the ISA:
  imm5        5 bits   ADD/AND immediate
  offset6     6 bits   LDR/STR base offset
  pcOffset9   9 bits   BR, LD, ST, LDI, STI, LEA
  pcOffset11  11 bits  JSR
  trapvect8   8 bits   TRAP (zero-extended)

All results are 16-bit words. Register arithmetic wraps modulo 2^16;
there is no carry or overflow flag on the LC-3.
"""

from ..config import WORD_MASK
from .regs import FL_POS, FL_ZRO, FL_NEG


def sign_extend(value: int, bit_count: int) -> int:
    """Extend the low `bit_count` bits of value as two's complement.

    sign_extend(0b11111, 5) -> 0xFFFF
    sign_extend(0b01111, 5) -> 0x000F
    """
    value &= (1 << bit_count) - 1
    if (value >> (bit_count - 1)) & 1:
        value |= (WORD_MASK << bit_count)
    return value & WORD_MASK


def zero_extend(value: int, bit_count: int) -> int:
    return value & ((1 << bit_count) - 1)


def to_signed(word: int) -> int:
    """Interpret a 16-bit word as a signed integer (for display)."""
    word &= WORD_MASK
    return word - 0x10000 if word & 0x8000 else word


def add16(a: int, b: int) -> int:
    return (a + b) & WORD_MASK


def and16(a: int, b: int) -> int:
    return a & b & WORD_MASK


def not16(a: int) -> int:
    return ~a & WORD_MASK


def flags_for(value: int) -> int:
    """Condition code for a result: Z if zero, N if bit 15 set, else P."""
    value &= WORD_MASK
    if value == 0:
        return FL_ZRO
    if value >> 15:
        return FL_NEG
    return FL_POS
