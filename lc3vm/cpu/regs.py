"""
LC-3 Virtual Machine — CPU Register Set + Condition Code Management

Register model for LC-3:
  R0–R7  — 16-bit general purpose registers
           R6 is the conventional stack pointer, R7 the link register
           (JSR/JSRR/TRAP write the return address there). Neither is
           enforced by hardware.
  PC     — 16-bit program counter (address of next instruction to fetch)
  COND   — 3-bit condition code register: N Z P
           bit 2: N (Negative — bit 15 of result set)
           bit 1: Z (Zero — result is zero)
           bit 0: P (Positive — nonzero, bit 15 clear)

Exactly one of N, Z, P is set at all times. set_flags() refuses
anything else, so a combined or empty state is never observable.
"""

# Condition code bit masks
FL_POS = 0x01
FL_ZRO = 0x02
FL_NEG = 0x04

VALID_FLAGS = (FL_POS, FL_ZRO, FL_NEG)

NUM_GPRS = 8
R7 = 7


class Registers:
    """LC-3 CPU register set."""

    __slots__ = ('_gpr', '_pc', '_cond')

    def __init__(self):
        self._gpr = [0] * NUM_GPRS
        self._pc = 0
        self._cond = FL_ZRO

    # --- General purpose registers ---

    def get(self, reg: int) -> int:
        """Read R0–R7."""
        if not 0 <= reg < NUM_GPRS:
            raise ValueError(f"Invalid register index: {reg}")
        return self._gpr[reg]

    def set(self, reg: int, value: int):
        """Write R0–R7. Value wraps modulo 2^16."""
        if not 0 <= reg < NUM_GPRS:
            raise ValueError(f"Invalid register index: {reg}")
        self._gpr[reg] = value & 0xFFFF

    def snapshot(self) -> tuple:
        """R0–R7 as an immutable tuple."""
        return tuple(self._gpr)

    # --- Program counter ---

    @property
    def PC(self) -> int:
        return self._pc

    @PC.setter
    def PC(self, value: int):
        self._pc = value & 0xFFFF

    # --- Condition codes ---

    def get_flags(self) -> int:
        return self._cond

    def set_flags(self, flag: int):
        """Set the condition register to exactly one of N, Z, P."""
        if flag not in VALID_FLAGS:
            raise ValueError(f"Condition code must be one of N/Z/P, got {flag:#x}")
        self._cond = flag

    @property
    def negative(self) -> bool:
        return self._cond == FL_NEG

    @property
    def zero(self) -> bool:
        return self._cond == FL_ZRO

    @property
    def positive(self) -> bool:
        return self._cond == FL_POS

    @property
    def flag_name(self) -> str:
        return {FL_NEG: 'N', FL_ZRO: 'Z', FL_POS: 'P'}[self._cond]

    # --- Display ---

    def display(self) -> str:
        """Format register state for debugging."""
        gprs = ' '.join(f"R{i}={v:04X}" for i, v in enumerate(self._gpr))
        return f"{gprs} PC={self._pc:04X} CC={self.flag_name}"

    def reset(self):
        """Reset CPU to power-on state."""
        self._gpr = [0] * NUM_GPRS
        self._pc = 0
        self._cond = FL_ZRO
