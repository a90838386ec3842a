"""
LC-3 Virtual Machine — Keyboard Device Registers

Register map:
  $FE00  KBSR  — Keyboard status (bit 15 = character ready)
  $FE02  KBDR  — Keyboard data (low 8 bits = character)

Programs poll KBSR until bit 15 is set, then read KBDR. Both registers
are read-only from the program's side: writes are stored in memory like
any other word but have no device effect.

Simplifications:
  - KBSR reflects the I/O provider's has_input() at the moment of the read
  - Reading KBDR consumes the character; with nothing pending it reads 0
  - No keyboard interrupt enable (bit 14), since there are no interrupts
"""

from ..config import MR_KBSR, MR_KBDR, KBSR_READY
from .io_provider import IOProvider


class KeyboardPeripheral:
    """KBSR/KBDR model backed by an IOProvider."""

    def __init__(self, io: IOProvider):
        self.io = io

    def register(self, memory):
        """Register read handlers with the memory system."""
        memory.register_io_handler(MR_KBSR, self._read_kbsr)
        memory.register_io_handler(MR_KBDR, self._read_kbdr)

    def _read_kbsr(self, addr: int) -> int:
        return KBSR_READY if self.io.has_input() else 0x0000

    def _read_kbdr(self, addr: int) -> int:
        if not self.io.has_input():
            return 0x0000
        return self.io.read_input() & 0xFF
