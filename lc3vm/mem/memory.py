"""
LC-3 Virtual Machine — 64K-Word Memory with I/O Register Routing

Memory map (LC-3 convention, none of it enforced):
  $0000–$00FF  Trap vector table
  $0100–$01FF  Interrupt vector table
  $0200–$2FFF  OS + supervisor stack
  $3000–$FDFF  User programs
  $FE00–$FFFF  Device registers

Every 16-bit address is valid. Memory is flat (array of 'H'), with
reads of registered device addresses routed to peripheral callbacks.
KBSR ($FE00) and KBDR ($FE02) are wired by the keyboard peripheral.

Devices are read-only: writes always land in backing storage, device
address or not, so a dump shows what the program stored.
"""

import array
import logging
import struct
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Union

from ..config import MEMORY_SIZE, WORD_MASK


log = logging.getLogger("lc3vm.mem")


class ImageFormatError(ValueError):
    """Object image is malformed (empty, or not a whole number of words)."""


class Memory:
    """65536 x 16-bit word-addressable memory with device routing."""

    def __init__(self):
        self._mem = array.array('H', bytes(MEMORY_SIZE * 2))

        # Device handlers: addr → read_fn(addr) -> int
        self._io_read_handlers: Dict[int, Callable] = {}

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        """Read one word.

        If a device is registered at the address, its handler supplies
        the value instead of backing storage (and may have side effects,
        e.g. KBDR consumes the pending key).
        """
        addr &= WORD_MASK
        handler = self._io_read_handlers.get(addr)
        if handler is not None:
            return handler(addr) & WORD_MASK
        return self._mem[addr]

    def write(self, addr: int, value: int):
        """Write one word to backing storage."""
        self._mem[addr & WORD_MASK] = value & WORD_MASK

    # --- Bulk load ---

    def load_words(self, words: Iterable[int], origin: int) -> int:
        """Store words sequentially from origin, bypassing device routing.

        Returns the number of words loaded. Addresses wrap at $FFFF.
        """
        count = 0
        for i, word in enumerate(words):
            self._mem[(origin + i) & WORD_MASK] = word & WORD_MASK
            count += 1
        return count

    def load_image(self, data: Union[bytes, bytearray]) -> int:
        """Load an LC-3 object image and return its origin.

        Layout: big-endian 16-bit words. The first word is the origin;
        the rest are placed at origin, origin+1, ...
        """
        if len(data) < 2:
            raise ImageFormatError("Image is empty (no origin word)")
        if len(data) % 2:
            raise ImageFormatError(f"Image has odd length ({len(data)} bytes)")

        words = struct.unpack(f'>{len(data) // 2}H', data)
        origin = words[0]
        count = self.load_words(words[1:], origin)
        log.info("Loaded %d words at x%04X", count, origin)
        return origin

    def load_image_file(self, filepath: Union[str, Path]) -> int:
        return self.load_image(Path(filepath).read_bytes())

    # --- I/O handler registration ---

    def register_io_handler(self, addr: int, read_fn: Callable):
        """Register a read handler for a device register address.

        Args:
            addr: Device register address
            read_fn: Callable(addr) -> int (16-bit value)
        """
        self._io_read_handlers[addr & WORD_MASK] = read_fn

    # --- Inspection ---

    def dump(self, start: int, length: int) -> List[int]:
        """Raw words from backing storage (no device reads)."""
        return [self._mem[(start + i) & WORD_MASK] for i in range(length)]

    def clear(self):
        """Zero all of memory. Device handlers stay registered."""
        self._mem = array.array('H', bytes(MEMORY_SIZE * 2))

    def hexdump(self, start: int, length: int = 64) -> str:
        """Produce a hex dump of memory for debugging, 8 words per line."""
        lines = []
        for offset in range(0, length, 8):
            addr = (start + offset) & WORD_MASK
            words = self.dump(addr, min(8, length - offset))
            hex_words = ' '.join(f'{w:04X}' for w in words)
            ascii_chars = ''.join(
                chr(w) if 0x20 <= w < 0x7F else '.' for w in words
            )
            lines.append(f'x{addr:04X}  {hex_words:<39}  {ascii_chars}')
        return '\n'.join(lines)
