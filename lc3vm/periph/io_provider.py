"""
LC-3 Virtual Machine — Character I/O Providers

The VM never touches a terminal directly. Keyboard polling (KBSR/KBDR)
and the GETC/OUT/PUTS/IN traps all go through an IOProvider:

  has_input()          -> bool   a character is ready
  read_input()         -> int    next character (consumed once; may block)
  write_output(byte)             emit one character
  close()                        end of session; pending reads fail

Any provider failure surfaces as IOProviderError, which faults the VM.

QueueIOProvider is the in-memory provider for tests and embedding:
input is injected with inject_input(), output collects in
output_buffer. ConsoleIOProvider talks to stdin/stdout and uses
select() for readiness (POSIX).
"""

import logging
import os
import select
import sys
from collections import deque
from typing import BinaryIO, Optional, Union


log = logging.getLogger("lc3vm.io")


class IOProviderError(Exception):
    """The I/O provider could not service a request."""


class IOProvider:
    """Interface for character I/O."""

    def has_input(self) -> bool:
        raise NotImplementedError

    def read_input(self) -> int:
        raise NotImplementedError

    def write_output(self, byte: int):
        raise NotImplementedError

    def close(self):
        pass


class QueueIOProvider(IOProvider):
    """In-memory provider.

    read_input() with nothing queued raises IOProviderError instead of
    blocking, since nothing else could ever fill the queue.

    Example:
        io = QueueIOProvider()
        io.inject_input(b"y")
        emu = LC3Emulator(io=io)
        ...
        assert io.output == b"Enter a character: y"
    """

    def __init__(self, data: Union[bytes, str] = b""):
        self._input: deque = deque()
        self.output_buffer: bytearray = bytearray()
        self._closed = False
        if data:
            self.inject_input(data)

    def inject_input(self, data: Union[bytes, str]):
        """Queue characters as if typed on the keyboard."""
        if isinstance(data, str):
            data = data.encode('latin-1')
        for byte in data:
            self._input.append(byte & 0xFF)

    def has_input(self) -> bool:
        return not self._closed and bool(self._input)

    def read_input(self) -> int:
        if self._closed:
            raise IOProviderError("Input provider is closed")
        if not self._input:
            raise IOProviderError("No input available")
        return self._input.popleft()

    def write_output(self, byte: int):
        if self._closed:
            raise IOProviderError("Output provider is closed")
        self.output_buffer.append(byte & 0xFF)

    def close(self):
        self._closed = True
        self._input.clear()

    @property
    def output(self) -> bytes:
        """All characters written since construction."""
        return bytes(self.output_buffer)


class ConsoleIOProvider(IOProvider):
    """stdin/stdout provider. read_input() blocks until a byte arrives.

    Input is read one byte at a time straight from the file descriptor,
    never through Python's read buffer, so select() in has_input() sees
    every byte that has not been consumed yet.
    """

    def __init__(self, stdin: Optional[BinaryIO] = None,
                 stdout: Optional[BinaryIO] = None):
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._closed = False

    def has_input(self) -> bool:
        if self._closed:
            return False
        try:
            ready, _, _ = select.select([self._stdin.fileno()], [], [], 0)
        except (OSError, ValueError) as e:
            raise IOProviderError(f"Cannot poll input: {e}") from e
        return bool(ready)

    def read_input(self) -> int:
        if self._closed:
            raise IOProviderError("Input provider is closed")
        try:
            data = os.read(self._stdin.fileno(), 1)
        except (OSError, ValueError) as e:
            raise IOProviderError(f"Input read failed: {e}") from e
        if not data:
            raise IOProviderError("End of input")
        return data[0]

    def write_output(self, byte: int):
        if self._closed:
            raise IOProviderError("Output provider is closed")
        try:
            self._stdout.write(bytes([byte & 0xFF]))
            self._stdout.flush()
        except OSError as e:
            raise IOProviderError(f"Output write failed: {e}") from e

    def close(self):
        if not self._closed:
            log.debug("Console provider closed")
        self._closed = True
