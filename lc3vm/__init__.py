"""
LC-3 Virtual Machine
====================
An instruction-level interpreter for the LC-3, a 16-bit educational
computer architecture.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌───────────┐
    │  Memory  │───>│  Fetch   │───>│  Decode  │───>│  Execute  │
    │ (64K x16)│    │ (PC++)   │    │ (variant)│    │ (dispatch)│
    └──────────┘    └──────────┘    └──────────┘    └───────────┘
         ▲                                                │
         └──────── registers / memory / N Z P ◄───────────┘

    - cpu/alu.py:         sign/zero extension, N/Z/P computation
    - cpu/regs.py:        R0–R7, PC, condition codes
    - cpu/decoder.py:     word → per-opcode dataclass, encode, disassemble
    - mem/memory.py:      word memory, device routing, object image loading
    - periph/keyboard.py: KBSR/KBDR device registers
    - periph/io_provider.py: pluggable character I/O (queue / console)
    - emu.py:             run loop, opcode handlers, TRAP services
"""

__version__ = "0.1.0"

from .cpu.alu import sign_extend, zero_extend
from .cpu.decoder import decode, disassemble, IllegalOpcode, Opcode
from .cpu.regs import Registers, FL_POS, FL_ZRO, FL_NEG
from .mem.memory import Memory, ImageFormatError
from .periph.io_provider import (
    IOProvider, IOProviderError, QueueIOProvider, ConsoleIOProvider,
)
from .emu import LC3Emulator, RunState, StopReason, RunResult, StepResult, run, step
