"""
LC-3 Virtual Machine — Main Emulator Class

This is the top-level class that integrates:
  - CPU registers (regs.py)
  - Memory with device routing (memory.py)
  - Instruction decoder (decoder.py)
  - Bit-field arithmetic (alu.py)
  - Keyboard device + I/O provider (keyboard.py, io_provider.py)

Execution model:
  1. Fetch the word at PC
  2. Increment PC (exactly once per instruction)
  3. Decode into an opcode variant
  4. Execute the variant's handler → update registers, memory, flags
  5. Repeat until HALT or a fault

PC-relative operands (BR, LD, ST, LDI, STI, LEA, JSR) are computed
against the incremented PC, i.e. the address of the next sequential
instruction.

Run states:
  RUNNING  — instructions can still be executed
  HALTED   — TRAP x25 executed (terminal)
  FAULTED  — RTI/RES executed or the I/O provider failed (terminal)

Stop reasons reported by step()/run():
  HALT      TRAP x25
  ILLEGAL   RTI or RES
  IO_ERROR  I/O provider failure while servicing a trap or device read
  TIMEOUT   run() step budget exhausted (still RUNNING)
  BREAK     breakpoint address reached (still RUNNING)

A faulting instruction applies none of its register, flag or memory
effects. Faults are reported in the result, never raised to the caller.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Set, Tuple

from .config import (
    PC_START, WORD_MASK, MEMORY_SIZE, IN_PROMPT, TRACE_BUFFER_LINES,
    TRAP_GETC, TRAP_OUT, TRAP_PUTS, TRAP_IN, TRAP_HALT,
)
from .cpu.regs import Registers, R7
from .cpu.decoder import (
    decode, Instruction, IllegalOpcode, Opcode, VARIANTS,
    Br, Add, Ld, St, Jsr, And, Ldr, Str, Rti, Not, Ldi, Sti, Jmp, Reserved, Lea, Trap,
)
from .cpu import alu
from .mem.memory import Memory
from .periph.io_provider import IOProvider, IOProviderError, QueueIOProvider
from .periph.keyboard import KeyboardPeripheral


log = logging.getLogger("lc3vm.emu")


class RunState(Enum):
    RUNNING = 'RUNNING'
    HALTED = 'HALTED'
    FAULTED = 'FAULTED'


class StopReason(Enum):
    HALT = 'HALT'
    ILLEGAL = 'ILLEGAL'
    IO_ERROR = 'IO_ERROR'
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'


@dataclass(frozen=True)
class StepResult:
    """Outcome of one fetch-decode-execute cycle."""
    state: RunState
    reason: Optional[StopReason]
    pc: int
    instruction: Optional[Instruction] = None
    message: str = ""


@dataclass(frozen=True)
class RunResult:
    """Final snapshot after run() returns."""
    state: RunState
    reason: Optional[StopReason]
    registers: Tuple[int, ...]
    pc: int
    flags: int
    steps: int
    message: str = ""

    def summary(self) -> str:
        regs = ' '.join(f"R{i}=x{v:04X}" for i, v in enumerate(self.registers))
        cc = {0x04: 'N', 0x02: 'Z', 0x01: 'P'}.get(self.flags, '?')
        reason = self.reason.value if self.reason else '-'
        lines = [
            f"{self.state.value} ({reason}) after {self.steps} instructions",
            f"{regs}",
            f"PC=x{self.pc:04X} CC={cc}",
        ]
        if self.message:
            lines.append(self.message)
        return '\n'.join(lines)


class LC3Emulator:
    """LC-3 Virtual Machine.

    Usage:
        emu = LC3Emulator(io=QueueIOProvider())
        emu.load_image('hello.obj')         # PC set to image origin
        result = emu.run()
        print(result.summary())
        print(emu.io.output)                 # b"Hello\\n"
    """

    def __init__(self, io: Optional[IOProvider] = None):
        # Core components
        self.regs = Registers()
        self.mem = Memory()
        self.io = io if io is not None else QueueIOProvider()

        # Devices
        self.keyboard = KeyboardPeripheral(self.io)
        self.keyboard.register(self.mem)

        self.state = RunState.RUNNING
        self.stop_reason: Optional[StopReason] = None
        self.fault_message = ""
        self.steps = 0

        # Breakpoints: set of PC addresses that trigger BREAK in run()
        self._breakpoints: Set[int] = set()

        # Trace output
        self._trace = False
        self._trace_output: deque = deque(maxlen=TRACE_BUFFER_LINES)

        # Address of the instruction currently executing
        self._inst_addr = 0

        self._dispatch = self._build_dispatch()
        self._trap_services = {
            TRAP_GETC: self._trap_getc,
            TRAP_OUT:  self._trap_out,
            TRAP_PUTS: self._trap_puts,
            TRAP_IN:   self._trap_in,
        }

        self.regs.PC = PC_START

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_image(self, path_or_data, set_pc: bool = True) -> int:
        """Load an LC-3 object image from a file path or bytes.

        Returns the image origin. With set_pc, PC is moved to it.
        """
        if isinstance(path_or_data, (str, Path)):
            log.info("Loading image %s", path_or_data)
            origin = self.mem.load_image_file(path_or_data)
        else:
            origin = self.mem.load_image(bytes(path_or_data))
        if set_pc:
            self.regs.PC = origin
        return origin

    def load_words(self, words, origin: int = PC_START, set_pc: bool = True) -> int:
        """Load raw instruction words at origin (tests, hand-assembled code)."""
        count = self.mem.load_words(words, origin)
        if set_pc:
            self.regs.PC = origin
        return count

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> StepResult:
        """Execute one instruction.

        On a HALTED or FAULTED VM nothing is executed and the terminal
        state is reported again.
        """
        if self.state is not RunState.RUNNING:
            return StepResult(self.state, self.stop_reason, self.regs.PC,
                              message=self.fault_message)

        pc = self.regs.PC
        self._inst_addr = pc
        inst = None

        try:
            # Fetch, then increment before decode/execute
            word = self.mem.read(pc)
            self.regs.PC = pc + 1
            inst = decode(word)
            self._execute(inst)
        except _HaltException:
            self._stop(RunState.HALTED, StopReason.HALT, f"HALT at x{pc:04X}")
        except IllegalOpcode as e:
            self._stop(RunState.FAULTED, StopReason.ILLEGAL, str(e))
        except (IOProviderError, OSError, EOFError) as e:
            self._stop(RunState.FAULTED, StopReason.IO_ERROR,
                       f"I/O provider failed at x{pc:04X}: {e}")

        self.steps += 1

        if self._trace and inst is not None:
            line = f"x{pc:04X}: {inst.format(pc):<20s} {self.regs.display()}"
            self._trace_output.append(line)
            log.debug(line)

        return StepResult(self.state, self.stop_reason, self.regs.PC, inst,
                          self.fault_message)

    def run(self, max_steps: Optional[int] = None) -> RunResult:
        """Run until HALT, a fault, a breakpoint or the step budget.

        A breakpoint at the current PC is ignored for the first
        instruction so that run() can resume from a BREAK.
        """
        executed = 0
        reason = None

        while self.state is RunState.RUNNING:
            if max_steps is not None and executed >= max_steps:
                reason = StopReason.TIMEOUT
                log.info("Step budget of %d exhausted at x%04X", max_steps, self.regs.PC)
                break
            if executed and self.regs.PC in self._breakpoints:
                reason = StopReason.BREAK
                log.info("Breakpoint at x%04X", self.regs.PC)
                break
            self.step()
            executed += 1

        if self.state is not RunState.RUNNING:
            reason = self.stop_reason

        return RunResult(
            state=self.state,
            reason=reason,
            registers=self.regs.snapshot(),
            pc=self.regs.PC,
            flags=self.regs.get_flags(),
            steps=executed,
            message=self.fault_message,
        )

    def _stop(self, state: RunState, reason: StopReason, message: str):
        self.state = state
        self.stop_reason = reason
        self.fault_message = message
        if state is RunState.HALTED:
            log.info(message)
        else:
            log.warning("Faulted: %s", message)

    # ══════════════════════════════════════════════
    # Instruction execution
    # ══════════════════════════════════════════════

    def _execute(self, inst: Instruction):
        self._dispatch[type(inst)](inst)

    def _build_dispatch(self) -> dict:
        """Build variant → handler dispatch table.

        Every decoder variant must have a handler. RTI and RES have
        handlers too; they raise IllegalOpcode.
        """
        dispatch = {
            Br:       self._op_br,
            Add:      self._op_add,
            Ld:       self._op_ld,
            St:       self._op_st,
            Jsr:      self._op_jsr,
            And:      self._op_and,
            Ldr:      self._op_ldr,
            Str:      self._op_str,
            Rti:      self._op_rti,
            Not:      self._op_not,
            Ldi:      self._op_ldi,
            Sti:      self._op_sti,
            Jmp:      self._op_jmp,
            Reserved: self._op_res,
            Lea:      self._op_lea,
            Trap:     self._op_trap,
        }
        missing = [cls.__name__ for cls in VARIANTS if cls not in dispatch]
        if missing:
            raise RuntimeError(f"No handler for: {', '.join(missing)}")
        return dispatch

    def _pc_relative(self, offset: int, bit_count: int) -> int:
        return alu.add16(self.regs.PC, alu.sign_extend(offset, bit_count))

    def _set_result(self, reg: int, value: int):
        self.regs.set(reg, value)
        self.regs.set_flags(alu.flags_for(value))

    # ── Branch / jump handlers ──

    def _op_br(self, inst: Br):
        if ((inst.n and self.regs.negative) or (inst.z and self.regs.zero)
                or (inst.p and self.regs.positive)):
            self.regs.PC = self._pc_relative(inst.pc_offset9, 9)

    def _op_jsr(self, inst: Jsr):
        # Target first: JSRR R7 must jump to the old R7
        if inst.pc_relative:
            target = self._pc_relative(inst.pc_offset11, 11)
        else:
            target = self.regs.get(inst.base)
        self.regs.set(R7, self.regs.PC)
        self.regs.PC = target

    def _op_jmp(self, inst: Jmp):
        self.regs.PC = self.regs.get(inst.base)

    # ── Arithmetic / logic handlers ──

    def _alu_operand(self, inst) -> int:
        if inst.imm_mode:
            return alu.sign_extend(inst.imm5, 5)
        return self.regs.get(inst.src2)

    def _op_add(self, inst: Add):
        result = alu.add16(self.regs.get(inst.src1), self._alu_operand(inst))
        self._set_result(inst.dst, result)

    def _op_and(self, inst: And):
        result = alu.and16(self.regs.get(inst.src1), self._alu_operand(inst))
        self._set_result(inst.dst, result)

    def _op_not(self, inst: Not):
        self._set_result(inst.dst, alu.not16(self.regs.get(inst.src)))

    # ── Load / store handlers ──

    def _op_ld(self, inst: Ld):
        value = self.mem.read(self._pc_relative(inst.pc_offset9, 9))
        self._set_result(inst.reg, value)

    def _op_ldi(self, inst: Ldi):
        pointer = self.mem.read(self._pc_relative(inst.pc_offset9, 9))
        self._set_result(inst.reg, self.mem.read(pointer))

    def _op_ldr(self, inst: Ldr):
        addr = alu.add16(self.regs.get(inst.base), alu.sign_extend(inst.offset6, 6))
        self._set_result(inst.reg, self.mem.read(addr))

    def _op_lea(self, inst: Lea):
        self._set_result(inst.reg, self._pc_relative(inst.pc_offset9, 9))

    def _op_st(self, inst: St):
        self.mem.write(self._pc_relative(inst.pc_offset9, 9), self.regs.get(inst.reg))

    def _op_sti(self, inst: Sti):
        pointer = self.mem.read(self._pc_relative(inst.pc_offset9, 9))
        self.mem.write(pointer, self.regs.get(inst.reg))

    def _op_str(self, inst: Str):
        addr = alu.add16(self.regs.get(inst.base), alu.sign_extend(inst.offset6, 6))
        self.mem.write(addr, self.regs.get(inst.reg))

    # ── Unsupported opcodes ──

    def _op_rti(self, inst: Rti):
        raise IllegalOpcode(Opcode.RTI, self._inst_addr)

    def _op_res(self, inst: Reserved):
        raise IllegalOpcode(Opcode.RES, self._inst_addr)

    # ══════════════════════════════════════════════
    # TRAP
    # ══════════════════════════════════════════════

    def _op_trap(self, inst: Trap):
        """TRAP — HALT stops the VM, GETC/OUT/PUTS/IN go to the I/O
        provider and return, any other vector jumps through the table
        at mem[vector] into the loaded OS routine.
        """
        vector = alu.zero_extend(inst.trapvect8, 8)
        return_addr = self.regs.PC

        if vector == TRAP_HALT:
            self.regs.set(R7, return_addr)
            self.regs.PC = self.mem.read(vector)
            raise _HaltException()

        service = self._trap_services.get(vector)
        if service is not None:
            # I/O first: a provider failure leaves R0/R7 untouched
            service()
            self.regs.set(R7, return_addr)
            return

        self.regs.set(R7, return_addr)
        self.regs.PC = self.mem.read(vector)

    def _trap_getc(self):
        self.regs.set(0, self.io.read_input() & 0xFF)

    def _trap_out(self):
        self.io.write_output(self.regs.get(0) & 0xFF)

    def _trap_puts(self):
        addr = self.regs.get(0)
        for _ in range(MEMORY_SIZE):
            word = self.mem.read(addr)
            if word == 0:
                break
            self.io.write_output(word & 0xFF)
            addr = (addr + 1) & WORD_MASK

    def _trap_in(self):
        for ch in IN_PROMPT.encode('ascii'):
            self.io.write_output(ch)
        char = self.io.read_input() & 0xFF
        self.io.write_output(char)
        self.regs.set(0, char)

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Add a breakpoint at PC address. run() stops before executing it."""
        self._breakpoints.add(addr & WORD_MASK)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & WORD_MASK)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True, limit: int = TRACE_BUFFER_LINES):
        """Enable instruction trace logging.

        get_trace() keeps only the most recent `limit` lines; every line
        is still logged at DEBUG as it is produced.
        """
        self._trace = enable
        if limit != self._trace_output.maxlen:
            self._trace_output = deque(self._trace_output, maxlen=limit)

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def reset(self):
        """Full emulator reset: registers, memory, run state, debug state."""
        self.regs.reset()
        self.mem.clear()
        self.regs.PC = PC_START
        self.state = RunState.RUNNING
        self.stop_reason = None
        self.fault_message = ""
        self.steps = 0
        self._breakpoints.clear()
        self._trace_output.clear()


def run(vm: LC3Emulator, max_steps: Optional[int] = None) -> RunResult:
    """Run vm until HALT or fault (or the optional step budget)."""
    return vm.run(max_steps=max_steps)


def step(vm: LC3Emulator) -> StepResult:
    """Execute exactly one instruction on vm."""
    return vm.step()


# Internal exception for flow control
class _HaltException(Exception):
    pass
