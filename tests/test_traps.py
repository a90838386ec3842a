"""
LC-3 Virtual Machine — TRAP Service and I/O Provider Tests
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from lc3vm.emu import LC3Emulator, RunState, StopReason
from lc3vm.cpu.regs import FL_NEG, FL_POS
from lc3vm.periph.io_provider import (
    ConsoleIOProvider, IOProviderError, QueueIOProvider,
)


def emu_with(words, data=b""):
    io = QueueIOProvider(data)
    emu = LC3Emulator(io=io)
    emu.load_words(words, 0x3000)
    return emu, io


class TestHalt:

    def test_halt(self):
        emu, _ = emu_with([0xF025])
        result = emu.step()
        assert result.state is RunState.HALTED
        assert result.reason is StopReason.HALT
        assert emu.regs.get(7) == 0x3001

    def test_halt_preserves_flags(self):
        emu, _ = emu_with([0xF025])
        emu.regs.set_flags(FL_NEG)
        emu.step()
        assert emu.regs.get_flags() == FL_NEG


class TestConsoleTraps:

    def test_puts(self):
        """
        x3000: LEA R0, #2    ; → x3003
        x3001: PUTS
        x3002: HALT
        x3003: "Hi\\0"
        """
        emu, io = emu_with([0xE002, 0xF022, 0xF025, ord('H'), ord('i'), 0])
        result = emu.run()
        assert result.state is RunState.HALTED
        assert io.output == b"Hi"
        assert result.steps == 3

    def test_puts_returns_to_caller(self):
        emu, _ = emu_with([0xE002, 0xF022, 0xF025, 0])
        emu.step()
        emu.step()
        assert emu.regs.PC == 0x3002
        assert emu.regs.get(7) == 0x3002

    def test_puts_uses_low_byte_only(self):
        emu, io = emu_with([0xE002, 0xF022, 0xF025, 0x4142, 0])
        emu.run()
        assert io.output == b"B"

    def test_out(self):
        """AND R0,R0,#0; ADD R0,R0,#10; OUT; HALT"""
        emu, io = emu_with([0x5020, 0x102A, 0xF021, 0xF025])
        emu.run()
        assert io.output == b"\n"

    def test_getc(self):
        emu, io = emu_with([0xF020, 0xF025], data=b"k")
        result = emu.run()
        assert result.registers[0] == ord('k')
        assert result.registers[7] == 0x3002    # link from HALT
        assert io.output == b""                 # GETC does not echo

    def test_getc_then_out_echoes(self):
        emu, io = emu_with([0xF020, 0xF021, 0xF025], data="z")
        emu.run()
        assert io.output == b"z"

    def test_in(self):
        emu, io = emu_with([0xF023, 0xF025], data=b"q")
        result = emu.run()
        assert result.state is RunState.HALTED
        assert io.output == b"Enter a character: q"
        assert result.registers[0] == 0x71

    def test_io_traps_preserve_flags(self):
        emu, _ = emu_with([0xF020, 0xF021], data=b"\x00")
        emu.regs.set_flags(FL_POS)
        emu.step()
        emu.step()
        assert emu.regs.get(0) == 0
        assert emu.regs.get_flags() == FL_POS


class TestIOFailure:

    def test_getc_without_input(self):
        emu, _ = emu_with([0xF020])
        emu.regs.set(0, 0x1234)
        emu.regs.set(7, 0x5555)
        result = emu.step()
        assert result.state is RunState.FAULTED
        assert result.reason is StopReason.IO_ERROR
        assert emu.regs.get(0) == 0x1234
        assert emu.regs.get(7) == 0x5555

    def test_out_after_close(self):
        emu, io = emu_with([0xF021])
        io.close()
        assert emu.run().reason is StopReason.IO_ERROR

    def test_fault_is_terminal(self):
        emu, io = emu_with([0xF020, 0xF025])
        emu.run()
        io.inject_input(b"x")
        result = emu.run()
        assert result.state is RunState.FAULTED
        assert result.steps == 0


class TestTrapTable:

    def test_unserviced_vector_jumps_through_table(self):
        """
        TRAP x30 → mem[x0030] = x4000 → RET → back to x3001 → HALT
        """
        emu, _ = emu_with([0xF030, 0xF025])
        emu.mem.write(0x0030, 0x4000)
        emu.mem.write(0x4000, 0xC1C0)
        result = emu.step()
        assert emu.regs.PC == 0x4000
        assert emu.regs.get(7) == 0x3001
        assert result.state is RunState.RUNNING

        result = emu.run()
        assert result.state is RunState.HALTED
        assert result.steps == 2

    def test_putsp_goes_through_table(self):
        """PUTSP has no built-in service; the OS image supplies it."""
        emu, io = emu_with([0xF024])
        emu.mem.write(0x0024, 0x0500)
        emu.step()
        assert emu.regs.PC == 0x0500
        assert io.output == b""


class TestQueueProvider:

    def test_fifo(self):
        io = QueueIOProvider(b"ab")
        assert io.has_input()
        assert io.read_input() == ord('a')
        assert io.read_input() == ord('b')
        assert not io.has_input()

    def test_empty_read_raises(self):
        with pytest.raises(IOProviderError):
            QueueIOProvider().read_input()

    def test_close(self):
        io = QueueIOProvider(b"abc")
        io.close()
        assert not io.has_input()
        with pytest.raises(IOProviderError):
            io.read_input()
        with pytest.raises(IOProviderError):
            io.write_output(0x41)

    def test_output_masks_to_byte(self):
        io = QueueIOProvider()
        io.write_output(0x141)
        assert io.output == b"A"


@pytest.mark.skipif(sys.platform == "win32", reason="select() on pipes is POSIX only")
class TestConsoleProvider:

    @pytest.fixture
    def pipe_provider(self, tmp_path):
        r, w = os.pipe()
        stdin = os.fdopen(r, 'rb')      # buffered, like sys.stdin.buffer
        writer = os.fdopen(w, 'wb', buffering=0)
        out = open(tmp_path / "out.bin", 'w+b')
        yield ConsoleIOProvider(stdin=stdin, stdout=out), writer, out
        stdin.close()
        if not writer.closed:
            writer.close()
        out.close()

    def test_has_input(self, pipe_provider):
        io, writer, _ = pipe_provider
        assert not io.has_input()
        writer.write(b"x")
        assert io.has_input()
        assert io.read_input() == ord('x')

    def test_eof_raises(self, pipe_provider):
        io, writer, _ = pipe_provider
        writer.close()
        with pytest.raises(IOProviderError):
            io.read_input()

    def test_write_output(self, pipe_provider):
        io, _, out = pipe_provider
        io.write_output(ord('O'))
        io.write_output(ord('K'))
        out.seek(0)
        assert out.read() == b"OK"

    def test_vm_reads_keyboard_through_console(self, pipe_provider):
        io, writer, out = pipe_provider
        writer.write(b"A")
        emu = LC3Emulator(io=io)
        emu.load_words([0xF020, 0xF021, 0xF025], 0x3000)
        result = emu.run()
        assert result.state is RunState.HALTED
        out.seek(0)
        assert out.read() == b"A"

    def test_pending_byte_still_ready_after_read(self, pipe_provider):
        """Reading one byte must not hide the bytes queued behind it."""
        io, writer, _ = pipe_provider
        writer.write(b"ab")
        assert io.read_input() == ord('a')
        assert io.has_input()
        assert io.read_input() == ord('b')
        assert not io.has_input()

    def test_polling_program_sees_every_key(self, pipe_provider):
        """
        x3000: LDI R0, #6     ; KBSR
        x3001: BRzp #-2
        x3002: LDI R1, #5     ; KBDR
        x3003: LDI R0, #3     ; KBSR
        x3004: BRzp #-2
        x3005: LDI R2, #2     ; KBDR
        x3006: HALT
        x3007: xFE00
        x3008: xFE02
        """
        io, writer, _ = pipe_provider
        writer.write(b"ab")
        emu = LC3Emulator(io=io)
        emu.load_words([0xA006, 0x07FE, 0xA205, 0xA003, 0x07FE, 0xA402, 0xF025,
                        0xFE00, 0xFE02], 0x3000)
        result = emu.run(max_steps=1000)
        assert result.state is RunState.HALTED
        assert result.registers[1] == ord('a')
        assert result.registers[2] == ord('b')
