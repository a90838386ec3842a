"""
LC-3 Virtual Machine — Memory, Keyboard Device and Image Loading Tests
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import struct

import pytest

from lc3vm.config import MR_KBSR, MR_KBDR
from lc3vm.mem.memory import Memory, ImageFormatError
from lc3vm.periph.io_provider import QueueIOProvider
from lc3vm.periph.keyboard import KeyboardPeripheral


def make_image(origin, words):
    return struct.pack(f'>{len(words) + 1}H', origin, *words)


def keyboard_memory(data=b""):
    io = QueueIOProvider(data)
    mem = Memory()
    KeyboardPeripheral(io).register(mem)
    return mem, io


class TestReadWrite:

    def test_zero_initialised(self):
        mem = Memory()
        assert mem.read(0x0000) == 0
        assert mem.read(0x3000) == 0
        assert mem.read(0xFFFF) == 0

    def test_write_then_read(self):
        mem = Memory()
        mem.write(0x3000, 0x1234)
        assert mem.read(0x3000) == 0x1234

    def test_every_address_valid(self):
        """OS space and device page are plain storage too."""
        mem = Memory()
        for addr in (0x0000, 0x0025, 0x2FFF, 0xFDFF, 0xFFFF):
            mem.write(addr, addr ^ 0xA5A5)
            assert mem.read(addr) == addr ^ 0xA5A5

    def test_address_and_value_masked(self):
        mem = Memory()
        mem.write(0x13000, 0x1FFFF)
        assert mem.read(0x3000) == 0xFFFF

    def test_read_handler_overrides_storage(self):
        """A device read never sees the stored word; the write is still kept."""
        mem = Memory()
        mem.register_io_handler(0xFE04, lambda addr: 0x1FFFF)
        mem.write(0xFE04, 0x41)
        assert mem.read(0xFE04) == 0xFFFF
        assert mem.dump(0xFE04, 1) == [0x41]


class TestKeyboard:

    def test_kbsr_not_ready(self):
        mem, _ = keyboard_memory()
        assert mem.read(MR_KBSR) == 0x0000

    def test_kbsr_ready(self):
        mem, _ = keyboard_memory(b"a")
        assert mem.read(MR_KBSR) & 0x8000

    def test_kbdr_consumes_character(self):
        """KBSR ready → KBDR returns the char → next KBDR read is 0"""
        mem, io = keyboard_memory(b"a")
        assert mem.read(MR_KBSR) == 0x8000
        assert mem.read(MR_KBDR) == ord('a')
        assert mem.read(MR_KBDR) == 0
        assert mem.read(MR_KBSR) == 0

    def test_kbdr_sees_new_input(self):
        mem, io = keyboard_memory()
        assert mem.read(MR_KBDR) == 0
        io.inject_input("z")
        assert mem.read(MR_KBSR) == 0x8000
        assert mem.read(MR_KBDR) == ord('z')

    def test_kbsr_read_has_no_side_effect(self):
        mem, _ = keyboard_memory(b"q")
        mem.read(MR_KBSR)
        mem.read(MR_KBSR)
        assert mem.read(MR_KBDR) == ord('q')

    def test_device_writes_have_no_effect(self):
        """Writes are stored but reads still come from the device."""
        mem, _ = keyboard_memory()
        mem.write(MR_KBSR, 0xFFFF)
        mem.write(MR_KBDR, 0x0041)
        assert mem.read(MR_KBSR) == 0
        assert mem.read(MR_KBDR) == 0
        assert mem.dump(MR_KBSR, 3) == [0xFFFF, 0, 0x0041]


class TestImageLoading:

    def test_origin_and_words(self):
        mem = Memory()
        origin = mem.load_image(make_image(0x3000, [0x1024, 0xF025]))
        assert origin == 0x3000
        assert mem.dump(0x3000, 2) == [0x1024, 0xF025]

    def test_big_endian(self):
        mem = Memory()
        mem.load_image(bytes([0x30, 0x00, 0x12, 0x34]))
        assert mem.read(0x3000) == 0x1234

    def test_origin_only(self):
        mem = Memory()
        assert mem.load_image(bytes([0x40, 0x00])) == 0x4000

    def test_empty_image(self):
        with pytest.raises(ImageFormatError):
            Memory().load_image(b"")

    def test_odd_length(self):
        with pytest.raises(ImageFormatError):
            Memory().load_image(bytes([0x30, 0x00, 0x12]))

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "prog.obj"
        path.write_bytes(make_image(0x3000, [0xE002]))
        mem = Memory()
        assert mem.load_image_file(path) == 0x3000
        assert mem.read(0x3000) == 0xE002

    def test_load_wraps_at_top_of_memory(self):
        mem = Memory()
        mem.load_words([1, 2, 3], 0xFFFE)
        assert mem.dump(0xFFFE, 2) == [1, 2]
        assert mem.read(0x0000) == 3

    def test_load_bypasses_devices(self):
        mem, io = keyboard_memory(b"x")
        mem.load_words([0x1111, 0x2222, 0x3333], MR_KBSR)
        assert io.has_input()


class TestInspection:

    def test_clear(self):
        mem = Memory()
        mem.write(0x3000, 5)
        mem.clear()
        assert mem.read(0x3000) == 0

    def test_hexdump(self):
        mem = Memory()
        mem.load_words([0x0048, 0x0069, 0x0000], 0x3000)
        text = mem.hexdump(0x3000, 8)
        assert text.startswith("x3000  0048 0069 0000")
        assert text.endswith("Hi......")

    def test_hexdump_multiple_lines(self):
        assert len(Memory().hexdump(0x3000, 24).splitlines()) == 3
