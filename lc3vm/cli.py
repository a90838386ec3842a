#!/usr/bin/env python3
"""
lc3vm — LC-3 Virtual Machine CLI

Usage:
    lc3vm <image.obj> [more.obj ...] [--pc 0x3000] [--max-steps N]
                                     [--trace] [--verbose] [--log-file FILE]

Images are loaded in order. PC starts at the origin of the first image
unless --pc is given. Keyboard and console output use stdin/stdout.

Exit codes:
    0  program executed HALT
    1  fault (illegal opcode, I/O failure) or step budget exhausted
    2  usage error or unreadable/malformed image

Examples:
    lc3vm 2048.obj
    lc3vm os.obj hello.obj --pc x3000
    lc3vm loop.obj --max-steps 10000 --trace -v
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import LOG_NAME, DEFAULT_MAX_STEPS
from .emu import LC3Emulator, RunState
from .log_setup import setup_logging
from .mem.memory import ImageFormatError
from .periph.io_provider import ConsoleIOProvider


log = logging.getLogger("lc3vm.cli")


def parse_int_arg(value: str) -> int:
    """Parse an address that may be hex (0x..., x... or $...) or decimal."""
    value = value.strip()
    if value[:2].lower() == "0x":
        return int(value, 16)
    if value[:1] in ("x", "X", "$"):
        return int(value[1:], 16)  # LC-3 assembler convention
    return int(value)


def _address_arg(value: str) -> int:
    try:
        addr = parse_int_arg(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an address: {value!r}")
    if not 0 <= addr <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"address out of range: {value!r}")
    return addr


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lc3vm",
        description="LC-3 virtual machine",
        epilog="Exit codes: 0 = HALT, 1 = fault/timeout, 2 = usage or image error",
    )
    parser.add_argument("images", nargs="+", help="LC-3 object image(s) to load")
    parser.add_argument("--pc", type=_address_arg, default=None,
                        help="Start address (default: origin of first image)")
    parser.add_argument("--max-steps", type=int, default=DEFAULT_MAX_STEPS,
                        help="Stop after N instructions")
    parser.add_argument("--trace", action="store_true",
                        help="Log every executed instruction (needs -v to show)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug output on the console")
    parser.add_argument("--log-file", type=Path, default=None,
                        help="Write a DEBUG log to this file")
    parser.add_argument("--no-rich", action="store_true",
                        help="Plain console logging")
    parser.add_argument("--version", action="version",
                        version=f"lc3vm {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        name=LOG_NAME,
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
        rich_console=not args.no_rich,
    )

    io = ConsoleIOProvider()
    emu = LC3Emulator(io=io)
    emu.enable_trace(args.trace)

    start = None
    for image in args.images:
        try:
            origin = emu.load_image(image, set_pc=False)
        except (OSError, ImageFormatError) as e:
            log.error("Cannot load %s: %s", image, e)
            return 2
        if start is None:
            start = origin
    emu.regs.PC = args.pc if args.pc is not None else start

    try:
        result = emu.run(max_steps=args.max_steps)
    except KeyboardInterrupt:
        log.warning("Interrupted at x%04X", emu.regs.PC)
        return 1
    finally:
        io.close()

    print(file=sys.stderr)
    print(result.summary(), file=sys.stderr)
    return 0 if result.state is RunState.HALTED else 1


if __name__ == "__main__":
    sys.exit(main())
