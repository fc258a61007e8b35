#!/usr/bin/env python3
"""chip8-vm Command Line Interface.

Run CHIP-8 programs in a pygame window or headless.

Usage:
    python main.py roms/pong.ch8
    python main.py roms/test.ch8 --headless --cycles 2000 --trace
    python main.py programs/count.asm --asm --headless
"""

import argparse
import logging
import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8, Chip8Error, assemble, disassemble
from chip8_vm.interfaces import CountingBeeper, NullKeys, RecordingDrawer, render_text
from chip8_vm.state import PROGRAM_START


def print_disassembly(rom: bytes) -> None:
    for offset in range(0, len(rom) - 1, 2):
        word = int.from_bytes(rom[offset:offset + 2], "big")
        print(f"0x{PROGRAM_START + offset:03X}: {word:04X}  {disassemble(word)}")
    if len(rom) % 2:
        print(f"0x{PROGRAM_START + len(rom) - 1:03X}: {rom[-1]:02X}    DB 0x{rom[-1]:02X}")


def run_headless(rom: bytes, args) -> int:
    drawer = RecordingDrawer()
    beeper = CountingBeeper()
    cpu = Chip8(NullKeys(), beeper, drawer, rng=random.Random(args.seed), trace=args.trace)
    cpu.load_rom(rom)

    try:
        cpu.run(args.cycles)
    finally:
        if args.trace:
            cpu.print_trace()

    if args.quiet:
        # Quiet mode - just print non-zero registers
        for reg, value in cpu.dump_registers().items():
            if value:
                print(f"{reg}={value}")
        return 0

    summary = cpu.get_summary()
    print(render_text(drawer.last_frame))
    print()
    print(f"Cycles: {summary['cycles']}")
    print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['i']:03X}  SP: {summary['sp']}")
    print(f"Registers: {summary['registers']}")
    print(f"Frames drawn: {drawer.frames}  Beeps: {beeper.count}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="chip8-vm: CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Play a ROM in a window
    python main.py roms/pong.ch8

    # Run 1000 cycles without a window and show the final screen
    python main.py roms/ibm.ch8 --headless --cycles 1000

    # Assemble and disassemble a source file
    python main.py programs/count.asm --asm --disassemble
        """
    )

    parser.add_argument("rom", help="Path to a ROM image (or assembly source with --asm)")
    parser.add_argument(
        "--asm",
        action="store_true",
        help="Treat the input as assembly source"
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without a window for a fixed number of cycles"
    )
    parser.add_argument(
        "--cycles", "-n",
        type=int,
        default=1000,
        help="Cycles to run in headless mode. Default: 1000"
    )
    parser.add_argument(
        "--cycles-per-second",
        type=int,
        default=500,
        help="Interpreter speed in windowed mode. Default: 500"
    )
    parser.add_argument(
        "--scale",
        type=int,
        default=10,
        help="Window pixels per CHIP-8 pixel. Default: 10"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print the program listing and exit"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace (headless mode)"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (non-zero registers only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    rom_path = Path(args.rom)
    if not rom_path.exists():
        print(f"Error: ROM file not found: {args.rom}")
        return 1

    try:
        if args.asm:
            rom = assemble(rom_path.read_text())
        else:
            rom = rom_path.read_bytes()

        if args.disassemble:
            print_disassembly(rom)
            return 0

        if args.headless:
            return run_headless(rom, args)

        # pygame is only needed for the window
        from chip8_vm.frontend import FrontendConfig, run

        config = FrontendConfig(
            title=f"CHIP-8 - {rom_path.name}",
            scale=args.scale,
            cycles_per_second=args.cycles_per_second,
            seed=args.seed,
        )
        run(rom, config)
    except Chip8Error as e:
        print(f"Execution error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
