"""chip8-vm: a bit-exact CHIP-8 virtual machine.

The interpreter owns 16 8-bit registers, a 16-bit index register, 4 KiB of
memory with a built-in hex font, a 16-entry call stack and two countdown
timers, and advances them one instruction per cycle.

Core cycle:
    MEMORY -> FETCH -> DECODE -> REGISTRY -> EXECUTE -> TIMERS
               |         |          |           |          |
           [PC += 2] [Instruction] [Handler] [Framebuffer] [Beeper]

Window, audio and keyboard are collaborators behind the Keys, Beeper and
Drawer interfaces; the pygame frontend and the headless implementations
are interchangeable.

Modules:
    opcodes: Instruction enum, Opcode bit fields, decode, disassemble
    display: 64x32 Framebuffer with XOR sprite drawing
    state: Chip8State registers/memory/stack/timers
    registry: One verified handler per instruction
    cpu: Chip8 orchestrator (load_rom, cycle, trace)
    assembler: Mnemonic assembler for building ROMs
    shell: Key edge tracking and fixed-step pacing
    frontend: pygame window, tone and keyboard
"""

__version__ = "0.1.0"

from .assembler import assemble
from .cpu import Chip8, ExecutionTraceEntry
from .display import DISPLAY_HEIGHT, DISPLAY_WIDTH, Framebuffer
from .errors import (
    AssemblerError,
    Chip8Error,
    DecodeError,
    MemoryAccessError,
    PresentationError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from .interfaces import Beeper, Drawer, Keys
from .opcodes import Instruction, Opcode, decode, disassemble
from .registry import InstructionRegistry
from .state import Chip8State

__all__ = [
    "Chip8",
    "Chip8State",
    "ExecutionTraceEntry",
    "Framebuffer",
    "InstructionRegistry",
    "Instruction",
    "Opcode",
    "decode",
    "disassemble",
    "assemble",
    "Keys",
    "Beeper",
    "Drawer",
    "DISPLAY_WIDTH",
    "DISPLAY_HEIGHT",
    "Chip8Error",
    "DecodeError",
    "RomTooLargeError",
    "StackOverflowError",
    "StackUnderflowError",
    "MemoryAccessError",
    "PresentationError",
    "AssemblerError",
]
