"""Chip8State: register file, memory, stack and timers of the interpreter.

State Components:
    - V0-VF: 16 general-purpose 8-bit registers (VF doubles as flag output)
    - I: 16-bit index register
    - PC: Program counter, starts at 0x200
    - Stack: 16 return addresses plus stack pointer
    - Memory: 4096 bytes, hex font glyphs preloaded at 0x000
    - Timers: 8-bit delay and sound countdowns
    - Cycle count: Total executed cycles

The state is mutated in place by the interpreter. ``snapshot()`` produces
a detached copy for execution traces.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .errors import MemoryAccessError

MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - PROGRAM_START
STACK_DEPTH = 16
REGISTER_COUNT = 16
FONT_GLYPH_SIZE = 5

FONT_SET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

REGISTER_NAMES = [f"V{i:X}" for i in range(REGISTER_COUNT)]


def _check_range(address: int, length: int) -> None:
    if address < 0:
        raise MemoryAccessError(address)
    if address + length > MEMORY_SIZE:
        raise MemoryAccessError(max(address, MEMORY_SIZE))


def _fresh_memory() -> bytearray:
    memory = bytearray(MEMORY_SIZE)
    memory[:len(FONT_SET)] = FONT_SET
    return memory


@dataclass
class Chip8State:
    """Mutable interpreter state.

    Attributes:
        v: General-purpose registers V0-VF
        i: Index register
        pc: Program counter
        stack: Return addresses
        sp: Stack pointer (number of addresses pushed)
        memory: Address space, font at 0x000, program at 0x200
        delay_timer: Delay countdown
        sound_timer: Sound countdown
        cycle_count: Number of completed cycles
    """
    v: bytearray = field(default_factory=lambda: bytearray(REGISTER_COUNT))
    i: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=lambda: [0] * STACK_DEPTH)
    sp: int = 0
    memory: bytearray = field(default_factory=_fresh_memory)
    delay_timer: int = 0
    sound_timer: int = 0
    cycle_count: int = 0

    def snapshot(self) -> dict:
        """Create a detached copy of the state for tracing.

        Returns:
            Dictionary of registers, I, PC, SP, stack, timers and cycle count
        """
        return {
            "registers": self.dump_registers(),
            "i": self.i,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack[:self.sp]),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "cycle_count": self.cycle_count,
            # memory excluded, 4 KiB per trace entry is too much
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - 16 registers and 4096 bytes of memory
            - PC even and inside memory, I within 16 bits
            - Stack pointer within [0, 16]
            - Timers within 8 bits

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.v) != REGISTER_COUNT or len(self.memory) != MEMORY_SIZE:
            return False
        if len(self.stack) != STACK_DEPTH:
            return False

        if self.pc % 2 or not 0 <= self.pc < MEMORY_SIZE:
            return False
        if not 0 <= self.i <= 0xFFFF:
            return False
        if not 0 <= self.sp <= STACK_DEPTH:
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        return self.cycle_count >= 0

    def read(self, address: int, length: int = 1) -> bytes:
        """Read ``length`` bytes starting at ``address``.

        Raises:
            MemoryAccessError: If any byte lies outside memory
        """
        _check_range(address, length)
        return bytes(self.memory[address:address + length])

    def write(self, address: int, data) -> None:
        """Write bytes starting at ``address``.

        Raises:
            MemoryAccessError: If any byte lies outside memory
        """
        _check_range(address, len(data))
        self.memory[address:address + len(data)] = bytes(data)

    def get_register(self, reg) -> int:
        """Get value of a register.

        Args:
            reg: Register index (0-15) or name ("V0"-"VF", case insensitive)

        Returns:
            Register value

        Raises:
            KeyError: If register doesn't exist
        """
        return self.v[self._register_index(reg)]

    def set_register(self, reg, value: int) -> None:
        """Set a register, wrapping the value to 8 bits."""
        self.v[self._register_index(reg)] = value & 0xFF

    @staticmethod
    def _register_index(reg) -> int:
        if isinstance(reg, int):
            if 0 <= reg < REGISTER_COUNT:
                return reg
            raise KeyError(f"Invalid register: {reg}")
        name = str(reg).upper()
        if name not in REGISTER_NAMES:
            raise KeyError(f"Invalid register: {reg}")
        return REGISTER_NAMES.index(name)

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values.

        Returns:
            Dictionary of register names to values
        """
        return dict(zip(REGISTER_NAMES, self.v))

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"{name}={value:02X}" for name, value in zip(REGISTER_NAMES, self.v))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} SP={self.sp} "
            f"DT={self.delay_timer} ST={self.sound_timer} {regs}"
        )


def create_initial_state() -> Chip8State:
    """Create a power-on state: font loaded, PC at 0x200, everything else zero."""
    return Chip8State()
