"""Chip8: the interpreter core.

Each cycle runs:
    FETCH -> DECODE -> EXECUTE -> TIMER TICK

    FETCH:   big-endian word at PC, PC += 2
    DECODE:  opcodes.decode, UNKNOWN raises DecodeError
    EXECUTE: InstructionRegistry handler mutates state / framebuffer
    TICK:    delay and sound timers count down by one; the sound timer
             reaching zero triggers the Beeper once

The core is synchronous and single-threaded. It owns no clock: the
caller decides how many cycles to run per unit of wall-clock time.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, List, Optional, Union

from .display import Framebuffer
from .errors import DecodeError, RomTooLargeError
from .interfaces import Beeper, Drawer, Keys
from .opcodes import Instruction, Opcode, disassemble
from .registry import InstructionRegistry, get_registry
from .state import MAX_ROM_SIZE, PROGRAM_START, Chip8State, create_initial_state

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        pc: Address the instruction was fetched from
        opcode: Fetched opcode (None if the fetch itself failed)
        mnemonic: Disassembled instruction
        pre_state: State before execution
        post_state: State after execution (equal to pre_state on error)
        error: Error message if the cycle raised
    """
    cycle: int
    pc: int
    opcode: Optional[Opcode]
    mnemonic: str
    pre_state: dict
    post_state: dict
    error: Optional[str] = None

    def listing(self) -> str:
        """Address, raw word and mnemonic, e.g. "0x200: 6042  LD V0, 0x42"."""
        if self.opcode is None:
            return f"0x{self.pc:03X}: ----"
        return f"0x{self.pc:03X}: {self.opcode.word:04X}  {self.mnemonic}"


class Chip8:
    """CHIP-8 virtual machine.

    Attributes:
        keys: Key state collaborator
        beeper: Sound trigger collaborator
        framebuffer: Pixel grid, presents through the Drawer
        registry: InstructionRegistry with one handler per instruction
        state: Registers, memory, stack and timers
        rng: Random source for RND
        trace: Most recent trace entries (only filled when tracing)
    """

    DEFAULT_TRACE_LIMIT = 1000

    def __init__(
        self,
        keys: Keys,
        beeper: Beeper,
        drawer: Drawer,
        rng: Optional[random.Random] = None,
        trace: bool = False,
        trace_limit: int = DEFAULT_TRACE_LIMIT,
    ):
        """Initialize the machine in its power-on state.

        Args:
            keys: Key state collaborator
            beeper: Sound trigger collaborator
            drawer: Frame presentation collaborator
            rng: Random source for RND (a fresh unseeded one if None)
            trace: Record an execution trace entry per cycle
            trace_limit: Number of most recent entries kept
        """
        self.keys = keys
        self.beeper = beeper
        self.framebuffer = Framebuffer(drawer)
        self.registry: InstructionRegistry = get_registry()
        self.state: Chip8State = create_initial_state()
        self.rng = rng if rng is not None else random.Random()
        self.trace_enabled = trace
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=trace_limit)

    def reset(self) -> None:
        """Return to the power-on state and clear the screen.

        The loaded ROM is discarded along with the rest of memory.
        """
        self.state = create_initial_state()
        self.trace.clear()
        self.framebuffer.clear()
        logger.debug("machine reset")

    def load_rom(self, data: Union[bytes, bytearray]) -> None:
        """Copy a program into memory at 0x200.

        Args:
            data: Raw program bytes

        Raises:
            RomTooLargeError: If data exceeds 3584 bytes. Memory is left
                untouched.
        """
        if len(data) > MAX_ROM_SIZE:
            raise RomTooLargeError(len(data), MAX_ROM_SIZE)
        self.state.write(PROGRAM_START, data)
        logger.debug("loaded %d byte ROM at 0x%03X", len(data), PROGRAM_START)

    def load_rom_file(self, path: Union[str, Path]) -> None:
        """Read a ROM file and load it."""
        self.load_rom(Path(path).read_bytes())

    def cycle(self) -> None:
        """Run one fetch/decode/execute/timer cycle.

        Raises:
            DecodeError: If the fetched word is not an instruction
            MemoryAccessError: On a fetch or data access outside memory
            StackOverflowError / StackUnderflowError: On CALL/RET misuse
            Exception: Anything the Drawer raises, unchanged
        """
        state = self.state
        pc = state.pc
        opcode = None
        pre_state = state.snapshot() if self.trace_enabled else None

        try:
            opcode = Opcode(int.from_bytes(state.read(pc, 2), "big"))
            state.pc = (pc + 2) & 0xFFFF
            if opcode.instruction is Instruction.UNKNOWN:
                raise DecodeError(pc, opcode.word)
            self.registry.execute(self, opcode)
        except Exception as e:
            if pre_state is not None:
                self._record(pc, opcode, pre_state, pre_state, str(e))
            raise

        self._tick_timers()
        state.cycle_count += 1

        if pre_state is not None:
            self._record(pc, opcode, pre_state, state.snapshot())

    def _tick_timers(self) -> None:
        state = self.state
        if state.delay_timer > 0:
            state.delay_timer -= 1
        if state.sound_timer > 0:
            state.sound_timer -= 1
            if state.sound_timer == 0:
                self.beeper.beep()

    def _record(self, pc: int, opcode: Optional[Opcode], pre: dict, post: dict, error: Optional[str] = None) -> None:
        self.trace.append(ExecutionTraceEntry(
            cycle=pre["cycle_count"],
            pc=pc,
            opcode=opcode,
            mnemonic=disassemble(opcode.word) if opcode is not None else "",
            pre_state=pre,
            post_state=post,
            error=error,
        ))

    def run(self, cycles: int) -> None:
        """Run a fixed number of cycles.

        Args:
            cycles: Number of cycles to run
        """
        for _ in range(cycles):
            self.cycle()

    def get_register(self, reg) -> int:
        """Get value of a register.

        Args:
            reg: Register index (0-15) or name (V0-VF)
        """
        return self.state.get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def get_trace(self) -> List[ExecutionTraceEntry]:
        return list(self.trace)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            print(f"  {entry.listing()}")

            # Show register changes
            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"{reg}: {pre_regs[reg]:02X} -> {post_regs[reg]:02X}"
                for reg in pre_regs
                if pre_regs[reg] != post_regs[reg]
            ]
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            if entry.pre_state["i"] != entry.post_state["i"]:
                print(f"  I: {entry.pre_state['i']:03X} -> {entry.post_state['i']:03X}")

            # Anything other than the default advance is flow control
            if entry.post_state["pc"] != entry.pc + 2:
                print(f"  PC: {entry.pc:03X} -> {entry.post_state['pc']:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        state = self.state
        return {
            "cycles": state.cycle_count,
            "registers": state.dump_registers(),
            "i": state.i,
            "pc": state.pc,
            "sp": state.sp,
            "delay_timer": state.delay_timer,
            "sound_timer": state.sound_timer,
            "lit_pixels": len(self.framebuffer.lit_pixels()),
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
