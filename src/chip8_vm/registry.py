"""InstructionRegistry: execution primitives for every CHIP-8 instruction.

Each decoded ``Instruction`` maps to exactly one handler. A handler takes
the running machine and the fetched ``Opcode`` and mutates the machine in
place. PC has already been advanced past the instruction when a handler
runs, so jumps overwrite it and skips add 2 more.

The registry is frozen after initialization and refuses to build unless
every instruction except ``UNKNOWN`` has a handler.

Arithmetic conventions:
    - 8-bit registers wrap modulo 256
    - VF is written after the result, so VF as a destination ends up
      holding the flag
    - Shifts copy Vy into Vx before shifting
"""

from typing import TYPE_CHECKING, Callable, Dict, Optional

from .display import DISPLAY_HEIGHT, DISPLAY_WIDTH
from .errors import StackOverflowError, StackUnderflowError
from .opcodes import Instruction, Opcode
from .state import FONT_GLYPH_SIZE, STACK_DEPTH

if TYPE_CHECKING:
    from .cpu import Chip8

Handler = Callable[["Chip8", Opcode], None]

KEY_COUNT = 16


class InstructionRegistry:
    """Frozen table of instruction handlers.

    Attributes:
        _handlers: Dictionary mapping instructions to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction handlers."""
        self._handlers: Dict[Instruction, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self._check_complete()
        self.freeze()

    def _register_all_handlers(self) -> None:
        """Register one handler per instruction."""
        # Flow control
        self.register(Instruction.I00E0, self._op_clear)
        self.register(Instruction.I00EE, self._op_return)
        self.register(Instruction.I1NNN, self._op_jump)
        self.register(Instruction.I2NNN, self._op_call)
        self.register(Instruction.IBNNN, self._op_jump_offset)

        # Conditional skips
        self.register(Instruction.I3XNN, self._op_skip_eq_imm)
        self.register(Instruction.I4XNN, self._op_skip_ne_imm)
        self.register(Instruction.I5XY0, self._op_skip_eq_reg)
        self.register(Instruction.I9XY0, self._op_skip_ne_reg)

        # Immediate arithmetic
        self.register(Instruction.I6XNN, self._op_set_imm)
        self.register(Instruction.I7XNN, self._op_add_imm)
        self.register(Instruction.ICXNN, self._op_random)

        # Register-to-register arithmetic
        self.register(Instruction.I8XY0, self._op_set_reg)
        self.register(Instruction.I8XY1, self._op_or)
        self.register(Instruction.I8XY2, self._op_and)
        self.register(Instruction.I8XY3, self._op_xor)
        self.register(Instruction.I8XY4, self._op_add_reg)
        self.register(Instruction.I8XY5, self._op_sub)
        self.register(Instruction.I8XY6, self._op_shift_right)
        self.register(Instruction.I8XY7, self._op_sub_reverse)
        self.register(Instruction.I8XYE, self._op_shift_left)

        # Index register and memory
        self.register(Instruction.IANNN, self._op_set_index)
        self.register(Instruction.IFX1E, self._op_add_index)
        self.register(Instruction.IFX29, self._op_font_char)
        self.register(Instruction.IFX33, self._op_bcd)
        self.register(Instruction.IFX55, self._op_store)
        self.register(Instruction.IFX65, self._op_load)

        # Display
        self.register(Instruction.IDXYN, self._op_draw)

        # Input
        self.register(Instruction.IEX9E, self._op_skip_key_down)
        self.register(Instruction.IEXA1, self._op_skip_key_up)
        self.register(Instruction.IFX0A, self._op_wait_key)

        # Timers
        self.register(Instruction.IFX07, self._op_get_delay)
        self.register(Instruction.IFX15, self._op_set_delay)
        self.register(Instruction.IFX18, self._op_set_sound)

    def register(self, key: Instruction, handler: Handler) -> None:
        """Register a handler.

        Args:
            key: Instruction the handler executes
            handler: Function taking (machine, opcode)

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered or is UNKNOWN
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if key is Instruction.UNKNOWN:
            raise ValueError("UNKNOWN has no handler")
        if key in self._handlers:
            raise ValueError(f"Handler already registered: {key.value}")
        self._handlers[key] = handler

    def _check_complete(self) -> None:
        missing = [
            i.value for i in Instruction
            if i is not Instruction.UNKNOWN and i not in self._handlers
        ]
        if missing:
            raise RuntimeError(f"No handler for: {', '.join(missing)}")

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all instructions with a handler."""
        return set(self._handlers.keys())

    def execute(self, machine: "Chip8", opcode: Opcode) -> None:
        """Execute the handler for an opcode's instruction.

        Raises:
            KeyError: If the instruction has no handler (UNKNOWN)
        """
        key = opcode.instruction
        if key not in self._handlers:
            raise KeyError(f"No handler for instruction: {key.value}")
        self._handlers[key](machine, opcode)

    # =========================================================================
    # Flow Control
    # =========================================================================

    def _op_clear(self, machine: "Chip8", op: Opcode) -> None:
        """CLS - Clear the framebuffer."""
        machine.framebuffer.clear()

    def _op_return(self, machine: "Chip8", op: Opcode) -> None:
        """RET - Pop a return address into PC.

        Raises:
            StackUnderflowError: If nothing has been pushed
        """
        state = machine.state
        if state.sp == 0:
            raise StackUnderflowError(f"RET with empty stack at 0x{state.pc - 2:03X}")
        state.sp -= 1
        state.pc = state.stack[state.sp]

    def _op_jump(self, machine: "Chip8", op: Opcode) -> None:
        """JP nnn"""
        machine.state.pc = op.nnn

    def _op_call(self, machine: "Chip8", op: Opcode) -> None:
        """CALL nnn - Push the return address and jump.

        Raises:
            StackOverflowError: If all stack slots are in use
        """
        state = machine.state
        if state.sp >= STACK_DEPTH:
            raise StackOverflowError(f"CALL with full stack at 0x{state.pc - 2:03X}")
        state.stack[state.sp] = state.pc
        state.sp += 1
        state.pc = op.nnn

    def _op_jump_offset(self, machine: "Chip8", op: Opcode) -> None:
        """JP V0, nnn - Jump to nnn + V0."""
        machine.state.pc = (machine.state.v[0] + op.nnn) & 0xFFFF

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    @staticmethod
    def _skip_if(machine: "Chip8", condition: bool) -> None:
        if condition:
            machine.state.pc = (machine.state.pc + 2) & 0xFFFF

    def _op_skip_eq_imm(self, machine: "Chip8", op: Opcode) -> None:
        """SE Vx, nn"""
        self._skip_if(machine, machine.state.v[op.x] == op.nn)

    def _op_skip_ne_imm(self, machine: "Chip8", op: Opcode) -> None:
        """SNE Vx, nn"""
        self._skip_if(machine, machine.state.v[op.x] != op.nn)

    def _op_skip_eq_reg(self, machine: "Chip8", op: Opcode) -> None:
        """SE Vx, Vy"""
        v = machine.state.v
        self._skip_if(machine, v[op.x] == v[op.y])

    def _op_skip_ne_reg(self, machine: "Chip8", op: Opcode) -> None:
        """SNE Vx, Vy"""
        v = machine.state.v
        self._skip_if(machine, v[op.x] != v[op.y])

    # =========================================================================
    # Immediate Arithmetic
    # =========================================================================

    def _op_set_imm(self, machine: "Chip8", op: Opcode) -> None:
        """LD Vx, nn"""
        machine.state.v[op.x] = op.nn

    def _op_add_imm(self, machine: "Chip8", op: Opcode) -> None:
        """ADD Vx, nn - Wrapping add, VF untouched."""
        v = machine.state.v
        v[op.x] = (v[op.x] + op.nn) & 0xFF

    def _op_random(self, machine: "Chip8", op: Opcode) -> None:
        """RND Vx, nn - Random byte masked with nn."""
        machine.state.v[op.x] = machine.rng.randrange(256) & op.nn

    # =========================================================================
    # Register-to-Register Arithmetic
    # =========================================================================

    def _op_set_reg(self, machine: "Chip8", op: Opcode) -> None:
        """LD Vx, Vy"""
        v = machine.state.v
        v[op.x] = v[op.y]

    def _op_or(self, machine: "Chip8", op: Opcode) -> None:
        """OR Vx, Vy"""
        v = machine.state.v
        v[op.x] |= v[op.y]

    def _op_and(self, machine: "Chip8", op: Opcode) -> None:
        """AND Vx, Vy"""
        v = machine.state.v
        v[op.x] &= v[op.y]

    def _op_xor(self, machine: "Chip8", op: Opcode) -> None:
        """XOR Vx, Vy"""
        v = machine.state.v
        v[op.x] ^= v[op.y]

    def _op_add_reg(self, machine: "Chip8", op: Opcode) -> None:
        """ADD Vx, Vy - VF = 1 if the 9-bit sum exceeds 255."""
        v = machine.state.v
        total = v[op.x] + v[op.y]
        v[op.x] = total & 0xFF
        v[0xF] = 1 if total > 0xFF else 0

    def _op_sub(self, machine: "Chip8", op: Opcode) -> None:
        """SUB Vx, Vy - Vx = Vx - Vy, VF = 1 if Vx > Vy beforehand."""
        v = machine.state.v
        vx, vy = v[op.x], v[op.y]
        v[op.x] = (vx - vy) & 0xFF
        v[0xF] = 1 if vx > vy else 0

    def _op_sub_reverse(self, machine: "Chip8", op: Opcode) -> None:
        """SUBN Vx, Vy - Vx = Vy - Vx, VF = 1 if Vy > Vx beforehand."""
        v = machine.state.v
        vx, vy = v[op.x], v[op.y]
        v[op.x] = (vy - vx) & 0xFF
        v[0xF] = 1 if vy > vx else 0

    def _op_shift_right(self, machine: "Chip8", op: Opcode) -> None:
        """SHR Vx, Vy - Vx = Vy >> 1, VF = low bit of Vy."""
        v = machine.state.v
        source = v[op.y]
        v[op.x] = source >> 1
        v[0xF] = source & 0x1

    def _op_shift_left(self, machine: "Chip8", op: Opcode) -> None:
        """SHL Vx, Vy - Vx = Vy << 1, VF = high bit of Vy."""
        v = machine.state.v
        source = v[op.y]
        v[op.x] = (source << 1) & 0xFF
        v[0xF] = source >> 7

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_set_index(self, machine: "Chip8", op: Opcode) -> None:
        """LD I, nnn"""
        machine.state.i = op.nnn

    def _op_add_index(self, machine: "Chip8", op: Opcode) -> None:
        """ADD I, Vx - Wraps at 16 bits, VF untouched."""
        state = machine.state
        state.i = (state.i + state.v[op.x]) & 0xFFFF

    def _op_font_char(self, machine: "Chip8", op: Opcode) -> None:
        """LD F, Vx - Point I at the font glyph for Vx."""
        state = machine.state
        state.i = state.v[op.x] * FONT_GLYPH_SIZE

    def _op_bcd(self, machine: "Chip8", op: Opcode) -> None:
        """LD B, Vx - Store hundreds, tens and ones digits of Vx at I."""
        state = machine.state
        value = state.v[op.x]
        state.write(state.i, (value // 100, (value // 10) % 10, value % 10))

    def _op_store(self, machine: "Chip8", op: Opcode) -> None:
        """LD [I], Vx - Store V0..Vx at I. I is left unchanged."""
        state = machine.state
        state.write(state.i, state.v[:op.x + 1])

    def _op_load(self, machine: "Chip8", op: Opcode) -> None:
        """LD Vx, [I] - Load V0..Vx from I. I is left unchanged."""
        state = machine.state
        state.v[:op.x + 1] = state.read(state.i, op.x + 1)

    # =========================================================================
    # Display
    # =========================================================================

    def _op_draw(self, machine: "Chip8", op: Opcode) -> None:
        """DRW Vx, Vy, n - XOR an n-row sprite from I at (Vx, Vy).

        The start coordinates wrap onto the screen; the sprite itself is
        clipped at the edges. VF receives the collision flag.
        """
        state = machine.state
        x = state.v[op.x] % DISPLAY_WIDTH
        y = state.v[op.y] % DISPLAY_HEIGHT
        sprite = state.read(state.i, op.n)
        state.v[0xF] = machine.framebuffer.draw_sprite(x, y, sprite)

    # =========================================================================
    # Input
    # =========================================================================

    def _op_skip_key_down(self, machine: "Chip8", op: Opcode) -> None:
        """SKP Vx"""
        key = machine.state.v[op.x] & 0xF
        self._skip_if(machine, machine.keys.is_key_down(key))

    def _op_skip_key_up(self, machine: "Chip8", op: Opcode) -> None:
        """SKNP Vx"""
        key = machine.state.v[op.x] & 0xF
        self._skip_if(machine, not machine.keys.is_key_down(key))

    def _op_wait_key(self, machine: "Chip8", op: Opcode) -> None:
        """LD Vx, K - Wait for a key release.

        Stores the lowest released key in Vx. With no release this frame,
        PC is rewound so the same instruction runs again next cycle.
        """
        state = machine.state
        for key in range(KEY_COUNT):
            if machine.keys.was_key_released(key):
                state.v[op.x] = key
                return
        state.pc = (state.pc - 2) & 0xFFFF

    # =========================================================================
    # Timers
    # =========================================================================

    def _op_get_delay(self, machine: "Chip8", op: Opcode) -> None:
        """LD Vx, DT"""
        machine.state.v[op.x] = machine.state.delay_timer

    def _op_set_delay(self, machine: "Chip8", op: Opcode) -> None:
        """LD DT, Vx"""
        machine.state.delay_timer = machine.state.v[op.x]

    def _op_set_sound(self, machine: "Chip8", op: Opcode) -> None:
        """LD ST, Vx"""
        machine.state.sound_timer = machine.state.v[op.x]


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
