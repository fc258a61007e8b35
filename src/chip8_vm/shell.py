"""Backend-independent pieces of the run loop.

KeyState tracks the 16 virtual keys across input frames so that key
releases can be detected as edges. FixedStepPacer converts elapsed
wall-clock time into a whole number of interpreter cycles, and
run_frame ties the two together for one video frame.
"""

from typing import List

from .cpu import Chip8
from .interfaces import Keys

KEY_COUNT = 16
CYCLES_PER_SECOND = 500
MAX_FRAME_SECONDS = 0.25


class KeyState(Keys):
    """Current and previous-frame state of the virtual keypad.

    ``start_frame()`` closes an input frame: the current state becomes the
    previous one. Call it only after at least one cycle has seen the frame,
    otherwise a release is dropped before anything reads it.
    """

    def __init__(self):
        self.current: List[bool] = [False] * KEY_COUNT
        self.previous: List[bool] = [False] * KEY_COUNT

    def start_frame(self) -> None:
        self.previous = list(self.current)

    def press(self, index: int) -> None:
        self.current[index] = True

    def release(self, index: int) -> None:
        self.current[index] = False

    def is_key_down(self, index: int) -> bool:
        return self.current[index]

    def was_key_released(self, index: int) -> bool:
        return self.previous[index] and not self.current[index]


class FixedStepPacer:
    """Fixed-step accumulator.

    Elapsed time is added to an accumulator; every whole cycle duration
    in it becomes one cycle to run, and the remainder carries over.
    Elapsed time is clamped to ``max_elapsed`` so a stalled host does not
    trigger a burst of catch-up cycles.

    Attributes:
        cycles_per_second: Interpreter speed
        max_elapsed: Longest interval accounted for in one call, in seconds
        accumulator: Fraction of a cycle carried to the next call
    """

    # absorbs float error so 0.5 + 0.5 cycles is never 0.999... cycles
    EPSILON = 1e-9

    def __init__(self, cycles_per_second: int = CYCLES_PER_SECOND,
                 max_elapsed: float = MAX_FRAME_SECONDS):
        if cycles_per_second <= 0:
            raise ValueError("cycles_per_second must be positive")
        if max_elapsed <= 0:
            raise ValueError("max_elapsed must be positive")
        self.cycles_per_second = cycles_per_second
        self.max_elapsed = max_elapsed
        self.accumulator = 0.0

    def advance(self, elapsed: float) -> int:
        """Account for ``elapsed`` seconds.

        Args:
            elapsed: Wall-clock seconds since the previous call

        Returns:
            Number of cycles to run now
        """
        elapsed = min(max(elapsed, 0.0), self.max_elapsed)
        self.accumulator += elapsed * self.cycles_per_second
        cycles = int(self.accumulator + self.EPSILON)
        self.accumulator = max(self.accumulator - cycles, 0.0)
        return cycles


def run_frame(machine: Chip8, keys: KeyState, pacer: FixedStepPacer, elapsed: float) -> int:
    """Run the cycles ``elapsed`` seconds are worth, then close the key frame.

    Key events for the frame must already be applied to ``keys``. When no
    cycle runs, the frame stays open so its releases reach the next cycle.

    Returns:
        Number of cycles run
    """
    cycles = pacer.advance(elapsed)
    for _ in range(cycles):
        machine.cycle()
    if cycles:
        keys.start_frame()
    return cycles
