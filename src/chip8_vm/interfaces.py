"""Collaborator contracts consumed by the interpreter core.

The core never talks to a window, a sound device or a keyboard directly.
It is handed three capabilities:

    Keys:   is_key_down(i) / was_key_released(i) for virtual keys 0x0-0xF
    Beeper: beep() starts a short tone that silences itself
    Drawer: draw(grid) presents a full 32x64 framebuffer snapshot

Headless implementations live here too; they back the ``--headless``
command line mode, the web demo and the test suite.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

Grid = List[List[bool]]


class Keys(ABC):
    @abstractmethod
    def is_key_down(self, index: int) -> bool:
        """Return True while virtual key ``index`` is held."""

    @abstractmethod
    def was_key_released(self, index: int) -> bool:
        """Return True if key ``index`` was down last input frame and is up now."""


class Beeper(ABC):
    @abstractmethod
    def beep(self) -> None:
        """Start the tone. Safe to call while a tone is already playing."""


class Drawer(ABC):
    @abstractmethod
    def draw(self, grid: Grid) -> None:
        """Present a framebuffer snapshot.

        Raises:
            PresentationError (or any exception): presentation failed. The
            interpreter propagates it unchanged.
        """


class NullKeys(Keys):
    """Keyboard with nothing ever pressed."""

    def is_key_down(self, index: int) -> bool:
        return False

    def was_key_released(self, index: int) -> bool:
        return False


class NullBeeper(Beeper):
    def beep(self) -> None:
        pass


class CountingBeeper(Beeper):
    """Beeper that only counts how often it was triggered."""

    def __init__(self):
        self.count = 0

    def beep(self) -> None:
        self.count += 1


class RecordingDrawer(Drawer):
    """Drawer that keeps a copy of the most recent frame.

    Attributes:
        frames: Number of frames presented so far
        last_frame: Copy of the most recent grid (None before the first draw)
        history: Copies of every frame, only kept when keep_history is True
    """

    def __init__(self, keep_history: bool = False):
        self.frames = 0
        self.last_frame: Optional[Grid] = None
        self.keep_history = keep_history
        self.history: List[Grid] = []

    def draw(self, grid: Grid) -> None:
        frame = [list(row) for row in grid]
        self.frames += 1
        self.last_frame = frame
        if self.keep_history:
            self.history.append(frame)


def render_text(grid: Optional[Grid], on: str = "#", off: str = ".") -> str:
    """Render a framebuffer grid as lines of text."""
    if grid is None:
        return ""
    return "\n".join("".join(on if pixel else off for pixel in row) for row in grid)
