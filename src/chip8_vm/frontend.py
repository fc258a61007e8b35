"""pygame frontend: window, tone and keyboard for the interpreter.

Keyboard layout (CHIP-8 keypad -> host keys):

    1 2 3 C        1 2 3 4
    4 5 6 D   ->   Q W E R
    7 8 9 E        A S D F
    A 0 B F        Z X C V

Input events are drained once per rendered frame; the pacer then runs
however many cycles the elapsed time is worth, so key state is stable
across all cycles of a frame. Frames that run no cycles keep
accumulating input until one does.
"""

import logging
import random
import time
from array import array
from dataclasses import dataclass
from typing import Optional, Tuple

import pygame

from .cpu import Chip8
from .display import DISPLAY_HEIGHT, DISPLAY_WIDTH
from .errors import PresentationError
from .interfaces import Beeper, Drawer, Grid, NullBeeper
from .shell import CYCLES_PER_SECOND, FixedStepPacer, KeyState, run_frame

logger = logging.getLogger(__name__)

SCALE = 10
FPS = 60
TONE_HZ = 440
BEEP_SECONDS = 0.2
SAMPLE_RATE = 44100

BEEP_OFF_EVENT = pygame.USEREVENT + 1

KEYMAP = {
    pygame.K_1: 0x1,
    pygame.K_2: 0x2,
    pygame.K_3: 0x3,
    pygame.K_4: 0xC,
    pygame.K_q: 0x4,
    pygame.K_w: 0x5,
    pygame.K_e: 0x6,
    pygame.K_r: 0xD,
    pygame.K_a: 0x7,
    pygame.K_s: 0x8,
    pygame.K_d: 0x9,
    pygame.K_f: 0xE,
    pygame.K_z: 0xA,
    pygame.K_x: 0x0,
    pygame.K_c: 0xB,
    pygame.K_v: 0xF,
}


@dataclass
class FrontendConfig:
    """Settings for the pygame frontend."""
    title: str = "CHIP-8"
    scale: int = SCALE
    fps: int = FPS
    cycles_per_second: int = CYCLES_PER_SECOND
    tone_hz: int = TONE_HZ
    beep_seconds: float = BEEP_SECONDS
    volume: float = 0.1
    seed: Optional[int] = None
    foreground: Tuple[int, int, int] = (255, 255, 255)
    background: Tuple[int, int, int] = (0, 0, 0)


class Window(Drawer):
    """Scaled pygame window.

    ``draw()`` only paints the 64x32 backbuffer; ``present()`` scales it to
    the window once per frame.
    """

    def __init__(self, config: FrontendConfig):
        self.config = config
        size = (DISPLAY_WIDTH * config.scale, DISPLAY_HEIGHT * config.scale)
        self.screen = pygame.display.set_mode(size)
        pygame.display.set_caption(config.title)
        self.backbuffer = pygame.Surface((DISPLAY_WIDTH, DISPLAY_HEIGHT))
        self.backbuffer.fill(config.background)
        logger.info("opened %dx%d window", *size)

    def draw(self, grid: Grid) -> None:
        fg, bg = self.config.foreground, self.config.background
        try:
            self.backbuffer.lock()
            try:
                for y, row in enumerate(grid):
                    for x, lit in enumerate(row):
                        self.backbuffer.set_at((x, y), fg if lit else bg)
            finally:
                self.backbuffer.unlock()
        except pygame.error as e:
            raise PresentationError(f"failed to draw frame: {e}") from e

    def present(self) -> None:
        try:
            pygame.transform.scale(self.backbuffer, self.screen.get_size(), self.screen)
            pygame.display.flip()
        except pygame.error as e:
            raise PresentationError(f"failed to present frame: {e}") from e


def build_square_wave(sample_rate: int, tone_hz: int, channels: int = 1, amplitude: int = 2 ** 15 - 1) -> array:
    """One period of a signed 16-bit square wave, samples interleaved per channel."""
    period = max(int(round(sample_rate / tone_hz)), 2)
    half = period // 2
    samples = [amplitude] * half + [-amplitude] * (period - half)
    return array("h", [s for s in samples for _ in range(channels)])


class SquareWaveBeeper(Beeper):
    """Looping square-wave tone with a single re-armable shutoff timer.

    Each ``beep()`` restarts the tone and re-arms the same pygame timer,
    so overlapping beeps extend the tone instead of stacking timers. The
    event loop calls ``silence()`` when BEEP_OFF_EVENT arrives.
    """

    def __init__(self, config: FrontendConfig):
        self.duration_ms = max(int(config.beep_seconds * 1000), 1)
        sample_rate, _, channels = pygame.mixer.get_init()
        self.sound = pygame.mixer.Sound(buffer=build_square_wave(sample_rate, config.tone_hz, channels))
        self.sound.set_volume(config.volume)
        self.playing = False

    def beep(self) -> None:
        if not self.playing:
            self.sound.play(loops=-1)
            self.playing = True
        pygame.time.set_timer(BEEP_OFF_EVENT, self.duration_ms, loops=1)

    def silence(self) -> None:
        self.sound.stop()
        self.playing = False


def _open_beeper(config: FrontendConfig) -> Beeper:
    try:
        if not pygame.mixer.get_init():
            pygame.mixer.init()
    except pygame.error as e:
        logger.warning("audio unavailable, running silent: %s", e)
        return NullBeeper()
    return SquareWaveBeeper(config)


def _handle_event(event, keys: KeyState, beeper: Beeper) -> bool:
    """Apply one pygame event. Returns False when the user asked to quit."""
    if event.type == pygame.QUIT:
        return False
    if event.type == pygame.KEYDOWN:
        if event.key == pygame.K_ESCAPE:
            return False
        if event.key in KEYMAP:
            keys.press(KEYMAP[event.key])
    elif event.type == pygame.KEYUP:
        if event.key in KEYMAP:
            keys.release(KEYMAP[event.key])
    elif event.type == BEEP_OFF_EVENT and isinstance(beeper, SquareWaveBeeper):
        beeper.silence()
    return True


def run(rom: bytes, config: Optional[FrontendConfig] = None) -> int:
    """Open a window and run a ROM until the window is closed.

    Args:
        rom: Program bytes
        config: Frontend settings (defaults if None)

    Returns:
        Number of cycles executed

    Raises:
        Chip8Error: Any fatal interpreter or presentation error
    """
    config = config or FrontendConfig()

    pygame.mixer.pre_init(SAMPLE_RATE, -16, 1, 512)
    pygame.init()
    try:
        window = Window(config)
        beeper = _open_beeper(config)
        keys = KeyState()
        rng = random.Random(config.seed)
        machine = Chip8(keys, beeper, window, rng=rng)
        machine.load_rom(rom)

        pacer = FixedStepPacer(config.cycles_per_second)
        clock = pygame.time.Clock()
        last = time.perf_counter()
        running = True

        while running:
            for event in pygame.event.get():
                if not _handle_event(event, keys, beeper):
                    running = False

            now = time.perf_counter()
            run_frame(machine, keys, pacer, now - last)
            last = now

            window.present()
            clock.tick(config.fps)

        logger.info("stopped after %d cycles", machine.get_cycle_count())
        return machine.get_cycle_count()
    except Exception:
        logger.error("emulation stopped", exc_info=True)
        raise
    finally:
        pygame.quit()
