"""Shared fixtures: deterministic collaborators and a machine factory."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from chip8_vm import Chip8
from chip8_vm.interfaces import CountingBeeper, Keys, RecordingDrawer


class ScriptedKeys(Keys):
    """Keys whose state the test sets directly."""

    def __init__(self):
        self.down = set()
        self.released = set()

    def is_key_down(self, index: int) -> bool:
        return index in self.down

    def was_key_released(self, index: int) -> bool:
        return index in self.released


@pytest.fixture
def keys():
    return ScriptedKeys()


@pytest.fixture
def beeper():
    return CountingBeeper()


@pytest.fixture
def drawer():
    return RecordingDrawer()


@pytest.fixture
def machine(keys, beeper, drawer):
    return Chip8(keys, beeper, drawer, rng=random.Random(1234))


@pytest.fixture
def load(machine):
    """Load 16-bit words as a ROM and return the machine."""
    def _load(*words):
        machine.load_rom(b"".join(w.to_bytes(2, "big") for w in words))
        return machine
    return _load
