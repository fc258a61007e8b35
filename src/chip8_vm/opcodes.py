"""Opcode decoding for the CHIP-8 instruction set.

A 16-bit instruction word is classified by its high nibble into an opcode
family. Families 0x0, 0x8, 0xE and 0xF need a second look at the low byte
or low nibble; 0x5 and 0x9 are only valid with a trailing zero nibble.
Anything else decodes to ``Instruction.UNKNOWN``.

Bit fields:
    x   = bits 8-11 (register index)
    y   = bits 4-7  (register index)
    n   = bits 0-3  (4-bit immediate)
    nn  = bits 0-7  (8-bit immediate)
    nnn = bits 0-11 (12-bit address)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Instruction(Enum):
    """Closed set of CHIP-8 instructions, named by their opcode pattern."""

    UNKNOWN = "UNKNOWN"
    I00E0 = "00E0"  # clear screen
    I00EE = "00EE"  # return
    I1NNN = "1NNN"  # jump
    I2NNN = "2NNN"  # call
    I3XNN = "3XNN"  # skip if Vx == nn
    I4XNN = "4XNN"  # skip if Vx != nn
    I5XY0 = "5XY0"  # skip if Vx == Vy
    I6XNN = "6XNN"  # Vx = nn
    I7XNN = "7XNN"  # Vx += nn
    I8XY0 = "8XY0"  # Vx = Vy
    I8XY1 = "8XY1"  # Vx |= Vy
    I8XY2 = "8XY2"  # Vx &= Vy
    I8XY3 = "8XY3"  # Vx ^= Vy
    I8XY4 = "8XY4"  # Vx += Vy, VF = carry
    I8XY5 = "8XY5"  # Vx -= Vy, VF = not borrow
    I8XY6 = "8XY6"  # Vx = Vy >> 1, VF = shifted-out bit
    I8XY7 = "8XY7"  # Vx = Vy - Vx, VF = not borrow
    I8XYE = "8XYE"  # Vx = Vy << 1, VF = shifted-out bit
    I9XY0 = "9XY0"  # skip if Vx != Vy
    IANNN = "ANNN"  # I = nnn
    IBNNN = "BNNN"  # jump to V0 + nnn
    ICXNN = "CXNN"  # Vx = random & nn
    IDXYN = "DXYN"  # draw sprite
    IEX9E = "EX9E"  # skip if key Vx down
    IEXA1 = "EXA1"  # skip if key Vx up
    IFX07 = "FX07"  # Vx = delay timer
    IFX0A = "FX0A"  # wait for key release
    IFX15 = "FX15"  # delay timer = Vx
    IFX18 = "FX18"  # sound timer = Vx
    IFX1E = "FX1E"  # I += Vx
    IFX29 = "FX29"  # I = font glyph for Vx
    IFX33 = "FX33"  # BCD of Vx at I
    IFX55 = "FX55"  # store V0..Vx at I
    IFX65 = "FX65"  # load V0..Vx from I


_FAMILY_0: Dict[int, Instruction] = {
    0xE0: Instruction.I00E0,
    0xEE: Instruction.I00EE,
}

_FAMILY_8: Dict[int, Instruction] = {
    0x0: Instruction.I8XY0,
    0x1: Instruction.I8XY1,
    0x2: Instruction.I8XY2,
    0x3: Instruction.I8XY3,
    0x4: Instruction.I8XY4,
    0x5: Instruction.I8XY5,
    0x6: Instruction.I8XY6,
    0x7: Instruction.I8XY7,
    0xE: Instruction.I8XYE,
}

_FAMILY_E: Dict[int, Instruction] = {
    0x9E: Instruction.IEX9E,
    0xA1: Instruction.IEXA1,
}

_FAMILY_F: Dict[int, Instruction] = {
    0x07: Instruction.IFX07,
    0x0A: Instruction.IFX0A,
    0x15: Instruction.IFX15,
    0x18: Instruction.IFX18,
    0x1E: Instruction.IFX1E,
    0x29: Instruction.IFX29,
    0x33: Instruction.IFX33,
    0x55: Instruction.IFX55,
    0x65: Instruction.IFX65,
}

# Families fully identified by the high nibble
_SIMPLE: Dict[int, Instruction] = {
    0x1000: Instruction.I1NNN,
    0x2000: Instruction.I2NNN,
    0x3000: Instruction.I3XNN,
    0x4000: Instruction.I4XNN,
    0x6000: Instruction.I6XNN,
    0x7000: Instruction.I7XNN,
    0xA000: Instruction.IANNN,
    0xB000: Instruction.IBNNN,
    0xC000: Instruction.ICXNN,
    0xD000: Instruction.IDXYN,
}


def decode(word: int) -> Instruction:
    """Classify a 16-bit instruction word.

    Args:
        word: Raw instruction word

    Returns:
        The matching Instruction, or Instruction.UNKNOWN
    """
    family = word & 0xF000
    nn = word & 0x00FF
    n = word & 0x000F

    if family in _SIMPLE:
        return _SIMPLE[family]
    if family == 0x0000:
        return _FAMILY_0.get(nn, Instruction.UNKNOWN)
    if family == 0x5000:
        return Instruction.I5XY0 if n == 0 else Instruction.UNKNOWN
    if family == 0x8000:
        return _FAMILY_8.get(n, Instruction.UNKNOWN)
    if family == 0x9000:
        return Instruction.I9XY0 if n == 0 else Instruction.UNKNOWN
    if family == 0xE000:
        return _FAMILY_E.get(nn, Instruction.UNKNOWN)
    if family == 0xF000:
        return _FAMILY_F.get(nn, Instruction.UNKNOWN)
    return Instruction.UNKNOWN


@dataclass(frozen=True)
class Opcode:
    """A fetched instruction word with its bit-field accessors.

    Attributes:
        word: Raw 16-bit instruction word
    """
    word: int

    @property
    def instruction(self) -> Instruction:
        return decode(self.word)

    @property
    def x(self) -> int:
        return (self.word & 0x0F00) >> 8

    @property
    def y(self) -> int:
        return (self.word & 0x00F0) >> 4

    @property
    def n(self) -> int:
        return self.word & 0x000F

    @property
    def nn(self) -> int:
        return self.word & 0x00FF

    @property
    def nnn(self) -> int:
        return self.word & 0x0FFF

    def __str__(self) -> str:
        return (
            f"opcode: 0x{self.word:04x}, x: 0x{self.x:01x}, y: 0x{self.y:01x}, "
            f"n: 0x{self.n:01x}, nn: 0x{self.nn:02x}, nnn: 0x{self.nnn:03x}"
        )


def disassemble(word: int) -> str:
    """Render an instruction word as an assembly mnemonic.

    The output is accepted by ``chip8_vm.assembler.assemble``. Words that
    do not decode come out as a ``DW`` data directive.

    Args:
        word: Raw instruction word

    Returns:
        Mnemonic string, e.g. "LD V3, 0x1F" or "DRW V0, V1, 5"
    """
    op = Opcode(word)
    x, y, n, nn, nnn = op.x, op.y, op.n, op.nn, op.nnn
    vx = f"V{x:X}"
    vy = f"V{y:X}"

    formats = {
        Instruction.I00E0: "CLS",
        Instruction.I00EE: "RET",
        Instruction.I1NNN: f"JP 0x{nnn:03X}",
        Instruction.I2NNN: f"CALL 0x{nnn:03X}",
        Instruction.I3XNN: f"SE {vx}, 0x{nn:02X}",
        Instruction.I4XNN: f"SNE {vx}, 0x{nn:02X}",
        Instruction.I5XY0: f"SE {vx}, {vy}",
        Instruction.I6XNN: f"LD {vx}, 0x{nn:02X}",
        Instruction.I7XNN: f"ADD {vx}, 0x{nn:02X}",
        Instruction.I8XY0: f"LD {vx}, {vy}",
        Instruction.I8XY1: f"OR {vx}, {vy}",
        Instruction.I8XY2: f"AND {vx}, {vy}",
        Instruction.I8XY3: f"XOR {vx}, {vy}",
        Instruction.I8XY4: f"ADD {vx}, {vy}",
        Instruction.I8XY5: f"SUB {vx}, {vy}",
        Instruction.I8XY6: f"SHR {vx}, {vy}",
        Instruction.I8XY7: f"SUBN {vx}, {vy}",
        Instruction.I8XYE: f"SHL {vx}, {vy}",
        Instruction.I9XY0: f"SNE {vx}, {vy}",
        Instruction.IANNN: f"LD I, 0x{nnn:03X}",
        Instruction.IBNNN: f"JP V0, 0x{nnn:03X}",
        Instruction.ICXNN: f"RND {vx}, 0x{nn:02X}",
        Instruction.IDXYN: f"DRW {vx}, {vy}, {n}",
        Instruction.IEX9E: f"SKP {vx}",
        Instruction.IEXA1: f"SKNP {vx}",
        Instruction.IFX07: f"LD {vx}, DT",
        Instruction.IFX0A: f"LD {vx}, K",
        Instruction.IFX15: f"LD DT, {vx}",
        Instruction.IFX18: f"LD ST, {vx}",
        Instruction.IFX1E: f"ADD I, {vx}",
        Instruction.IFX29: f"LD F, {vx}",
        Instruction.IFX33: f"LD B, {vx}",
        Instruction.IFX55: f"LD [I], {vx}",
        Instruction.IFX65: f"LD {vx}, [I]",
    }
    return formats.get(op.instruction, f"DW 0x{word:04X}")
