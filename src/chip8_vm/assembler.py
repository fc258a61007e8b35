"""Two-pass assembler for CHIP-8 mnemonics.

Accepts the mnemonics produced by ``opcodes.disassemble``:

    CLS, RET, JP addr, JP V0, addr, CALL addr,
    SE/SNE Vx, byte|Vy, LD Vx, byte|Vy|DT|K|[I], LD I, addr,
    LD DT|ST|F|B|[I], Vx, ADD Vx, byte|Vy, ADD I, Vx,
    OR/AND/XOR/SUB/SUBN Vx, Vy, SHR/SHL Vx[, Vy],
    RND Vx, byte, DRW Vx, Vy, n, SKP/SKNP Vx

plus data directives ``DB byte, ...`` and ``DW word, ...``.

Handles:
    - Labels (``name:``, optionally followed by an instruction)
    - Comments (``;`` to end of line)
    - Blank lines
    - Decimal, 0x hex and 0b binary numbers

The program origin is 0x200.
"""

import re
from typing import Dict, List, Tuple

from .errors import AssemblerError
from .state import MAX_ROM_SIZE, PROGRAM_START

_LABEL_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.*)$")
_REGISTER_RE = re.compile(r"^V([0-9A-F])$")

# 8XYn register-to-register forms
_ALU_OPS = {"OR": 0x1, "AND": 0x2, "XOR": 0x3, "SUB": 0x5, "SUBN": 0x7}

Line = Tuple[int, str, List[str]]


def _parse_immediate(value: str) -> int:
    """Parse a number (decimal, hex, or binary).

    Raises:
        ValueError: If value cannot be parsed
    """
    value = value.strip().upper()

    # Hex: 0x prefix
    if value.startswith("0X"):
        return int(value, 16)

    # Binary: 0b prefix
    if value.startswith("0B"):
        return int(value, 2)

    return int(value)


def _split_lines(source: str) -> List[Line]:
    """Strip comments and split into (line_number, mnemonic, operands).

    Label-only lines come through with an empty mnemonic and the label
    as the single operand prefixed by ':'.
    """
    lines: List[Line] = []

    for number, raw in enumerate(source.split("\n"), start=1):
        line = re.sub(r";.*$", "", raw).strip()

        while line:
            label_match = _LABEL_RE.match(line)
            if not label_match:
                break
            lines.append((number, "", [":" + label_match.group(1)]))
            line = label_match.group(2).strip()

        if not line:
            continue

        parts = line.split(None, 1)
        mnemonic = parts[0].upper()
        operands = []
        if len(parts) > 1:
            operands = [op.strip() for op in parts[1].split(",")]
            if any(not op for op in operands):
                raise AssemblerError(number, f"empty operand in '{line}'")
        lines.append((number, mnemonic, operands))

    return lines


def _size_of(mnemonic: str, operands: List[str]) -> int:
    if mnemonic == "DB":
        return len(operands)
    if mnemonic == "DW":
        return 2 * len(operands)
    return 2


class _Encoder:
    """Second pass: turns one parsed line into bytes."""

    def __init__(self, labels: Dict[str, int]):
        self.labels = labels

    def register(self, number: int, operand: str) -> int:
        match = _REGISTER_RE.match(operand.upper())
        if not match:
            raise AssemblerError(number, f"expected register, got '{operand}'")
        return int(match.group(1), 16)

    @staticmethod
    def is_register(operand: str) -> bool:
        return _REGISTER_RE.match(operand.upper()) is not None

    def number(self, number: int, operand: str, limit: int, what: str) -> int:
        try:
            value = _parse_immediate(operand)
        except ValueError:
            raise AssemblerError(number, f"invalid {what}: '{operand}'")
        if not 0 <= value <= limit:
            raise AssemblerError(number, f"{what} out of range: {operand}")
        return value

    def address(self, number: int, operand: str) -> int:
        """Resolve a jump target: label (case-insensitive) or number."""
        label = operand.upper()
        if label in self.labels:
            value = self.labels[label]
        else:
            try:
                value = _parse_immediate(operand)
            except ValueError:
                raise AssemblerError(number, f"unknown label: {operand}")
        if not 0 <= value <= 0xFFF:
            raise AssemblerError(number, f"address out of range: {operand}")
        return value

    def encode(self, number: int, mnemonic: str, ops: List[str]) -> bytes:
        if mnemonic == "DB":
            return bytes(self.number(number, op, 0xFF, "byte") for op in ops)
        if mnemonic == "DW":
            words = [self.number(number, op, 0xFFFF, "word") for op in ops]
            return b"".join(w.to_bytes(2, "big") for w in words)
        word = self.instruction(number, mnemonic, ops)
        return word.to_bytes(2, "big")

    def _expect(self, number: int, mnemonic: str, ops: List[str], *counts: int) -> None:
        if len(ops) not in counts:
            expected = " or ".join(str(c) for c in counts)
            raise AssemblerError(number, f"{mnemonic} takes {expected} operand(s), got {len(ops)}")

    def instruction(self, number: int, mnemonic: str, ops: List[str]) -> int:
        upper = [op.upper() for op in ops]

        if mnemonic in ("CLS", "RET"):
            self._expect(number, mnemonic, ops, 0)
            return 0x00E0 if mnemonic == "CLS" else 0x00EE

        if mnemonic == "JP":
            self._expect(number, mnemonic, ops, 1, 2)
            if len(ops) == 2:
                if upper[0] != "V0":
                    raise AssemblerError(number, "JP with offset only accepts V0")
                return 0xB000 | self.address(number, ops[1])
            return 0x1000 | self.address(number, ops[0])

        if mnemonic == "CALL":
            self._expect(number, mnemonic, ops, 1)
            return 0x2000 | self.address(number, ops[0])

        if mnemonic in ("SE", "SNE"):
            self._expect(number, mnemonic, ops, 2)
            x = self.register(number, ops[0])
            if self.is_register(ops[1]):
                base = 0x5000 if mnemonic == "SE" else 0x9000
                return base | x << 8 | self.register(number, ops[1]) << 4
            base = 0x3000 if mnemonic == "SE" else 0x4000
            return base | x << 8 | self.number(number, ops[1], 0xFF, "byte")

        if mnemonic == "LD":
            self._expect(number, mnemonic, ops, 2)
            return self._load(number, ops, upper)

        if mnemonic == "ADD":
            self._expect(number, mnemonic, ops, 2)
            if upper[0] == "I":
                return 0xF01E | self.register(number, ops[1]) << 8
            x = self.register(number, ops[0])
            if self.is_register(ops[1]):
                return 0x8004 | x << 8 | self.register(number, ops[1]) << 4
            return 0x7000 | x << 8 | self.number(number, ops[1], 0xFF, "byte")

        if mnemonic in _ALU_OPS:
            self._expect(number, mnemonic, ops, 2)
            x = self.register(number, ops[0])
            y = self.register(number, ops[1])
            return 0x8000 | x << 8 | y << 4 | _ALU_OPS[mnemonic]

        if mnemonic in ("SHR", "SHL"):
            self._expect(number, mnemonic, ops, 1, 2)
            x = self.register(number, ops[0])
            y = self.register(number, ops[1]) if len(ops) == 2 else x
            return 0x8000 | x << 8 | y << 4 | (0x6 if mnemonic == "SHR" else 0xE)

        if mnemonic == "RND":
            self._expect(number, mnemonic, ops, 2)
            x = self.register(number, ops[0])
            return 0xC000 | x << 8 | self.number(number, ops[1], 0xFF, "byte")

        if mnemonic == "DRW":
            self._expect(number, mnemonic, ops, 3)
            x = self.register(number, ops[0])
            y = self.register(number, ops[1])
            n = self.number(number, ops[2], 0xF, "nibble")
            return 0xD000 | x << 8 | y << 4 | n

        if mnemonic in ("SKP", "SKNP"):
            self._expect(number, mnemonic, ops, 1)
            x = self.register(number, ops[0])
            return (0xE09E if mnemonic == "SKP" else 0xE0A1) | x << 8

        raise AssemblerError(number, f"unknown mnemonic: {mnemonic}")

    def _load(self, number: int, ops: List[str], upper: List[str]) -> int:
        dest, src = upper

        if dest == "I":
            return 0xA000 | self.address(number, ops[1])

        # LD <special>, Vx
        specials = {"DT": 0xF015, "ST": 0xF018, "F": 0xF029, "B": 0xF033, "[I]": 0xF055}
        if dest in specials:
            return specials[dest] | self.register(number, ops[1]) << 8

        x = self.register(number, ops[0])
        if src == "DT":
            return 0xF007 | x << 8
        if src == "K":
            return 0xF00A | x << 8
        if src == "[I]":
            return 0xF065 | x << 8
        if self.is_register(ops[1]):
            return 0x8000 | x << 8 | self.register(number, ops[1]) << 4
        return 0x6000 | x << 8 | self.number(number, ops[1], 0xFF, "byte")


def assemble(source: str) -> bytes:
    """Assemble source text into a ROM image loaded at 0x200.

    Args:
        source: Assembly source code

    Returns:
        ROM bytes

    Raises:
        AssemblerError: On any syntax, operand or label problem
    """
    lines = _split_lines(source)

    # Pass 1: label addresses
    labels: Dict[str, int] = {}
    address = PROGRAM_START
    for number, mnemonic, operands in lines:
        if not mnemonic:
            label = operands[0][1:].upper()
            if label in labels:
                raise AssemblerError(number, f"duplicate label: {operands[0][1:]}")
            labels[label] = address
            continue
        address += _size_of(mnemonic, operands)

    # Pass 2: encode
    encoder = _Encoder(labels)
    output = bytearray()
    for number, mnemonic, operands in lines:
        if mnemonic:
            output += encoder.encode(number, mnemonic, operands)

    if len(output) > MAX_ROM_SIZE:
        raise AssemblerError(lines[-1][0], f"program is {len(output)} bytes, maximum is {MAX_ROM_SIZE}")
    return bytes(output)
