"""Exception hierarchy for the CHIP-8 virtual machine.

Every error raised by the interpreter is fatal to the run: there is no
recovery or retry policy. The command line catches ``Chip8Error`` at the
top level and reports it.
"""


class Chip8Error(Exception):
    """Base class for all CHIP-8 errors."""


class DecodeError(Chip8Error):
    """Instruction word matches no known instruction.

    Attributes:
        pc: Address the word was fetched from
        word: Raw 16-bit instruction word
    """

    def __init__(self, pc: int, word: int):
        self.pc = pc
        self.word = word
        super().__init__(f"Unknown opcode 0x{word:04X} at 0x{pc:03X}")


class RomTooLargeError(Chip8Error, ValueError):
    """ROM payload does not fit between 0x200 and the end of memory."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"ROM is {size} bytes, maximum is {limit}")


class StackOverflowError(Chip8Error):
    """CALL with all 16 stack slots in use."""


class StackUnderflowError(Chip8Error):
    """RET with an empty call stack."""


class MemoryAccessError(Chip8Error):
    """Read or write outside the 4096-byte address space."""

    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Memory access out of range: 0x{address:X}")


class PresentationError(Chip8Error):
    """A Drawer could not present a frame."""


class AssemblerError(Chip8Error):
    """Assembly source could not be assembled.

    Attributes:
        line: 1-based source line number
        message: Description of the problem
    """

    def __init__(self, line: int, message: str):
        self.line = line
        self.message = message
        super().__init__(f"line {line}: {message}")
