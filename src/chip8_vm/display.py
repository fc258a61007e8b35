"""Monochrome 64x32 framebuffer with XOR sprite drawing."""

from typing import List, Sequence

from .interfaces import Drawer, Grid

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32


class Framebuffer:
    """Pixel grid owned by the interpreter.

    Every mutation ends by handing a copy of the full grid to the Drawer.
    Drawer exceptions are not caught here.

    Attributes:
        pixels: DISPLAY_HEIGHT rows of DISPLAY_WIDTH booleans
    """

    def __init__(self, drawer: Drawer):
        self.drawer = drawer
        self.pixels: Grid = self._blank()

    @staticmethod
    def _blank() -> Grid:
        return [[False] * DISPLAY_WIDTH for _ in range(DISPLAY_HEIGHT)]

    def snapshot(self) -> Grid:
        """Return a copy of the pixel grid, safe to hand to another thread."""
        return [list(row) for row in self.pixels]

    def clear(self) -> None:
        """Turn every pixel off and present the blank frame."""
        for row in self.pixels:
            for col in range(DISPLAY_WIDTH):
                row[col] = False
        self.drawer.draw(self.snapshot())

    def draw_sprite(self, x: int, y: int, sprite: Sequence[int]) -> int:
        """XOR a sprite onto the grid.

        Each sprite byte is one row, most significant bit leftmost. Rows
        and columns that fall off the bottom or right edge are dropped;
        nothing wraps around.

        Args:
            x: Start column, already reduced modulo DISPLAY_WIDTH
            y: Start row, already reduced modulo DISPLAY_HEIGHT
            sprite: Row bytes

        Returns:
            1 if any lit pixel was turned off, else 0
        """
        collision = 0

        for row, bits in enumerate(sprite):
            target_y = y + row
            if target_y >= DISPLAY_HEIGHT:
                break
            line = self.pixels[target_y]

            for col in range(8):
                target_x = x + col
                if target_x >= DISPLAY_WIDTH:
                    break
                if not (bits >> (7 - col)) & 1:
                    continue
                if line[target_x]:
                    line[target_x] = False
                    collision = 1
                else:
                    line[target_x] = True

        self.drawer.draw(self.snapshot())
        return collision

    def lit_pixels(self) -> List[tuple]:
        """Return (x, y) coordinates of every lit pixel."""
        return [
            (col, row)
            for row, line in enumerate(self.pixels)
            for col, lit in enumerate(line)
            if lit
        ]
