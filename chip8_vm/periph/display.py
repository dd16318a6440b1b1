"""
CHIP-8 Virtual Machine — Monochrome Framebuffer

64 × 32 cells, each 0 or 1, stored row-major (index = x + y * WIDTH).
Pixels persist until CLS or an XOR from DRW turns them off.

Sprites are 8 pixels wide, one byte per row, most significant bit on the
left. Every pixel position wraps modulo the screen size, so a sprite that
runs off the right edge reappears on the left.
"""

from typing import List

WIDTH = 64
HEIGHT = 32
DISPLAY_SIZE = WIDTH * HEIGHT


class Display:
    """Framebuffer model. Read by the host renderer, written by CLS/DRW."""

    def __init__(self, width: int = WIDTH, height: int = HEIGHT):
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height)

    def clear(self):
        self.pixels[:] = bytes(len(self.pixels))

    def get(self, x: int, y: int) -> int:
        return self.pixels[(x % self.width) + (y % self.height) * self.width]

    def xor_pixel(self, x: int, y: int) -> bool:
        """Flip one pixel (wrapped). Returns True if it was turned off."""
        idx = (x % self.width) + (y % self.height) * self.width
        was_set = self.pixels[idx] == 1
        self.pixels[idx] ^= 1
        return was_set

    def draw_sprite(self, x: int, y: int, rows: bytes) -> bool:
        """XOR a sprite onto the screen at (x, y).

        Returns True if any previously set pixel was cleared (collision).
        Zero bits in the sprite leave the screen untouched.
        """
        collision = False
        for row, bits in enumerate(rows):
            for col in range(8):
                if bits & (0x80 >> col):
                    if self.xor_pixel(x + col, y + row):
                        collision = True
        return collision

    def rows(self) -> List[List[int]]:
        """Framebuffer as a list of rows of 0/1 (a copy)."""
        w = self.width
        return [list(self.pixels[r * w:(r + 1) * w]) for r in range(self.height)]

    def lit_count(self) -> int:
        return sum(self.pixels)

    def to_text(self, on: str = '█', off: str = ' ') -> str:
        """Render the framebuffer as text, one line per row."""
        w = self.width
        return '\n'.join(
            ''.join(on if p else off for p in self.pixels[r * w:(r + 1) * w])
            for r in range(self.height))

    def reset(self):
        self.clear()
