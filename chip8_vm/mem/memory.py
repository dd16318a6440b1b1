"""
CHIP-8 Virtual Machine — 4K Memory Map

Memory map:
  $000–$04F  Hexadecimal font (16 glyphs × 5 bytes, glyph d at d*5)
  $050–$1FF  Reserved (historically the interpreter itself)
  $200–$FFF  Program + scratch data (3584 bytes)

Memory is a flat bytearray. Unlike the wrap-around address bus of a real
8-bit part, every access is bounds-checked: reading or writing outside
$000–$FFF is a fatal BoundsError.
"""

import logging
from pathlib import Path
from typing import Union

log = logging.getLogger(__name__)

MEMORY_SIZE = 0x1000
PROGRAM_START = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - PROGRAM_START   # 3584 bytes

FONT_BASE = 0x000
FONT_GLYPH_SIZE = 5

FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


class BoundsError(Exception):
    """Fatal access outside a fixed-size resource (memory, stack, keypad)."""
    pass


class RomTooLarge(BoundsError):
    """Program does not fit in application memory ($200–$FFF)."""

    def __init__(self, size: int):
        self.size = size
        super().__init__(
            f"ROM is too big to fit into memory ({size} bytes, "
            f"max {MAX_ROM_SIZE})")


class Memory:
    """4K byte-addressable memory with the font preloaded at reset."""

    def __init__(self):
        self._mem = bytearray(MEMORY_SIZE)
        self.reset()

    def reset(self):
        """Clear all of memory and reload the font."""
        self._mem[:] = bytes(MEMORY_SIZE)
        self._mem[FONT_BASE:FONT_BASE + len(FONTSET)] = FONTSET

    @staticmethod
    def _check(addr: int, length: int = 1):
        if addr < 0 or addr + length > MEMORY_SIZE:
            if length == 1:
                raise BoundsError(f"Memory access at ${addr:04X} out of range")
            raise BoundsError(
                f"Memory access ${addr:04X}–${addr + length - 1:04X} out of range")

    # --- Core read/write ---

    def read8(self, addr: int) -> int:
        self._check(addr)
        return self._mem[addr]

    def write8(self, addr: int, value: int):
        self._check(addr)
        self._mem[addr] = value & 0xFF

    def read16(self, addr: int) -> int:
        """Read 16-bit value (big-endian, high byte first)."""
        self._check(addr, 2)
        return (self._mem[addr] << 8) | self._mem[addr + 1]

    def read_block(self, addr: int, length: int) -> bytes:
        self._check(addr, length)
        return bytes(self._mem[addr:addr + length])

    def write_block(self, addr: int, data: bytes):
        self._check(addr, len(data))
        self._mem[addr:addr + len(data)] = data

    def __len__(self) -> int:
        return MEMORY_SIZE

    def __getitem__(self, addr):
        if isinstance(addr, slice):
            return bytes(self._mem[addr])
        return self.read8(addr)

    def __setitem__(self, addr: int, value: int):
        self.write8(addr, value)

    # --- Bulk load ---

    def load_binary(self, data: bytes, base_addr: int = PROGRAM_START):
        """Copy raw bytes into memory at base_addr (bounds-checked)."""
        self.write_block(base_addr, bytes(data))

    def load_rom(self, path_or_data: Union[str, Path, bytes, bytearray]) -> int:
        """Load a raw ROM image at $200. Returns the number of bytes loaded.

        The format is raw bytes with no header. Anything larger than
        3584 bytes is rejected with RomTooLarge before memory is touched.
        """
        if isinstance(path_or_data, (str, Path)):
            path = Path(path_or_data)
            data = path.read_bytes()
            log.info("ROM file opened: %s", path)
        else:
            data = bytes(path_or_data)

        if len(data) > MAX_ROM_SIZE:
            raise RomTooLarge(len(data))

        self.load_binary(data, PROGRAM_START)
        log.info("ROM size: %d bytes", len(data))
        return len(data)

    # --- Hex dump ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Produce a hex dump of memory for debugging."""
        lines = []
        end = min(start + length, MEMORY_SIZE)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:03X}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)
