"""
CHIP-8 Virtual Machine — 16-Key Hex Keypad

Key state is written by the host between cycles and only read by the
engine (EX9E, EXA1, FX0A). Resetting keys on focus loss and the like is
the host's business, not the engine's.

Conventional host keyboard layout:

    1 2 3 C        1 2 3 4
    4 5 6 D   <-   Q W E R
    7 8 9 E        A S D F
    A 0 B F        Z X C V
"""

from typing import Dict, Optional

from ..mem.memory import BoundsError

NUM_KEYS = 16

DEFAULT_KEYMAP: Dict[str, int] = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF,
}


class Keypad:
    """Sixteen boolean key states."""

    def __init__(self, keymap: Optional[Dict[str, int]] = None):
        self.keys = [False] * NUM_KEYS
        self.keymap = dict(keymap if keymap is not None else DEFAULT_KEYMAP)

    @staticmethod
    def _check(key: int):
        if not 0 <= key < NUM_KEYS:
            raise BoundsError(f"Key index {key:#x} out of range (0-F)")

    def is_pressed(self, key: int) -> bool:
        self._check(key)
        return self.keys[key]

    def set(self, key: int, pressed: bool):
        self._check(key)
        self.keys[key] = bool(pressed)

    def press(self, key: int):
        self.set(key, True)

    def release(self, key: int):
        self.set(key, False)

    def release_all(self):
        self.keys[:] = [False] * NUM_KEYS

    def first_pressed(self) -> Optional[int]:
        """Lowest-numbered pressed key, or None."""
        for i, pressed in enumerate(self.keys):
            if pressed:
                return i
        return None

    # --- Host keyboard mapping ---

    def press_char(self, char: str) -> bool:
        """Press the key mapped to a host character. False if unmapped."""
        key = self.keymap.get(char.lower())
        if key is None:
            return False
        self.press(key)
        return True

    def release_char(self, char: str) -> bool:
        key = self.keymap.get(char.lower())
        if key is None:
            return False
        self.release(key)
        return True

    def reset(self):
        self.release_all()
