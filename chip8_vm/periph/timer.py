"""
CHIP-8 Virtual Machine — Delay and Sound Timers

Two 8-bit countdown timers, decremented once per executed instruction
while non-zero (floor 0). Decay is tied to instruction count, not wall
time: the host paces cycle() calls to get the nominal 60 Hz.

Sound is active while the sound timer is non-zero. Listeners registered
with add_sound_listener(cb) are called as cb(active) on each edge: when
FX18 starts a tone from silence and when the timer decays from 1 to 0.
"""

from typing import Callable, List


class Timers:
    """Delay + sound countdown timers."""

    def __init__(self):
        self._delay = 0
        self._sound = 0
        self._sound_listeners: List[Callable[[bool], None]] = []

    @property
    def delay(self) -> int:
        return self._delay

    @delay.setter
    def delay(self, value: int):
        self._delay = value & 0xFF

    @property
    def sound(self) -> int:
        return self._sound

    @sound.setter
    def sound(self, value: int):
        was_active = self._sound > 0
        self._sound = value & 0xFF
        if was_active != (self._sound > 0):
            self._notify(self._sound > 0)

    @property
    def sound_active(self) -> bool:
        return self._sound > 0

    def add_sound_listener(self, callback: Callable[[bool], None]):
        self._sound_listeners.append(callback)

    def remove_sound_listener(self, callback: Callable[[bool], None]):
        self._sound_listeners = [cb for cb in self._sound_listeners if cb != callback]

    def _notify(self, active: bool):
        for cb in self._sound_listeners:
            cb(active)

    def tick(self):
        """Advance both timers by one step."""
        if self._delay > 0:
            self._delay -= 1
        if self._sound > 0:
            self.sound = self._sound - 1

    def reset(self):
        """Reset timer state. Listeners stay registered."""
        self._delay = 0
        self.sound = 0
