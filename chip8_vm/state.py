"""
CHIP-8 Virtual Machine — Machine State

One mutable aggregate holding everything an instruction can touch:
registers, memory, timers, framebuffer, keypad and the redraw flag.
It has no behaviour beyond reset; the emulator is its only writer, except
for the keypad (host input) and should_redraw (cleared by the renderer).
"""

from .cpu.regs import Registers
from .mem.memory import Memory
from .periph.display import Display
from .periph.keypad import Keypad
from .periph.timer import Timers


class MachineState:
    """Memory, registers, stack, timers, framebuffer and key state."""

    def __init__(self):
        self.regs = Registers()
        self.mem = Memory()
        self.timers = Timers()
        self.display = Display()
        self.keypad = Keypad()
        self.should_redraw = False

    # --- Flat views of the data model ---

    @property
    def V(self) -> bytearray:
        return self.regs.V

    @property
    def I(self) -> int:
        return self.regs.I

    @I.setter
    def I(self, value: int):
        self.regs.I = value & 0xFFFF

    @property
    def pc(self) -> int:
        return self.regs.PC

    @pc.setter
    def pc(self, value: int):
        self.regs.PC = value & 0xFFFF

    @property
    def sp(self) -> int:
        return self.regs.SP

    @property
    def stack(self) -> list:
        return self.regs.stack

    @property
    def opcode(self) -> int:
        return self.regs.opcode

    @property
    def delay_timer(self) -> int:
        return self.timers.delay

    @delay_timer.setter
    def delay_timer(self, value: int):
        self.timers.delay = value

    @property
    def sound_timer(self) -> int:
        return self.timers.sound

    @sound_timer.setter
    def sound_timer(self, value: int):
        self.timers.sound = value

    @property
    def framebuffer(self) -> bytearray:
        return self.display.pixels

    @property
    def key_state(self) -> list:
        return self.keypad.keys

    def consume_frame(self) -> bool:
        """Renderer hook: return the redraw flag and clear it."""
        redraw = self.should_redraw
        self.should_redraw = False
        return redraw

    def reset(self):
        """Power-on state: zeroed registers/stack/timers/screen, font loaded, PC=$200."""
        self.regs.reset()
        self.mem.reset()
        self.timers.reset()
        self.display.reset()
        self.keypad.reset()
        self.should_redraw = False
