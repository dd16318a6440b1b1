"""
chip8_vm — CHIP-8 Virtual Machine
=================================
An interpreter for the 16-bit CHIP-8 instruction set: 4K memory, sixteen
8-bit registers, a 16-level return stack, a 64×32 monochrome framebuffer,
a 16-key keypad and two countdown timers that decrement once per executed
instruction (the host paces cycles to get the nominal 60 Hz).

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────────┐
    │  Fetch   │───>│  Decode  │───>│ Dispatch │───>│ Execute+Tick │
    │ (memory) │    │ (tables) │    │(handlers)│    │ (state, tmr) │
    └──────────┘    └──────────┘    └──────────┘    └──────────────┘

    - state.py:          MachineState — the whole data model
    - cpu/decoder.py:    family + sub-opcode tables, IllegalOpcode
    - emu.py:            Chip8Emulator — cycle/step/run and handlers
    - periph/*.py:       framebuffer, keypad, timers
    - cpu/disasm.py:     disassembler over the same tables

Rendering, audio and input translation belong to the host: it calls
step() at its own pace, reads display/should_redraw, polls sound_active
and writes keypad state between cycles.
"""

__version__ = "1.0.0"

from .config import VMConfig, load_config
from .cpu.decoder import IllegalOpcode, decode
from .cpu.disasm import Chip8Disassembler, disassemble_bytes
from .cpu.regs import StackOverflow, StackUnderflow
from .emu import Chip8Emulator, StopReason
from .log import setup_logging
from .mem.memory import BoundsError, RomTooLarge, MAX_ROM_SIZE, PROGRAM_START
from .state import MachineState

__all__ = [
    "Chip8Emulator", "StopReason", "MachineState",
    "VMConfig", "load_config", "setup_logging",
    "IllegalOpcode", "BoundsError", "RomTooLarge",
    "StackOverflow", "StackUnderflow",
    "Chip8Disassembler", "disassemble_bytes", "decode",
    "MAX_ROM_SIZE", "PROGRAM_START",
]
