"""
CHIP-8 Virtual Machine — Main Emulator Class

Integrates:
  - Machine state (state.py): registers, memory, timers, framebuffer, keypad
  - Opcode decoder (cpu/decoder.py)
  - ALU helpers (cpu/alu.py)

Execution model, one cycle:
  1. Fetch the big-endian word at PC into regs.opcode
  2. Decode: family table, then sub-table for families 0/8/E/F
  3. Dispatch (mnemonic, mode) -> handler; the handler mutates state and
     tells the engine how PC moves (Flow)
  4. Apply the PC advance centrally: +2, +4 on a taken skip, unchanged
     after a jump/call or a key-wait stall
  5. Tick the delay and sound timers (not on a key-wait stall, which
     leaves the whole machine untouched)

Termination reasons returned by step()/run():
  - TIMEOUT:  run() cycle budget exhausted
  - BREAK:    breakpoint address reached (not executed)
  - ILLEGAL:  opcode not in the instruction set
  - BOUNDS:   memory, stack or keypad access out of range, or PC past $FFE
ILLEGAL and BOUNDS are fatal: the machine halts and keeps returning the
same reason until reset().
"""

import logging
import random
from enum import Enum
from pathlib import Path
from typing import Optional, Set, Union

from .config import VMConfig
from .cpu import alu
from .cpu.decoder import (
    decode, IllegalOpcode, Instruction,
    NONE, ADDR, V0_ADDR, VX_BYTE, VX_VY, VX, VX_VY_N, I_ADDR,
    VX_DT, VX_K, DT_VX, ST_VX, I_VX, F_VX, B_VX, MEM_VX, VX_MEM,
)
from .cpu.disasm import format_instruction
from .cpu.regs import VF
from .mem.memory import BoundsError, FONT_BASE, FONT_GLYPH_SIZE
from .state import MachineState

log = logging.getLogger(__name__)


class StopReason(Enum):
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'
    ILLEGAL = 'ILLEGAL'
    BOUNDS = 'BOUNDS'


class Flow(Enum):
    """How PC moves after a handler returns."""
    NEXT = 'NEXT'     # PC += 2
    SKIP = 'SKIP'     # PC += 4
    JUMP = 'JUMP'     # handler already set PC
    STALL = 'STALL'   # PC unchanged; same instruction runs next cycle


class Chip8Emulator:
    """CHIP-8 interpreter.

    Usage:
        emu = Chip8Emulator()
        emu.load_rom('pong.ch8')
        while emu.step() is None:
            if emu.state.consume_frame():
                render(emu.display)
    """

    def __init__(self, config: Optional[VMConfig] = None,
                 state: Optional[MachineState] = None):
        self.config = config or VMConfig()
        self.state = state or MachineState()
        self.rng = random.Random(self.config.seed)

        self.cycles = 0
        self.halted: Optional[StopReason] = None
        self.last_error: Optional[Exception] = None
        self._fetched = False

        self._breakpoints: Set[int] = set()
        self._trace = self.config.trace
        self._trace_output = []

        self._dispatch = self._build_dispatch()

    # --- Shortcuts into the machine state ---

    @property
    def regs(self):
        return self.state.regs

    @property
    def mem(self):
        return self.state.mem

    @property
    def display(self):
        return self.state.display

    @property
    def keypad(self):
        return self.state.keypad

    @property
    def timers(self):
        return self.state.timers

    @property
    def sound_active(self) -> bool:
        return self.state.timers.sound_active

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_rom(self, path_or_data: Union[str, Path, bytes, bytearray]) -> int:
        """Copy a raw ROM image to $200. Raises RomTooLarge over 3584 bytes."""
        return self.state.mem.load_rom(path_or_data)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def cycle(self):
        """Execute exactly one instruction, then tick the timers.

        A key-wait stall changes nothing, the timers included.

        Fatal conditions propagate as IllegalOpcode or BoundsError; use
        step() to get them back as a StopReason instead.
        """
        s = self.state
        pc = s.regs.PC

        s.regs.opcode = 0
        self._fetched = False
        s.regs.opcode = s.mem.read16(pc)
        self._fetched = True
        ins = decode(s.regs.opcode, pc)

        if self._trace:
            line = f"${pc:03X}: {ins.opcode:04X}  {format_instruction(ins):16s} {s.regs.display()}"
            self._trace_output.append(line)
            log.debug(line)

        flow = self._dispatch[(ins.mnemonic, ins.mode)](ins)
        self.cycles += 1

        if flow is Flow.STALL:
            return
        if flow is None or flow is Flow.NEXT:
            s.regs.PC = (pc + 2) & 0xFFFF
        elif flow is Flow.SKIP:
            s.regs.PC = (pc + 4) & 0xFFFF

        s.timers.tick()

    def step(self) -> Optional[StopReason]:
        """Execute one instruction. Returns StopReason if stopped, else None."""
        if self.halted is not None:
            return self.halted

        if self.regs.PC in self._breakpoints:
            return StopReason.BREAK

        try:
            self.cycle()
        except IllegalOpcode as e:
            return self._halt(StopReason.ILLEGAL, e)
        except BoundsError as e:
            return self._halt(StopReason.BOUNDS, e)
        return None

    def run(self, max_cycles: int = None) -> StopReason:
        """Run until a stop condition or max_cycles instructions."""
        if max_cycles is None:
            max_cycles = self.config.max_cycles

        for _ in range(max_cycles):
            reason = self.step()
            if reason is not None:
                return reason
        return StopReason.TIMEOUT

    def _halt(self, reason: StopReason, error: Exception) -> StopReason:
        self.halted = reason
        self.last_error = error
        if self._fetched:
            log.error("Machine halted (%s) at PC=$%03X opcode=$%04X: %s",
                      reason.value, self.regs.PC, self.regs.opcode, error)
        else:
            log.error("Machine halted (%s) fetching at PC=$%03X: %s",
                      reason.value, self.regs.PC, error)
        return reason

    # ══════════════════════════════════════════════
    # Operand access
    # ══════════════════════════════════════════════

    def _operand(self, ins: Instruction) -> int:
        """Second operand of a Vx, byte / Vx, Vy instruction."""
        if ins.mode == VX_BYTE:
            return ins.nn
        return self.state.regs.V[ins.y]

    def _set_vx_vf(self, x: int, result: int, flag: int):
        # VF last: when X is F the flag overwrites the result
        V = self.state.regs.V
        V[x] = result
        V[VF] = flag

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(ins) -> Optional[Flow]
    # Returning None means Flow.NEXT.

    def _build_dispatch(self) -> dict:
        """Build (mnemonic, mode) -> handler dispatch table."""
        return {
            # ── Flow control ──
            ('CLS',  NONE):     self._op_cls,
            ('RET',  NONE):     self._op_ret,
            ('JP',   ADDR):     self._op_jp,
            ('JP',   V0_ADDR):  self._op_jp_v0,
            ('CALL', ADDR):     self._op_call,

            # ── Conditional skips ──
            ('SE',   VX_BYTE):  self._op_se,
            ('SE',   VX_VY):    self._op_se,
            ('SNE',  VX_BYTE):  self._op_sne,
            ('SNE',  VX_VY):    self._op_sne,
            ('SKP',  VX):       self._op_skp,
            ('SKNP', VX):       self._op_sknp,

            # ── Register loads ──
            ('LD',   VX_BYTE):  self._op_ld,
            ('LD',   VX_VY):    self._op_ld,
            ('LD',   I_ADDR):   self._op_ld_i,

            # ── Arithmetic / logic ──
            ('ADD',  VX_BYTE):  self._op_add_imm,
            ('ADD',  VX_VY):    self._op_add,
            ('OR',   VX_VY):    self._op_or,
            ('AND',  VX_VY):    self._op_and,
            ('XOR',  VX_VY):    self._op_xor,
            ('SUB',  VX_VY):    self._op_sub,
            ('SUBN', VX_VY):    self._op_subn,
            ('SHR',  VX):       self._op_shr,
            ('SHL',  VX):       self._op_shl,
            ('RND',  VX_BYTE):  self._op_rnd,

            # ── Graphics ──
            ('DRW',  VX_VY_N):  self._op_drw,

            # ── Timers / keypad ──
            ('LD',   VX_DT):    self._op_ld_vx_dt,
            ('LD',   VX_K):     self._op_ld_vx_k,
            ('LD',   DT_VX):    self._op_ld_dt,
            ('LD',   ST_VX):    self._op_ld_st,

            # ── Index register / memory ──
            ('ADD',  I_VX):     self._op_add_i,
            ('LD',   F_VX):     self._op_ld_f,
            ('LD',   B_VX):     self._op_ld_b,
            ('LD',   MEM_VX):   self._op_ld_store,
            ('LD',   VX_MEM):   self._op_ld_load,
        }

    # ── Flow control ──

    def _op_cls(self, ins):
        self.state.display.clear()
        self.state.should_redraw = True

    def _op_ret(self, ins):
        # Lands on the CALL itself; the normal +2 moves past it
        self.state.regs.PC = self.state.regs.pop()

    def _op_jp(self, ins):
        self.state.regs.PC = ins.nnn
        return Flow.JUMP

    def _op_jp_v0(self, ins):
        self.state.regs.PC = ins.nnn + self.state.regs.V[0]
        return Flow.JUMP

    def _op_call(self, ins):
        regs = self.state.regs
        regs.push(regs.PC)
        regs.PC = ins.nnn
        return Flow.JUMP

    # ── Conditional skips ──

    def _op_se(self, ins):
        if self.state.regs.V[ins.x] == self._operand(ins):
            return Flow.SKIP
        return Flow.NEXT

    def _op_sne(self, ins):
        if self.state.regs.V[ins.x] != self._operand(ins):
            return Flow.SKIP
        return Flow.NEXT

    def _op_skp(self, ins):
        if self.state.keypad.is_pressed(self.state.regs.V[ins.x]):
            return Flow.SKIP
        return Flow.NEXT

    def _op_sknp(self, ins):
        if not self.state.keypad.is_pressed(self.state.regs.V[ins.x]):
            return Flow.SKIP
        return Flow.NEXT

    # ── Register loads ──

    def _op_ld(self, ins):
        self.state.regs.V[ins.x] = self._operand(ins)

    def _op_ld_i(self, ins):
        self.state.regs.I = ins.nnn

    # ── Arithmetic / logic ──

    def _op_add_imm(self, ins):
        """7XNN: wraps, VF untouched."""
        V = self.state.regs.V
        V[ins.x] = (V[ins.x] + ins.nn) & 0xFF

    def _op_add(self, ins):
        V = self.state.regs.V
        self._set_vx_vf(ins.x, *alu.add8(V[ins.x], V[ins.y]))

    def _op_or(self, ins):
        V = self.state.regs.V
        V[ins.x] |= V[ins.y]

    def _op_and(self, ins):
        V = self.state.regs.V
        V[ins.x] &= V[ins.y]

    def _op_xor(self, ins):
        V = self.state.regs.V
        V[ins.x] ^= V[ins.y]

    def _op_sub(self, ins):
        V = self.state.regs.V
        self._set_vx_vf(ins.x, *alu.sub8(V[ins.x], V[ins.y]))

    def _op_subn(self, ins):
        V = self.state.regs.V
        self._set_vx_vf(ins.x, *alu.sub8(V[ins.y], V[ins.x]))

    def _op_shr(self, ins):
        V = self.state.regs.V
        self._set_vx_vf(ins.x, *alu.shr8(V[ins.x]))

    def _op_shl(self, ins):
        V = self.state.regs.V
        self._set_vx_vf(ins.x, *alu.shl8(V[ins.x]))

    def _op_rnd(self, ins):
        self.state.regs.V[ins.x] = self.rng.getrandbits(8) & ins.nn

    # ── Graphics ──

    def _op_drw(self, ins):
        """DXYN — XOR an N-row sprite from memory[I] at (VX, VY), wrapping.

        VF = 1 if any lit pixel was turned off anywhere in the sprite.
        """
        s = self.state
        V = s.regs.V
        rows = s.mem.read_block(s.regs.I, ins.n) if ins.n else b""
        collision = s.display.draw_sprite(V[ins.x], V[ins.y], rows)
        V[VF] = 1 if collision else 0
        s.should_redraw = True

    # ── Timers / keypad ──

    def _op_ld_vx_dt(self, ins):
        self.state.regs.V[ins.x] = self.state.timers.delay

    def _op_ld_vx_k(self, ins):
        """FX0A — no key down: change nothing and re-run next cycle."""
        key = self.state.keypad.first_pressed()
        if key is None:
            return Flow.STALL
        self.state.regs.V[ins.x] = key

    def _op_ld_dt(self, ins):
        self.state.timers.delay = self.state.regs.V[ins.x]

    def _op_ld_st(self, ins):
        self.state.timers.sound = self.state.regs.V[ins.x]

    # ── Index register / memory ──

    def _op_add_i(self, ins):
        regs = self.state.regs
        regs.I, regs.V[VF] = alu.add_index(regs.I, regs.V[ins.x])

    def _op_ld_f(self, ins):
        regs = self.state.regs
        regs.I = FONT_BASE + regs.V[ins.x] * FONT_GLYPH_SIZE

    def _op_ld_b(self, ins):
        regs = self.state.regs
        self.state.mem.write_block(regs.I, bytes(alu.bcd(regs.V[ins.x])))

    def _op_ld_store(self, ins):
        """FX55 — V0..VX -> memory[I..I+X], then I += X+1."""
        regs = self.state.regs
        count = ins.x + 1
        self.state.mem.write_block(regs.I, bytes(regs.V[:count]))
        regs.I = (regs.I + count) & 0xFFFF

    def _op_ld_load(self, ins):
        """FX65 — memory[I..I+X] -> V0..VX, then I += X+1."""
        regs = self.state.regs
        count = ins.x + 1
        regs.V[:count] = self.state.mem.read_block(regs.I, count)
        regs.I = (regs.I + count) & 0xFFFF

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Add a breakpoint. step() returns BREAK before executing there."""
        self._breakpoints.add(addr & 0xFFFF)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & 0xFFFF)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        """Record each executed instruction (also logged at DEBUG)."""
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def reset(self):
        """Full machine reset. The loaded ROM is cleared with memory."""
        self.state.reset()
        self.cycles = 0
        self.halted = None
        self.last_error = None
        self._fetched = False
        self._breakpoints.clear()
        self._trace_output.clear()
