"""
CHIP-8 VM — Core Integration Tests

Tests that prove the emulator executes real CHIP-8 machine code. Every
program is hand-assembled big-endian words loaded at $200.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from chip8_vm import Chip8Emulator, StopReason, VMConfig
from chip8_vm.cpu.decoder import IllegalOpcode, OPCODES, SUB_OPCODES
from chip8_vm.cpu.regs import StackOverflow, StackUnderflow
from chip8_vm.mem.memory import BoundsError


def make_emu(*words, config=None):
    """Emulator with the given 16-bit words loaded at $200."""
    emu = Chip8Emulator(config)
    program = b"".join(w.to_bytes(2, "big") for w in words)
    emu.load_rom(program)
    return emu


def run_steps(emu, count):
    for _ in range(count):
        assert emu.step() is None


# ═══════════════════════════════════════════════
# Test Group 1: Register loads and arithmetic
# ═══════════════════════════════════════════════

class TestLoads:

    @pytest.mark.parametrize("x", range(16))
    def test_ld_vx_byte(self, x):
        """6XNN → VX = NN for every register"""
        emu = make_emu(0x6042 | (x << 8))
        emu.step()
        assert emu.regs.V[x] == 0x42
        assert emu.regs.PC == 0x202

    def test_ld_vx_vy(self):
        """6B77; 8AB0 → VA = $77"""
        emu = make_emu(0x6B77, 0x8AB0)
        run_steps(emu, 2)
        assert emu.regs.V[0xA] == 0x77
        assert emu.regs.V[0xB] == 0x77

    def test_ld_i(self):
        emu = make_emu(0xA123)
        emu.step()
        assert emu.regs.I == 0x123


class TestArithmetic:

    def test_add_immediate_wraps_without_flag(self):
        """VA=250; 7A0A → VA=4, VF untouched"""
        emu = make_emu(0x6F07, 0x6AFA, 0x7A0A)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 4
        assert emu.regs.V[0xF] == 7

    def test_add_carry(self):
        """200 + 100 → 44, VF=1"""
        emu = make_emu(0x6AC8, 0x6B64, 0x8AB4)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 44
        assert emu.regs.V[0xF] == 1

    def test_add_no_carry(self):
        """10 + 20 → 30, VF=0"""
        emu = make_emu(0x6F01, 0x6A0A, 0x6B14, 0x8AB4)
        run_steps(emu, 4)
        assert emu.regs.V[0xA] == 30
        assert emu.regs.V[0xF] == 0

    def test_add_into_vf_flag_wins(self):
        """8FB4 — the carry overwrites the sum in VF"""
        emu = make_emu(0x6FC8, 0x6B64, 0x8FB4)
        run_steps(emu, 3)
        assert emu.regs.V[0xF] == 1

    def test_sub_no_borrow(self):
        emu = make_emu(0x6A0A, 0x6B03, 0x8AB5)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 7
        assert emu.regs.V[0xF] == 1

    def test_sub_borrow(self):
        emu = make_emu(0x6A03, 0x6B0A, 0x8AB5)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 0xF9
        assert emu.regs.V[0xF] == 0

    def test_sub_equal_is_no_borrow(self):
        emu = make_emu(0x6A05, 0x6B05, 0x8AB5)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 0
        assert emu.regs.V[0xF] == 1

    def test_subn(self):
        """VA = VB - VA"""
        emu = make_emu(0x6A03, 0x6B0A, 0x8AB7)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 7
        assert emu.regs.V[0xF] == 1

    def test_subn_borrow(self):
        emu = make_emu(0x6A0A, 0x6B03, 0x8AB7)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 0xF9
        assert emu.regs.V[0xF] == 0

    def test_shr_shifts_vx_in_place(self):
        """8XY6 ignores VY"""
        emu = make_emu(0x6A05, 0x6BFF, 0x8AB6)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 2
        assert emu.regs.V[0xB] == 0xFF
        assert emu.regs.V[0xF] == 1

    def test_shr_even(self):
        emu = make_emu(0x6F01, 0x6A04, 0x8A06)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 2
        assert emu.regs.V[0xF] == 0

    def test_shl_top_bit_out(self):
        emu = make_emu(0x6A81, 0x8A0E)
        run_steps(emu, 2)
        assert emu.regs.V[0xA] == 0x02
        assert emu.regs.V[0xF] == 1

    def test_shl_no_top_bit(self):
        emu = make_emu(0x6F01, 0x6A40, 0x8A0E)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == 0x80
        assert emu.regs.V[0xF] == 0

    @pytest.mark.parametrize("sub, expected", [(0x1, 0xFC), (0x2, 0x30), (0x3, 0xCC)])
    def test_bitwise(self, sub, expected):
        emu = make_emu(0x6AF0, 0x6B3C, 0x8AB0 | sub)
        run_steps(emu, 3)
        assert emu.regs.V[0xA] == expected

    def test_rnd_masked(self):
        emu = make_emu(*([0xC00F] * 50), config=VMConfig(seed=7))
        for _ in range(50):
            emu.step()
            assert emu.regs.V[0] <= 0x0F

    def test_rnd_zero_mask(self):
        emu = make_emu(0x60FF, 0xC000)
        run_steps(emu, 2)
        assert emu.regs.V[0] == 0

    def test_rnd_seeded_is_reproducible(self):
        a = make_emu(0xC0FF, 0xC1FF, config=VMConfig(seed=1234))
        b = make_emu(0xC0FF, 0xC1FF, config=VMConfig(seed=1234))
        run_steps(a, 2)
        run_steps(b, 2)
        assert a.regs.V[:2] == b.regs.V[:2]


# ═══════════════════════════════════════════════
# Test Group 2: Flow control
# ═══════════════════════════════════════════════

class TestFlowControl:

    def test_jp(self):
        emu = make_emu(0x1246)
        emu.step()
        assert emu.regs.PC == 0x246

    def test_jp_v0(self):
        emu = make_emu(0x6005, 0xB300)
        run_steps(emu, 2)
        assert emu.regs.PC == 0x305

    def test_call_ret_round_trip(self):
        """CALL $300 then RET lands just after the CALL"""
        emu = make_emu(0x2300)
        emu.mem.load_binary(bytes([0x00, 0xEE]), 0x300)
        emu.step()
        assert emu.regs.PC == 0x300
        assert emu.regs.SP == 1
        assert emu.regs.stack[0] == 0x200
        emu.step()
        assert emu.regs.PC == 0x202
        assert emu.regs.SP == 0

    def test_nested_calls(self):
        emu = make_emu(0x2300)
        emu.mem.load_binary(bytes([0x24, 0x00, 0x00, 0xEE]), 0x300)
        emu.mem.load_binary(bytes([0x00, 0xEE]), 0x400)
        run_steps(emu, 2)
        assert emu.regs.SP == 2
        emu.step()
        assert emu.regs.PC == 0x302
        emu.step()
        assert emu.regs.PC == 0x202
        assert emu.regs.SP == 0

    def test_stack_overflow_is_fatal(self):
        """A routine that calls itself: 16 calls fit, the 17th halts"""
        emu = make_emu(0x2200)
        run_steps(emu, 16)
        assert emu.regs.SP == 16
        assert emu.step() == StopReason.BOUNDS
        assert isinstance(emu.last_error, StackOverflow)
        assert emu.regs.SP == 16

    def test_stack_underflow_is_fatal(self):
        emu = make_emu(0x00EE)
        assert emu.step() == StopReason.BOUNDS
        assert isinstance(emu.last_error, StackUnderflow)
        assert emu.regs.SP == 0

    def test_halted_machine_stays_halted(self):
        emu = make_emu(0x00EE)
        emu.step()
        cycles = emu.cycles
        assert emu.step() == StopReason.BOUNDS
        assert emu.cycles == cycles


class TestSkips:

    @pytest.mark.parametrize("words, expected_pc", [
        ((0x6A05, 0x3A05), 0x206),   # SE taken
        ((0x6A05, 0x3A06), 0x204),   # SE not taken
        ((0x6A05, 0x4A06), 0x206),   # SNE taken
        ((0x6A05, 0x4A05), 0x204),   # SNE not taken
        ((0x6A05, 0x6B05, 0x5AB0), 0x208),
        ((0x6A05, 0x6B06, 0x5AB0), 0x206),
        ((0x6A05, 0x6B06, 0x9AB0), 0x208),
        ((0x6A05, 0x6B05, 0x9AB0), 0x206),
    ])
    def test_skip(self, words, expected_pc):
        emu = make_emu(*words)
        run_steps(emu, len(words))
        assert emu.regs.PC == expected_pc

    def test_skp_pressed(self):
        emu = make_emu(0x6A05, 0xEA9E)
        emu.keypad.press(5)
        run_steps(emu, 2)
        assert emu.regs.PC == 0x206

    def test_skp_not_pressed(self):
        emu = make_emu(0x6A05, 0xEA9E)
        run_steps(emu, 2)
        assert emu.regs.PC == 0x204

    def test_sknp(self):
        emu = make_emu(0x6A05, 0xEAA1)
        run_steps(emu, 2)
        assert emu.regs.PC == 0x206

        emu = make_emu(0x6A05, 0xEAA1)
        emu.keypad.press(5)
        run_steps(emu, 2)
        assert emu.regs.PC == 0x204

    def test_key_index_out_of_range(self):
        emu = make_emu(0x6A10, 0xEA9E)
        emu.step()
        assert emu.step() == StopReason.BOUNDS


# ═══════════════════════════════════════════════
# Test Group 3: Graphics
# ═══════════════════════════════════════════════

class TestDraw:

    def _draw_twice(self, sprite: bytes):
        # A20A LD I,$20A; D01n; D01n; JP self; sprite at $20A
        n = len(sprite)
        emu = make_emu(0xA20A, 0xD010 | n, 0xD010 | n, 0x1206, 0x0000)
        emu.mem.load_binary(sprite, 0x20A)
        return emu

    def test_draw_sets_pixels(self):
        emu = self._draw_twice(bytes([0xFF]))
        run_steps(emu, 2)
        assert [emu.display.get(x, 0) for x in range(9)] == [1] * 8 + [0]
        assert emu.regs.V[0xF] == 0
        assert emu.state.should_redraw
        assert emu.regs.I == 0x20A

    def test_second_draw_restores_and_collides(self):
        emu = self._draw_twice(bytes([0x3C, 0x42]))
        run_steps(emu, 3)
        assert emu.display.lit_count() == 0
        assert emu.regs.V[0xF] == 1

    def test_zero_sprite_changes_nothing(self):
        emu = make_emu(0x6F01, 0xA20A, 0xD013)
        emu.mem.load_binary(bytes(3), 0x20A)
        emu.display.xor_pixel(3, 1)
        before = bytes(emu.state.framebuffer)
        run_steps(emu, 3)
        assert bytes(emu.state.framebuffer) == before
        assert emu.regs.V[0xF] == 0

    def test_collision_kept_across_rows(self):
        """Row 0 collides, row 1 does not: VF stays 1"""
        emu = make_emu(0xA20A, 0xD012)
        emu.mem.load_binary(bytes([0x80, 0x80]), 0x20A)
        emu.display.xor_pixel(0, 0)
        run_steps(emu, 2)
        assert emu.regs.V[0xF] == 1
        assert emu.display.get(0, 0) == 0
        assert emu.display.get(0, 1) == 1

    def test_draw_wraps_both_axes(self):
        """(62, 31) with a 2×2 block lands in all four corners"""
        emu = make_emu(0x603E, 0x611F, 0xA20A, 0xD012)
        emu.mem.load_binary(bytes([0xC0, 0xC0]), 0x20A)
        run_steps(emu, 4)
        for x, y in [(62, 31), (63, 31), (62, 0), (63, 0)]:
            assert emu.display.get(x, y) == 1
        assert emu.display.lit_count() == 4

    def test_draw_font_glyph(self):
        """LD F, V0 with V0=0 then DRW draws the '0' glyph"""
        emu = make_emu(0xF029, 0xD015)
        run_steps(emu, 2)
        assert emu.display.rows()[0][:4] == [1, 1, 1, 1]
        assert emu.display.rows()[1][:4] == [1, 0, 0, 1]

    def test_draw_past_memory_end(self):
        emu = make_emu(0xAFFF, 0xD012)
        emu.step()
        assert emu.step() == StopReason.BOUNDS

    def test_zero_row_sprite_reads_nothing(self):
        """I=$1004 is past memory, but DXY0 draws no rows"""
        emu = make_emu(0xAFFF, 0x6A05, 0xFA1E, 0x6F01, 0xD010)
        run_steps(emu, 5)
        assert emu.regs.I == 0x1004
        assert emu.regs.V[0xF] == 0
        assert emu.display.lit_count() == 0
        assert emu.state.should_redraw

    def test_cls(self):
        emu = self._draw_twice(bytes([0xFF]))
        emu.mem.load_binary(bytes([0x00, 0xE0]), 0x204)
        run_steps(emu, 2)
        emu.state.should_redraw = False
        emu.step()
        assert emu.display.lit_count() == 0
        assert emu.state.should_redraw

    def test_consume_frame(self):
        emu = self._draw_twice(bytes([0xFF]))
        run_steps(emu, 2)
        assert emu.state.consume_frame() is True
        assert emu.state.consume_frame() is False


# ═══════════════════════════════════════════════
# Test Group 4: Timers and key wait
# ═══════════════════════════════════════════════

class TestTimers:

    def test_delay_decays_to_zero(self):
        emu = make_emu(0x6000, 0x6000, 0x6000)
        emu.timers.delay = 2
        seen = []
        for _ in range(3):
            emu.step()
            seen.append(emu.timers.delay)
        assert seen == [1, 0, 0]

    def test_ld_vx_dt(self):
        emu = make_emu(0x6A09, 0xFA15, 0xFB07)
        run_steps(emu, 3)
        assert emu.regs.V[0xB] == 8
        assert emu.timers.delay == 7

    def test_sound_edges(self):
        emu = make_emu(0x6A03, 0xFA18, 0x1204)
        events = []
        emu.timers.add_sound_listener(events.append)
        run_steps(emu, 2)
        assert emu.sound_active
        assert emu.timers.sound == 2
        run_steps(emu, 2)
        assert not emu.sound_active
        assert events == [True, False]


class TestKeyWait:

    def test_stall_without_key(self):
        emu = make_emu(0xF30A)
        for _ in range(5):
            assert emu.step() is None
            assert emu.regs.PC == 0x200
        assert emu.regs.V == bytearray(16)
        assert emu.timers.delay == 0
        assert emu.timers.sound == 0

    def test_lowest_pressed_key_wins(self):
        emu = make_emu(0xF30A)
        run_steps(emu, 3)
        emu.keypad.press(9)
        emu.keypad.press(7)
        emu.step()
        assert emu.regs.V[3] == 7
        assert emu.regs.PC == 0x202

    def test_stall_freezes_timers(self):
        """F30A with no key: PC and both timers hold across cycles"""
        emu = make_emu(0xF30A)
        emu.timers.delay = 5
        emu.timers.sound = 5
        for _ in range(3):
            assert emu.step() is None
        assert emu.regs.PC == 0x200
        assert (emu.timers.delay, emu.timers.sound) == (5, 5)
        emu.keypad.press(2)
        emu.step()
        assert emu.regs.V[3] == 2
        assert emu.regs.PC == 0x202
        assert (emu.timers.delay, emu.timers.sound) == (4, 4)


# ═══════════════════════════════════════════════
# Test Group 5: Index register and memory
# ═══════════════════════════════════════════════

class TestIndexOps:

    def test_add_i_overflow_flag(self):
        emu = make_emu(0xAFFE, 0x6A05, 0xFA1E)
        run_steps(emu, 3)
        assert emu.regs.I == 0x1003
        assert emu.regs.V[0xF] == 1

    def test_add_i_no_overflow(self):
        emu = make_emu(0x6F01, 0xA300, 0x6A05, 0xFA1E)
        run_steps(emu, 4)
        assert emu.regs.I == 0x305
        assert emu.regs.V[0xF] == 0

    def test_ld_f(self):
        emu = make_emu(0x6A0B, 0xFA29)
        run_steps(emu, 2)
        assert emu.regs.I == 55
        assert emu.mem.read_block(55, 5) == bytes([0xE0, 0x90, 0xE0, 0x90, 0xE0])

    def test_ld_b(self):
        emu = make_emu(0x6AFE, 0xA300, 0xFA33)
        run_steps(emu, 3)
        assert emu.mem.read_block(0x300, 3) == bytes([2, 5, 4])
        assert emu.regs.I == 0x300

    def test_store_registers(self):
        emu = make_emu(0x6012, 0x6134, 0x6256, 0x6399, 0xA300, 0xF255)
        run_steps(emu, 6)
        assert emu.mem.read_block(0x300, 4) == bytes([0x12, 0x34, 0x56, 0x00])
        assert emu.regs.I == 0x303

    def test_load_registers(self):
        emu = make_emu(0x63AA, 0xA300, 0xF265)
        emu.mem.load_binary(bytes([1, 2, 3, 4]), 0x300)
        run_steps(emu, 3)
        assert list(emu.regs.V[:4]) == [1, 2, 3, 0xAA]
        assert emu.regs.I == 0x303

    def test_store_past_memory_end_writes_nothing(self):
        emu = make_emu(0xAFFE, 0xF255)
        emu.step()
        assert emu.step() == StopReason.BOUNDS
        assert emu.mem.read_block(0xFFE, 2) == bytes(2)


# ═══════════════════════════════════════════════
# Test Group 6: Decode and fetch errors
# ═══════════════════════════════════════════════

class TestErrors:

    @pytest.mark.parametrize("word", [0x0000, 0x00E1, 0x0123, 0x8008, 0x800F,
                                      0xE000, 0xE09F, 0xF0FF, 0xF000])
    def test_illegal_opcode(self, word):
        emu = make_emu(word)
        assert emu.step() == StopReason.ILLEGAL
        assert isinstance(emu.last_error, IllegalOpcode)
        assert emu.last_error.opcode == word
        assert emu.last_error.family == word >> 12
        assert emu.last_error.address == 0x200
        assert f"${word:04X}" in str(emu.last_error)

    def test_cycle_raises(self):
        emu = make_emu(0x8008)
        with pytest.raises(IllegalOpcode):
            emu.cycle()

    def test_fetch_past_end_of_memory(self):
        emu = make_emu(0x1FFF)
        emu.step()
        assert emu.step() == StopReason.BOUNDS
        with pytest.raises(BoundsError):
            emu.cycle()

    def test_illegal_opcode_logged(self, caplog):
        emu = make_emu(0xF0FF)
        with caplog.at_level("ERROR", logger="chip8_vm"):
            emu.step()
        assert "ILLEGAL" in caplog.text

    def test_fetch_failure_log_names_pc_only(self, caplog):
        """The JP that moved PC to $FFF ran fine; the fetch there fails"""
        emu = make_emu(0x6A01, 0x1FFF)
        run_steps(emu, 2)
        with caplog.at_level("ERROR", logger="chip8_vm"):
            assert emu.step() == StopReason.BOUNDS
        assert "fetching at PC=$FFF" in caplog.text
        assert "$1FFF" not in caplog.text
        assert emu.regs.opcode == 0

    def test_handler_failure_log_names_opcode(self, caplog):
        emu = make_emu(0xAFFE, 0xF255)
        emu.step()
        with caplog.at_level("ERROR", logger="chip8_vm"):
            emu.step()
        assert "at PC=$202 opcode=$F255" in caplog.text

    def test_every_table_entry_has_a_handler(self):
        entries = list(OPCODES.values())
        for _, table in SUB_OPCODES.values():
            entries.extend(table.values())
        emu = Chip8Emulator()
        for key in entries:
            assert key in emu._dispatch, key


# ═══════════════════════════════════════════════
# Test Group 7: Run loop, breakpoints, trace, reset
# ═══════════════════════════════════════════════

class TestRunLoop:

    def test_timeout(self):
        emu = make_emu(0x1200)
        assert emu.run(max_cycles=100) == StopReason.TIMEOUT
        assert emu.cycles == 100

    def test_breakpoint(self):
        emu = make_emu(0x6001, 0x6002)
        emu.add_breakpoint(0x202)
        assert emu.run(max_cycles=10) == StopReason.BREAK
        assert emu.regs.V[0] == 1
        assert emu.regs.PC == 0x202
        emu.remove_breakpoint(0x202)
        assert emu.step() is None
        assert emu.regs.V[0] == 2

    def test_trace(self):
        emu = make_emu(0x6A02, 0x8AB4)
        emu.enable_trace()
        run_steps(emu, 2)
        trace = emu.get_trace()
        assert "LD VA, $02" in trace
        assert "ADD VA, VB" in trace
        emu.clear_trace()
        assert emu.get_trace() == ""

    def test_reset(self):
        emu = make_emu(0x6A02, 0x00EE)
        emu.run(max_cycles=10)
        emu.reset()
        assert emu.halted is None
        assert emu.regs.PC == 0x200
        assert emu.regs.V[0xA] == 0
        assert emu.mem.read8(0x200) == 0
        assert emu.mem.read_block(0, 5) == bytes([0xF0, 0x90, 0x90, 0x90, 0xF0])

    def test_small_program(self):
        """Count V0 up to 10 with a loop, then spin"""
        emu = make_emu(
            0x6000,     # 200: LD V0, 0
            0x7001,     # 202: ADD V0, 1
            0x300A,     # 204: SE V0, 10
            0x1202,     # 206: JP 202
            0x1208,     # 208: JP 208
        )
        emu.run(max_cycles=200)
        assert emu.regs.V[0] == 10
        assert emu.regs.PC == 0x208
