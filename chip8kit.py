#!/usr/bin/env python3
"""
chip8kit — CHIP-8 VM command-line tool
=======================================

    chip8kit run     — Run a ROM headless and report the final machine state
    chip8kit disasm  — Disassemble a ROM
    chip8kit info    — Summarize a ROM file

Usage:
    python chip8kit.py <command> [options]
    python chip8kit.py <command> --help

Examples:
    python chip8kit.py run pong.ch8 --cycles 5000 --screen
    python chip8kit.py run keypad.ch8 --keys 5 --host-keys q --trace -v
    python chip8kit.py disasm pong.ch8 --start 0x200 --count 32
    python chip8kit.py info pong.ch8
"""

import argparse
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path

from chip8_vm import (
    __version__, Chip8Emulator, StopReason, BoundsError, MAX_ROM_SIZE,
    PROGRAM_START, load_config, setup_logging,
)
from chip8_vm.cpu.disasm import Chip8Disassembler

log = logging.getLogger("chip8_vm.cli")

FRAME_SECONDS = 1 / 60


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="chip8kit",
        description="CHIP-8 VM toolkit — run, disassemble, inspect ROMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""commands:
  run        Execute a ROM for a number of cycles
  disasm     Disassemble a ROM to CHIP-8 mnemonics
  info       Summarize a ROM file
""",
    )
    parser.add_argument("--version", action="version", version=f"chip8kit {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Execute a ROM")
    p_run.add_argument("rom", help="Raw ROM image (.ch8)")
    p_run.add_argument("--config", help="JSON config file")
    p_run.add_argument("--cycles", type=int, default=None,
                       help="Cycle budget (default: config max_cycles)")
    p_run.add_argument("--seed", type=lambda x: int(x, 0), default=None,
                       help="RNG seed for RND")
    p_run.add_argument("--keys", default=None,
                       help="Keypad keys held down for the whole run, hex "
                            "digits, comma separated (e.g. 5,A)")
    p_run.add_argument("--host-keys", default=None,
                       help="Same, as host keyboard characters (1234/QWER/ASDF/ZXCV)")
    p_run.add_argument("--break", dest="breakpoints", action="append", default=[],
                       help="Stop before executing at this address (hex); repeatable")
    p_run.add_argument("--trace", action="store_true",
                       help="Log every executed instruction at DEBUG")
    p_run.add_argument("--realtime", action="store_true",
                       help="Pace execution at cycles_per_frame per 1/60 s")
    p_run.add_argument("--screen", action="store_true",
                       help="Print the framebuffer when execution stops")
    p_run.add_argument("--log-file", help="Also write a DEBUG log to this file")
    p_run.add_argument("-v", "--verbose", action="store_true")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a ROM")
    p_dis.add_argument("rom", help="Raw ROM image (.ch8)")
    p_dis.add_argument("--start", default=None,
                       help="First address to list (hex, default $200)")
    p_dis.add_argument("--count", type=int, default=0,
                       help="Number of instructions (default: all)")
    p_dis.add_argument("-o", "--output", help="Output file (default: stdout)")

    # ── info ─────────────────────────────────────────────────────────────
    p_info = sub.add_parser("info", help="Summarize a ROM file")
    p_info.add_argument("rom", help="Raw ROM image (.ch8)")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        return COMMANDS[args.command](args)
    except (OSError, ValueError, BoundsError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _parse_hex(s):
    """Parse hex string with optional 0x or $ prefix."""
    if s is None:
        return None
    s = s.strip()
    if s.startswith("0x") or s.startswith("0X"):
        return int(s, 16)
    if s.startswith("$"):
        return int(s[1:], 16)
    return int(s, 16)


def _press_keys(emu, keys=None, host_keys=None):
    for token in (keys or "").split(","):
        if token.strip():
            emu.keypad.press(int(token, 16))
    for token in (host_keys or "").split(","):
        token = token.strip()
        if token and not emu.keypad.press_char(token):
            raise ValueError(f"Host key {token!r} is not mapped to the keypad")


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    config = load_config(args.config)
    overrides = {}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.trace:
        overrides["trace"] = True
    if args.cycles is not None:
        overrides["max_cycles"] = args.cycles
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.verbose or args.trace:
        overrides["log_level"] = "DEBUG"
    config = replace(config, **overrides)

    setup_logging(config.log_level, config.log_file)

    emu = Chip8Emulator(config)
    size = emu.load_rom(args.rom)
    _press_keys(emu, args.keys, args.host_keys)
    for bp in args.breakpoints:
        emu.add_breakpoint(_parse_hex(bp))

    log.info("Loaded %s (%d bytes), budget %d cycles", args.rom, size, config.max_cycles)

    if args.realtime:
        reason = _run_realtime(emu, config.max_cycles, config.cycles_per_frame)
    else:
        reason = emu.run(config.max_cycles)

    print(f"Stopped: {reason.value} after {emu.cycles} cycles")
    print(emu.regs.display())
    print(f"DT={emu.timers.delay} ST={emu.timers.sound} "
          f"stack=[{', '.join(f'{a:03X}' for a in emu.regs.stack[:emu.regs.SP])}]")
    if emu.last_error is not None:
        print(f"Error: {emu.last_error}")
    if args.screen:
        print(emu.display.to_text(on="#", off="."))

    return 1 if reason in (StopReason.ILLEGAL, StopReason.BOUNDS) else 0


def _run_realtime(emu, max_cycles, cycles_per_frame):
    """Host loop: a frame of cycles, then sleep out the rest of 1/60 s."""
    executed = 0
    while executed < max_cycles:
        frame_start = time.monotonic()
        for _ in range(min(cycles_per_frame, max_cycles - executed)):
            reason = emu.step()
            if reason is not None:
                return reason
            executed += 1
        emu.state.consume_frame()
        remaining = FRAME_SECONDS - (time.monotonic() - frame_start)
        if remaining > 0:
            time.sleep(remaining)
    return StopReason.TIMEOUT


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    data = Path(args.rom).read_bytes()
    start = _parse_hex(args.start) if args.start else PROGRAM_START
    if start < PROGRAM_START:
        raise ValueError(f"start ${start:03X} is below the program area ${PROGRAM_START:03X}")
    offset = start - PROGRAM_START
    if offset & 1:
        log.warning("Odd start address $%03X: instruction alignment differs from $200", start)

    lines = [r.format() for r in Chip8Disassembler().disassemble(
        data[offset:], base_addr=start, max_instructions=args.count)]
    text = "\n".join(lines)

    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {len(lines)} lines to {args.output}")
    else:
        print(text)
    return 0


# ── info ─────────────────────────────────────────────────────────────────
def cmd_info(args):
    data = Path(args.rom).read_bytes()
    records = Chip8Disassembler().disassemble(data)
    illegal = sum(1 for r in records if r.mnemonic in ("DW", "DB"))
    counts = {}
    for r in records:
        if r.mnemonic not in ("DW", "DB"):
            counts[r.mnemonic] = counts.get(r.mnemonic, 0) + 1

    print(f"File:      {args.rom}")
    print(f"Size:      {len(data)} bytes ({MAX_ROM_SIZE - len(data)} free)"
          if len(data) <= MAX_ROM_SIZE else
          f"Size:      {len(data)} bytes (TOO LARGE, max {MAX_ROM_SIZE})")
    print(f"Words:     {len(records)} ({illegal} not decodable)")
    top = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:8]
    print("Mnemonics: " + ", ".join(f"{m}×{n}" for m, n in top))
    return 0 if len(data) <= MAX_ROM_SIZE else 1


COMMANDS = {
    "run": cmd_run,
    "disasm": cmd_disasm,
    "info": cmd_info,
}


if __name__ == "__main__":
    sys.exit(main())
