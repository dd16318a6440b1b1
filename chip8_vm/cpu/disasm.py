"""
CHIP-8 Disassembler

Renders instruction words using the decoder's opcode tables, in the
conventional Cowgod mnemonic syntax:

    dis = Chip8Disassembler()
    for r in dis.disassemble(rom_bytes, base_addr=0x200):
        print(r.format())   # "$200: 6A 02  LD VA, $02"

Words that do not decode are emitted as DW pseudo-instructions. A trailing
odd byte is emitted as DB.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from . import decoder as d
from ..mem.memory import PROGRAM_START


@dataclass
class DisassembledInstruction:
    """One decoded instruction with all formatting data."""
    address: int
    raw_bytes: bytes
    mnemonic: str
    operand_str: str
    mode: str

    @property
    def hex_str(self) -> str:
        return " ".join(f"{b:02X}" for b in self.raw_bytes)

    @property
    def word(self) -> Optional[int]:
        if len(self.raw_bytes) != 2:
            return None
        return (self.raw_bytes[0] << 8) | self.raw_bytes[1]

    def format(self) -> str:
        """Format as a single disassembly line."""
        asm = f"{self.mnemonic} {self.operand_str}".strip()
        return f"${self.address:03X}: {self.hex_str:5s}  {asm}"


def format_operands(ins: d.Instruction) -> str:
    """Operand text for a decoded instruction."""
    mode = ins.mode
    vx = f"V{ins.x:X}"
    vy = f"V{ins.y:X}"
    if mode == d.NONE:
        return ""
    if mode == d.ADDR:
        return f"${ins.nnn:03X}"
    if mode == d.V0_ADDR:
        return f"V0, ${ins.nnn:03X}"
    if mode == d.VX_BYTE:
        return f"{vx}, ${ins.nn:02X}"
    if mode == d.VX_VY:
        return f"{vx}, {vy}"
    if mode == d.VX:
        return vx
    if mode == d.VX_VY_N:
        return f"{vx}, {vy}, {ins.n}"
    if mode == d.I_ADDR:
        return f"I, ${ins.nnn:03X}"
    if mode == d.VX_DT:
        return f"{vx}, DT"
    if mode == d.VX_K:
        return f"{vx}, K"
    if mode == d.DT_VX:
        return f"DT, {vx}"
    if mode == d.ST_VX:
        return f"ST, {vx}"
    if mode == d.I_VX:
        return f"I, {vx}"
    if mode == d.F_VX:
        return f"F, {vx}"
    if mode == d.B_VX:
        return f"B, {vx}"
    if mode == d.MEM_VX:
        return f"[I], {vx}"
    if mode == d.VX_MEM:
        return f"{vx}, [I]"
    raise ValueError(f"Unknown operand mode: {mode}")


def format_instruction(ins: d.Instruction) -> str:
    return f"{ins.mnemonic} {format_operands(ins)}".strip()


class Chip8Disassembler:
    """Linear-sweep disassembler over raw program bytes."""

    def disassemble(self, data: bytes, base_addr: int = PROGRAM_START,
                    max_instructions: int = 0) -> List[DisassembledInstruction]:
        """Disassemble a block of bytes, two bytes per instruction."""
        data = bytes(data)
        results: List[DisassembledInstruction] = []
        for offset in range(0, len(data), 2):
            results.append(self.decode_one(data, offset, base_addr + offset))
            if max_instructions and len(results) >= max_instructions:
                break
        return results

    def decode_one(self, data: bytes, offset: int = 0,
                   base_addr: int = 0) -> DisassembledInstruction:
        raw = bytes(data[offset:offset + 2])
        if len(raw) < 2:
            return DisassembledInstruction(base_addr, raw, "DB",
                                           " ".join(f"${b:02X}" for b in raw), "DATA")
        word = (raw[0] << 8) | raw[1]
        try:
            ins = d.decode(word, base_addr)
        except d.IllegalOpcode:
            return DisassembledInstruction(base_addr, raw, "DW", f"${word:04X}", "DATA")
        return DisassembledInstruction(base_addr, raw, ins.mnemonic,
                                       format_operands(ins), ins.mode)


def disassemble_bytes(data: bytes, base_addr: int = PROGRAM_START) -> List[DisassembledInstruction]:
    """Module-level convenience function."""
    return Chip8Disassembler().disassemble(data, base_addr)
