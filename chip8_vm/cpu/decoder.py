"""
CHIP-8 Virtual Machine — Opcode Decoder / Dispatch Tables

Every instruction is one big-endian 16-bit word. The top nibble selects
one of 16 families. Families 0, E and F are multiplexed by the low byte,
family 8 by the low nibble. Families 5 and 9 are not multiplexed: the low
nibble is ignored.

Field extraction:
  NNN  low 12 bits  — address
  NN   low 8 bits   — immediate byte
  N    low 4 bits   — immediate nibble (sprite height)
  X    bits 8–11    — register index
  Y    bits 4–7     — register index

Each table entry is (mnemonic, operand_mode). Operand modes double as
the disassembly syntax and, together with the mnemonic, as the key the
emulator dispatches on.
"""

from typing import NamedTuple

# ──────────────────────────────────────────────
# Operand mode constants
# ──────────────────────────────────────────────

NONE      = 'NONE'        # CLS, RET
ADDR      = 'ADDR'        # JP addr, CALL addr
V0_ADDR   = 'V0_ADDR'     # JP V0, addr
VX_BYTE   = 'VX_BYTE'     # SE/SNE/LD/ADD/RND Vx, byte
VX_VY     = 'VX_VY'       # SE/SNE/LD/OR/AND/XOR/ADD/SUB/SUBN Vx, Vy
VX        = 'VX'          # SHR/SHL/SKP/SKNP Vx
VX_VY_N   = 'VX_VY_N'     # DRW Vx, Vy, nibble
I_ADDR    = 'I_ADDR'      # LD I, addr
VX_DT     = 'VX_DT'       # LD Vx, DT
VX_K      = 'VX_K'        # LD Vx, K
DT_VX     = 'DT_VX'       # LD DT, Vx
ST_VX     = 'ST_VX'       # LD ST, Vx
I_VX      = 'I_VX'        # ADD I, Vx
F_VX      = 'F_VX'        # LD F, Vx
B_VX      = 'B_VX'        # LD B, Vx
MEM_VX    = 'MEM_VX'      # LD [I], Vx
VX_MEM    = 'VX_MEM'      # LD Vx, [I]


# ──────────────────────────────────────────────
# Family table: families that are not multiplexed
# ──────────────────────────────────────────────

OPCODES = {
    0x1: ('JP',   ADDR),
    0x2: ('CALL', ADDR),
    0x3: ('SE',   VX_BYTE),
    0x4: ('SNE',  VX_BYTE),
    0x5: ('SE',   VX_VY),
    0x6: ('LD',   VX_BYTE),
    0x7: ('ADD',  VX_BYTE),
    0x9: ('SNE',  VX_VY),
    0xA: ('LD',   I_ADDR),
    0xB: ('JP',   V0_ADDR),
    0xC: ('RND',  VX_BYTE),
    0xD: ('DRW',  VX_VY_N),
}


# ──────────────────────────────────────────────
# Sub-tables: families multiplexed by low byte / low nibble
# ──────────────────────────────────────────────
# Format: family -> (selector_mask, {selector: (mnemonic, mode)})

SUB_OPCODES = {
    0x0: (0x00FF, {
        0xE0: ('CLS',  NONE),
        0xEE: ('RET',  NONE),
    }),
    0x8: (0x000F, {
        0x0: ('LD',   VX_VY),
        0x1: ('OR',   VX_VY),
        0x2: ('AND',  VX_VY),
        0x3: ('XOR',  VX_VY),
        0x4: ('ADD',  VX_VY),
        0x5: ('SUB',  VX_VY),
        0x6: ('SHR',  VX),
        0x7: ('SUBN', VX_VY),
        0xE: ('SHL',  VX),
    }),
    0xE: (0x00FF, {
        0x9E: ('SKP',  VX),
        0xA1: ('SKNP', VX),
    }),
    0xF: (0x00FF, {
        0x07: ('LD',  VX_DT),
        0x0A: ('LD',  VX_K),
        0x15: ('LD',  DT_VX),
        0x18: ('LD',  ST_VX),
        0x1E: ('ADD', I_VX),
        0x29: ('LD',  F_VX),
        0x33: ('LD',  B_VX),
        0x55: ('LD',  MEM_VX),
        0x65: ('LD',  VX_MEM),
    }),
}


class IllegalOpcode(Exception):
    """Raised when an opcode or sub-opcode is not in the instruction set."""

    def __init__(self, opcode: int, address: int = None):
        self.opcode = opcode
        self.family = (opcode >> 12) & 0xF
        self.address = address
        where = f" at ${address:03X}" if address is not None else ""
        super().__init__(
            f"[{self.family:X}xxx] opcode ${opcode:04X} not recognized{where}")


class Instruction(NamedTuple):
    """One decoded instruction word."""
    opcode: int
    mnemonic: str
    mode: str

    @property
    def family(self) -> int:
        return (self.opcode >> 12) & 0xF

    @property
    def nnn(self) -> int:
        return self.opcode & 0x0FFF

    @property
    def nn(self) -> int:
        return self.opcode & 0x00FF

    @property
    def n(self) -> int:
        return self.opcode & 0x000F

    @property
    def x(self) -> int:
        return (self.opcode >> 8) & 0xF

    @property
    def y(self) -> int:
        return (self.opcode >> 4) & 0xF


def lookup(opcode: int):
    """Map an instruction word to (mnemonic, mode), or None if illegal."""
    family = (opcode >> 12) & 0xF
    if family in OPCODES:
        return OPCODES[family]
    mask, table = SUB_OPCODES[family]
    return table.get(opcode & mask)


def decode(opcode: int, address: int = None) -> Instruction:
    """Decode an instruction word. Raises IllegalOpcode if unrecognized."""
    opcode &= 0xFFFF
    entry = lookup(opcode)
    if entry is None:
        raise IllegalOpcode(opcode, address)
    mnem, mode = entry
    return Instruction(opcode, mnem, mode)
