"""
CHIP-8 Virtual Machine — 8-bit ALU Operations

Each function returns (result_byte, vf) and never touches machine state;
the caller writes the result into VX first and VF second, so that when X
is F the flag wins.

Flag conventions (one convention, used everywhere):
  add8   VF = 1 on carry out of bit 7
  sub8   VF = 1 when NO borrow occurs (a >= b), 0 on borrow
  shr8   VF = bit 0 before the shift
  shl8   VF = bit 7 before the shift
Equal operands give VF = 1 for sub8; interpreters that test a > b clear
VF there instead, and programs relying on that will see a difference.
Shifts operate on VX in place; VY is not consulted.
"""


def add8(a: int, b: int) -> tuple:
    """VX + VY. VF = carry."""
    result = a + b
    return (result & 0xFF, 1 if result > 0xFF else 0)


def sub8(a: int, b: int) -> tuple:
    """a - b. VF = 1 when there is no borrow (a >= b)."""
    return ((a - b) & 0xFF, 1 if a >= b else 0)


def shr8(a: int) -> tuple:
    return (a >> 1, a & 0x01)


def shl8(a: int) -> tuple:
    return ((a << 1) & 0xFF, (a >> 7) & 0x01)


def add_index(i: int, value: int) -> tuple:
    """I + VX. VF = 1 when the sum leaves the 12-bit address range."""
    result = i + value
    return (result & 0xFFFF, 1 if result > 0xFFF else 0)


def bcd(value: int) -> tuple:
    """Decimal digits (hundreds, tens, ones) of an 8-bit value."""
    return (value // 100, (value // 10) % 10, value % 10)
