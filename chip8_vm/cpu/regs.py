"""
CHIP-8 Virtual Machine — CPU Register Set + Return Stack

Register model:
  V0–VF  — 8-bit general purpose registers
           VF doubles as the flag register: carry (8XY4), no-borrow
           (8XY5/8XY7), shifted-out bit (8XY6/8XYE), sprite collision
           (DXYN) and I overflow (FX1E). It is overwritten as a side
           effect even when the mnemonic does not name it.
  I      — 16-bit index register (no bound check on assignment)
  PC     — 16-bit program counter, $200 at reset
  SP     — index of the next free stack slot (0 = empty, 16 = full)
  stack  — 16 return addresses
  opcode — the instruction word currently executing
"""

from ..mem.memory import BoundsError

STACK_DEPTH = 16
VF = 0xF


class StackOverflow(BoundsError):
    """CALL with all 16 stack slots in use."""
    pass


class StackUnderflow(BoundsError):
    """RET with an empty stack."""
    pass


class Registers:
    """CHIP-8 CPU register set."""

    __slots__ = ('V', 'I', 'PC', 'SP', 'stack', 'opcode')

    def __init__(self):
        self.V = bytearray(16)
        self.I: int = 0
        self.PC: int = 0x200
        self.SP: int = 0
        self.stack = [0] * STACK_DEPTH
        self.opcode: int = 0

    @property
    def flag(self) -> int:
        """VF, the implicit flag register."""
        return self.V[VF]

    @flag.setter
    def flag(self, value: int):
        self.V[VF] = value & 0xFF

    # --- Stack operations ---

    def push(self, value: int):
        """stack[SP++] = value. Never wraps."""
        if self.SP >= STACK_DEPTH:
            raise StackOverflow(
                f"Stack overflow: CALL at depth {self.SP} (PC=${self.PC:03X})")
        self.stack[self.SP] = value & 0xFFFF
        self.SP += 1

    def pop(self) -> int:
        """return stack[--SP]. Never wraps."""
        if self.SP <= 0:
            raise StackUnderflow(
                f"Stack underflow: RET with empty stack (PC=${self.PC:03X})")
        self.SP -= 1
        return self.stack[self.SP]

    # --- Display ---

    def display(self) -> str:
        """Format register state for debugging."""
        v = ' '.join(f'V{i:X}={self.V[i]:02X}' for i in range(16))
        return (f"PC={self.PC:03X} I={self.I:03X} SP={self.SP:X} "
                f"OP={self.opcode:04X} {v}")

    def reset(self):
        """Reset CPU to power-on state."""
        self.V[:] = bytes(16)
        self.I = 0
        self.PC = 0x200
        self.SP = 0
        self.stack[:] = [0] * STACK_DEPTH
        self.opcode = 0
