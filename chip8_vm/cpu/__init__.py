"""CPU core: registers, ALU, decoder, disassembler."""
