"""
NMOS 6502 Instruction Set
=========================

The documented 6502 opcode map, expressed as ``ArchitectureDefinition``
data. The 65C02 and 65C816 tables extend the dictionaries defined here.

Addressing Modes
----------------

| Mode        | Syntax     | Operand | Example        |
|-------------|------------|---------|----------------|
| implied     |            | 0       | ``RTS``        |
| accumulator | ``A``      | 0       | ``ASL A``      |
| immediate   | ``#{}``    | 1       | ``LDA #$41``   |
| direct      | ``{}``     | 1       | ``LDA $80``    |
| direct_x    | ``{},X``   | 1       | ``LDA $80,X``  |
| direct_y    | ``{},Y``   | 1       | ``LDX $80,Y``  |
| absolute    | ``{}``     | 2       | ``LDA $1234``  |
| absolute_x  | ``{},X``   | 2       | ``LDA $1234,X``|
| absolute_y  | ``{},Y``   | 2       | ``LDA $1234,Y``|
| indirect    | ``({})``   | 2       | ``JMP ($FFFC)``|
| indirect_x  | ``({},X)`` | 1       | ``LDA ($80,X)``|
| indirect_y  | ``({}),Y`` | 1       | ``LDA ($80),Y``|
| relative    | ``{}``     | 1       | ``BNE LOOP``   |

"direct" is the zero page. Whether ``LDA $80`` is direct or absolute is
decided by the resolver from the operand value.
"""

from typing import Mapping, Optional

from liteasm.arch.model import (
    AddressingMode,
    ArchitectureDefinition,
    InstructionDef,
    InstructionEncoding,
)


MODES = (
    AddressingMode("implied", ""),
    AddressingMode("accumulator", "A"),
    AddressingMode("immediate", "#{}"),
    AddressingMode("direct", "{}"),
    AddressingMode("direct_x", "{},X"),
    AddressingMode("direct_y", "{},Y"),
    AddressingMode("absolute", "{}"),
    AddressingMode("absolute_x", "{},X"),
    AddressingMode("absolute_y", "{},Y"),
    AddressingMode("indirect", "({})"),
    AddressingMode("indirect_x", "({},X)"),
    AddressingMode("indirect_y", "({}),Y"),
    AddressingMode("relative", "{}", relative=True),
)

# Operand size in bytes of every mode
OPERAND_SIZES = {
    "implied": 0,
    "accumulator": 0,
    "immediate": 1,
    "direct": 1,
    "direct_x": 1,
    "direct_y": 1,
    "absolute": 2,
    "absolute_x": 2,
    "absolute_y": 2,
    "indirect": 2,
    "indirect_x": 1,
    "indirect_y": 1,
    "relative": 1,
}

# Column order of the group-one (ALU) instructions
ALU_MODES = (
    "immediate", "direct", "direct_x", "absolute",
    "absolute_x", "absolute_y", "indirect_x", "indirect_y",
)

# Column order of the shift and rotate instructions
SHIFT_MODES = ("accumulator", "direct", "direct_x", "absolute", "absolute_x")


def columns(modes: tuple[str, ...], *opcodes: Optional[int]) -> dict[str, int]:
    """Zip a mode column order with opcodes; None skips a column."""
    return {mode: op for mode, op in zip(modes, opcodes) if op is not None}


def implied(opcode: int) -> dict[str, int]:
    return {"implied": opcode}


def relative(opcode: int) -> dict[str, int]:
    return {"relative": opcode}


def shift(opcode: int, *opcodes: int) -> dict[str, int]:
    """
    A shift/rotate row. The accumulator form is also accepted without
    an operand (``ASL`` is ``ASL A``).
    """
    row = columns(SHIFT_MODES, opcode, *opcodes)
    row["implied"] = opcode
    return row


OPCODES: dict[str, dict[str, int]] = {
    # Group one
    "ADC": columns(ALU_MODES, 0x69, 0x65, 0x75, 0x6D, 0x7D, 0x79, 0x61, 0x71),
    "AND": columns(ALU_MODES, 0x29, 0x25, 0x35, 0x2D, 0x3D, 0x39, 0x21, 0x31),
    "CMP": columns(ALU_MODES, 0xC9, 0xC5, 0xD5, 0xCD, 0xDD, 0xD9, 0xC1, 0xD1),
    "EOR": columns(ALU_MODES, 0x49, 0x45, 0x55, 0x4D, 0x5D, 0x59, 0x41, 0x51),
    "LDA": columns(ALU_MODES, 0xA9, 0xA5, 0xB5, 0xAD, 0xBD, 0xB9, 0xA1, 0xB1),
    "ORA": columns(ALU_MODES, 0x09, 0x05, 0x15, 0x0D, 0x1D, 0x19, 0x01, 0x11),
    "SBC": columns(ALU_MODES, 0xE9, 0xE5, 0xF5, 0xED, 0xFD, 0xF9, 0xE1, 0xF1),
    "STA": columns(ALU_MODES, None, 0x85, 0x95, 0x8D, 0x9D, 0x99, 0x81, 0x91),

    # Shifts and rotates
    "ASL": shift(0x0A, 0x06, 0x16, 0x0E, 0x1E),
    "LSR": shift(0x4A, 0x46, 0x56, 0x4E, 0x5E),
    "ROL": shift(0x2A, 0x26, 0x36, 0x2E, 0x3E),
    "ROR": shift(0x6A, 0x66, 0x76, 0x6E, 0x7E),

    # Memory increment/decrement
    "DEC": {"direct": 0xC6, "direct_x": 0xD6, "absolute": 0xCE, "absolute_x": 0xDE},
    "INC": {"direct": 0xE6, "direct_x": 0xF6, "absolute": 0xEE, "absolute_x": 0xFE},

    # Index registers
    "CPX": {"immediate": 0xE0, "direct": 0xE4, "absolute": 0xEC},
    "CPY": {"immediate": 0xC0, "direct": 0xC4, "absolute": 0xCC},
    "LDX": {"immediate": 0xA2, "direct": 0xA6, "direct_y": 0xB6,
            "absolute": 0xAE, "absolute_y": 0xBE},
    "LDY": {"immediate": 0xA0, "direct": 0xA4, "direct_x": 0xB4,
            "absolute": 0xAC, "absolute_x": 0xBC},
    "STX": {"direct": 0x86, "direct_y": 0x96, "absolute": 0x8E},
    "STY": {"direct": 0x84, "direct_x": 0x94, "absolute": 0x8C},

    "BIT": {"direct": 0x24, "absolute": 0x2C},

    # Control flow
    "JMP": {"absolute": 0x4C, "indirect": 0x6C},
    "JSR": {"absolute": 0x20},
    "BCC": relative(0x90),
    "BCS": relative(0xB0),
    "BEQ": relative(0xF0),
    "BMI": relative(0x30),
    "BNE": relative(0xD0),
    "BPL": relative(0x10),
    "BVC": relative(0x50),
    "BVS": relative(0x70),
    "BRK": implied(0x00),
    "RTI": implied(0x40),
    "RTS": implied(0x60),

    # Flags
    "CLC": implied(0x18),
    "CLD": implied(0xD8),
    "CLI": implied(0x58),
    "CLV": implied(0xB8),
    "SEC": implied(0x38),
    "SED": implied(0xF8),
    "SEI": implied(0x78),

    # Register transfers and stack
    "DEX": implied(0xCA),
    "DEY": implied(0x88),
    "INX": implied(0xE8),
    "INY": implied(0xC8),
    "TAX": implied(0xAA),
    "TAY": implied(0xA8),
    "TSX": implied(0xBA),
    "TXA": implied(0x8A),
    "TXS": implied(0x9A),
    "TYA": implied(0x98),
    "PHA": implied(0x48),
    "PHP": implied(0x08),
    "PLA": implied(0x68),
    "PLP": implied(0x28),
    "NOP": implied(0xEA),
}


def build_instructions(
    opcodes: Mapping[str, Mapping[str, int]],
    sizes: Mapping[str, int],
    width_flags: Optional[Mapping[tuple[str, str], str]] = None,
) -> tuple[InstructionDef, ...]:
    """
    Turn an opcode table into InstructionDefs.

    Args:
        opcodes: mnemonic -> {mode: opcode}
        sizes: mode -> fixed operand size
        width_flags: (mnemonic, mode) -> flag name for width-sensitive forms
    """
    width_flags = width_flags or {}
    instructions = []
    for mnemonic, row in sorted(opcodes.items()):
        encodings = {}
        for mode, opcode in row.items():
            flag = width_flags.get((mnemonic, mode))
            if flag:
                encodings[mode] = InstructionEncoding(opcode, width_flag=flag)
            else:
                encodings[mode] = InstructionEncoding(opcode, sizes[mode])
        instructions.append(InstructionDef(mnemonic, encodings))
    return tuple(instructions)


ARCH = ArchitectureDefinition(
    name="6502",
    modes=MODES,
    instructions=build_instructions(OPCODES, OPERAND_SIZES),
    description="MOS 6502, documented opcodes",
)
