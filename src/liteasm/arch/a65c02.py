"""
WDC 65C02 Instruction Set
=========================

Extends the 6502 table with the CMOS additions: zero page indirect
addressing, ``JMP (abs,X)``, BRA, STZ, TRB/TSB, the X/Y push and pull
instructions, accumulator INC/DEC, the extra BIT modes, and WAI/STP.
The Rockwell bit instructions (RMB/SMB/BBR/BBS) are not included.
"""

from liteasm.arch import a6502
from liteasm.arch.a6502 import build_instructions, implied, relative
from liteasm.arch.model import AddressingMode, ArchitectureDefinition


MODES = a6502.MODES + (
    AddressingMode("direct_indirect", "({})"),
    AddressingMode("absolute_indirect_x", "({},X)"),
)

OPERAND_SIZES = {
    **a6502.OPERAND_SIZES,
    "direct_indirect": 1,
    "absolute_indirect_x": 2,
}


def extend(base: dict[str, dict[str, int]], additions: dict[str, dict[str, int]]):
    """Copy an opcode table and merge additional rows into it."""
    table = {mnemonic: dict(row) for mnemonic, row in base.items()}
    for mnemonic, row in additions.items():
        table.setdefault(mnemonic, {}).update(row)
    return table


OPCODES = extend(a6502.OPCODES, {
    "ADC": {"direct_indirect": 0x72},
    "AND": {"direct_indirect": 0x32},
    "CMP": {"direct_indirect": 0xD2},
    "EOR": {"direct_indirect": 0x52},
    "LDA": {"direct_indirect": 0xB2},
    "ORA": {"direct_indirect": 0x12},
    "SBC": {"direct_indirect": 0xF2},
    "STA": {"direct_indirect": 0x92},

    "BIT": {"immediate": 0x89, "direct_x": 0x34, "absolute_x": 0x3C},
    "DEC": {"accumulator": 0x3A, "implied": 0x3A},
    "INC": {"accumulator": 0x1A, "implied": 0x1A},
    "JMP": {"absolute_indirect_x": 0x7C},

    "BRA": relative(0x80),
    "PHX": implied(0xDA),
    "PHY": implied(0x5A),
    "PLX": implied(0xFA),
    "PLY": implied(0x7A),
    "STZ": {"direct": 0x64, "direct_x": 0x74, "absolute": 0x9C, "absolute_x": 0x9E},
    "TRB": {"direct": 0x14, "absolute": 0x1C},
    "TSB": {"direct": 0x04, "absolute": 0x0C},
    "WAI": implied(0xCB),
    "STP": implied(0xDB),
})


ARCH = ArchitectureDefinition(
    name="65c02",
    modes=MODES,
    instructions=build_instructions(OPCODES, OPERAND_SIZES),
    description="WDC 65C02",
)
