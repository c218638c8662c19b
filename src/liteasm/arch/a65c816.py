"""
WDC 65C816 Instruction Set
==========================

The 16-bit member of the family. On top of the 65C02 table it adds 24-bit
long addressing, stack-relative and indirect-long modes, block moves, and
the width flags that make immediate operands one or two bytes long.

Width Flags
-----------

| Flag | P bit | Set (SEP) | Clear (REP) | Affects immediates of           |
|------|-------|-----------|-------------|---------------------------------|
| m    | $20   | 8 bit     | 16 bit      | ADC AND BIT CMP EOR LDA ORA SBC |
| x    | $10   | 8 bit     | 16 bit      | CPX CPY LDX LDY                 |

Both flags start as 8 bit (emulation mode after reset). ``SEP #$20``
selects an 8-bit accumulator, ``REP #$30`` a 16-bit accumulator and
16-bit index registers. XCE and PLP load the flags from values the
assembler cannot see, so after either one the width must be restated
with ``.MODE`` or one of the ``.A8``/``.A16``/``.I8``/``.I16``/``.AXY8``/
``.AXY16`` directives before the next width-sensitive instruction.

Block moves are written ``MVN src,dst`` and encoded with the destination
bank first.
"""

from liteasm.arch import a65c02
from liteasm.arch.a6502 import build_instructions, implied
from liteasm.arch.model import (
    AddressingMode,
    ArchitectureDefinition,
    ModeFlag,
    ModeFlagRules,
    ModeTransition,
    TransitionAction,
)


MODES = a65c02.MODES + (
    AddressingMode("long", "{}"),
    AddressingMode("long_x", "{},X"),
    AddressingMode("direct_indirect_long", "[{}]"),
    AddressingMode("direct_indirect_long_y", "[{}],Y"),
    AddressingMode("absolute_indirect_long", "[{}]"),
    AddressingMode("stack_s", "{},S"),
    AddressingMode("stack_s_indirect_y", "({},S),Y"),
    AddressingMode("relative_long", "{}", relative=True),
    AddressingMode("block_move", "{},{}", reverse_operands=True),
)

OPERAND_SIZES = {
    **a65c02.OPERAND_SIZES,
    "long": 3,
    "long_x": 3,
    "direct_indirect_long": 1,
    "direct_indirect_long_y": 1,
    "absolute_indirect_long": 2,
    "stack_s": 1,
    "stack_s_indirect_y": 1,
    "relative_long": 2,
    "block_move": 2,
}

# Column order of the 65816 additions to the group-one instructions
LONG_ALU_MODES = (
    "long", "long_x", "direct_indirect_long",
    "direct_indirect_long_y", "stack_s", "stack_s_indirect_y",
)


def _long_alu(*opcodes: int) -> dict[str, int]:
    return dict(zip(LONG_ALU_MODES, opcodes))


OPCODES = a65c02.extend(a65c02.OPCODES, {
    "ADC": _long_alu(0x6F, 0x7F, 0x67, 0x77, 0x63, 0x73),
    "AND": _long_alu(0x2F, 0x3F, 0x27, 0x37, 0x23, 0x33),
    "CMP": _long_alu(0xCF, 0xDF, 0xC7, 0xD7, 0xC3, 0xD3),
    "EOR": _long_alu(0x4F, 0x5F, 0x47, 0x57, 0x43, 0x53),
    "LDA": _long_alu(0xAF, 0xBF, 0xA7, 0xB7, 0xA3, 0xB3),
    "ORA": _long_alu(0x0F, 0x1F, 0x07, 0x17, 0x03, 0x13),
    "SBC": _long_alu(0xEF, 0xFF, 0xE7, 0xF7, 0xE3, 0xF3),
    "STA": _long_alu(0x8F, 0x9F, 0x87, 0x97, 0x83, 0x93),

    "JMP": {"long": 0x5C, "absolute_indirect_long": 0xDC},
    "JML": {"long": 0x5C, "absolute_indirect_long": 0xDC},
    "JSL": {"long": 0x22},
    "JSR": {"absolute_indirect_x": 0xFC, "long": 0x22},
    "BRL": {"relative_long": 0x82},
    "PER": {"relative_long": 0x62},
    "PEA": {"absolute": 0xF4},
    "PEI": {"direct_indirect": 0xD4},
    "MVN": {"block_move": 0x54},
    "MVP": {"block_move": 0x44},
    "REP": {"immediate": 0xC2},
    "SEP": {"immediate": 0xE2},
    "COP": {"immediate": 0x02},
    "WDM": {"immediate": 0x42},

    "PHB": implied(0x8B),
    "PHD": implied(0x0B),
    "PHK": implied(0x4B),
    "PLB": implied(0xAB),
    "PLD": implied(0x2B),
    "RTL": implied(0x6B),
    "TCD": implied(0x5B),
    "TCS": implied(0x1B),
    "TDC": implied(0x7B),
    "TSC": implied(0x3B),
    "TXY": implied(0x9B),
    "TYX": implied(0xBB),
    "XBA": implied(0xEB),
    "XCE": implied(0xFB),
})

WIDTH_FLAGS = {
    **{(m, "immediate"): "m" for m in ("ADC", "AND", "BIT", "CMP", "EOR", "LDA", "ORA", "SBC")},
    **{(m, "immediate"): "x" for m in ("CPX", "CPY", "LDX", "LDY")},
}

MODE_RULES = ModeFlagRules(
    flags=(
        ModeFlag("m", bit=0x20, set_width=8, clear_width=16, default=8),
        ModeFlag("x", bit=0x10, set_width=8, clear_width=16, default=8),
    ),
    transitions=(
        ModeTransition("SEP", TransitionAction.SET),
        ModeTransition("REP", TransitionAction.CLEAR),
        ModeTransition("XCE", TransitionAction.INVALIDATE),
        ModeTransition("PLP", TransitionAction.INVALIDATE),
    ),
    directives={
        "A8": {"m": 8},
        "A16": {"m": 16},
        "I8": {"x": 8},
        "I16": {"x": 16},
        "AXY8": {"m": 8, "x": 8},
        "AXY16": {"m": 16, "x": 16},
    },
)


ARCH = ArchitectureDefinition(
    name="65c816",
    modes=MODES,
    instructions=build_instructions(OPCODES, OPERAND_SIZES, WIDTH_FLAGS),
    mode_rules=MODE_RULES,
    address_size=2,
    description="WDC 65C816 with m/x width tracking",
)
