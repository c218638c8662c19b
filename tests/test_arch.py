# =============================================================================
# test_arch.py - Architecture Model Tests
# =============================================================================
# Tests for the architecture data model and the built-in tables.
#
# Test coverage includes:
#   - Built-in 6502, 65C02 and 65C816 tables
#   - Template parsing
#   - Validation of hand-built architectures
#   - Context construction and copy-on-write editing
# =============================================================================

import pytest
from liteasm.arch import BUILTIN_ARCHITECTURES, get_builtin
from liteasm.arch.model import (
    SLOT,
    AddressingMode,
    ArchitectureDefinition,
    InstructionDef,
    InstructionEncoding,
    ModeFlag,
    ModeFlagRules,
    ModeTransition,
    SyntaxRules,
    TransitionAction,
    parse_template,
)
from liteasm.context import DEFAULT_SEGMENT, Context, ContextSymbol, Patch
from liteasm.errors import ConfigError


def make_arch(**overrides) -> ArchitectureDefinition:
    """A two-instruction architecture with one width flag."""
    settings = dict(
        name="tiny",
        modes=(
            AddressingMode("implied", ""),
            AddressingMode("immediate", "#{}"),
        ),
        instructions=(
            InstructionDef("NOP", {"implied": InstructionEncoding(0xEA)}),
            InstructionDef("LDA", {"immediate": InstructionEncoding(0xA9, width_flag="m")}),
        ),
        mode_rules=ModeFlagRules(flags=(ModeFlag("m", bit=0x20),)),
    )
    settings.update(overrides)
    return ArchitectureDefinition(**settings)


# =============================================================================
# Built-in Table Tests
# =============================================================================

class TestBuiltins:
    """Test the built-in architectures."""

    def test_names(self):
        assert sorted(BUILTIN_ARCHITECTURES) == ["6502", "65c02", "65c816"]

    def test_lookup_is_case_insensitive(self):
        assert get_builtin("65C816") is get_builtin("65c816")

    def test_unknown(self):
        with pytest.raises(ConfigError, match="built-in: 6502"):
            get_builtin("z80")

    def test_6502(self):
        arch = get_builtin("6502")
        assert len(arch.mnemonics) == 56
        assert arch.encoding("LDA", "immediate").opcode == 0xA9
        assert arch.encoding("STA", "immediate") is None
        assert arch.mode_rules.flags == ()

    def test_65c02_extends_6502(self):
        base = get_builtin("6502")
        cmos = get_builtin("65c02")
        assert base.mnemonics < cmos.mnemonics
        assert {"BRA", "STZ", "PHX", "TRB"} <= cmos.mnemonics
        assert cmos.encoding("LDA", "direct_indirect").opcode == 0xB2

    def test_65c816_width_flags(self):
        arch = get_builtin("65c816")
        assert [f.name for f in arch.mode_rules.flags] == ["m", "x"]
        assert arch.encoding("LDA", "immediate").width_flag == "m"
        assert arch.encoding("LDX", "immediate").width_flag == "x"
        assert arch.encoding("SEP", "immediate").width_flag is None
        assert arch.mode_rules.transition_for("rep").action == TransitionAction.CLEAR

    def test_65c816_shared_templates(self):
        """direct, absolute and long read the same in source."""
        arch = get_builtin("65c816")
        assert arch.mode("direct").syntax == arch.mode("absolute").syntax == arch.mode("long").syntax
        assert set(arch.modes_for("LDA")) >= {"direct", "absolute", "long"}

    def test_modes_for_unknown(self):
        assert get_builtin("6502").modes_for("FOO") == ()


# =============================================================================
# Template Tests
# =============================================================================

class TestTemplates:
    """Test addressing mode templates."""

    @pytest.mark.parametrize("syntax,expected", [
        ("", ()),
        ("A", ("A",)),
        ("#{}", ("#", SLOT)),
        ("{},x", (SLOT, ",", "X")),
        ("({},X)", ("(", SLOT, ",", "X", ")")),
        ("[{}],Y", ("[", SLOT, "]", ",", "Y")),
        ("{},{}", (SLOT, ",", SLOT)),
    ])
    def test_parse_template(self, syntax, expected):
        assert parse_template(syntax) == expected

    def test_counts(self):
        mode = AddressingMode("indirect_x", "({},X)")
        assert mode.slot_count == 1
        assert mode.literal_count == 4
        assert AddressingMode("block_move", "{},{}").slot_count == 2


# =============================================================================
# Validation Tests
# =============================================================================

class TestValidation:
    """Test that inconsistent architectures are refused."""

    def test_valid(self):
        arch = make_arch()
        assert arch.has_mnemonic("nop")
        assert arch.instruction("lda").mnemonic == "LDA"

    def test_unknown_mode(self):
        with pytest.raises(ConfigError, match="unknown addressing mode"):
            make_arch(instructions=(
                InstructionDef("LDA", {"absolute": InstructionEncoding(0xAD, 2)}),
            ))

    def test_opcode_range(self):
        with pytest.raises(ConfigError, match="not a byte"):
            make_arch(instructions=(InstructionDef("NOP", {"implied": InstructionEncoding(0x100)}),))

    def test_unknown_width_flag(self):
        with pytest.raises(ConfigError, match="unknown width flag"):
            make_arch(instructions=(
                InstructionDef("LDX", {"immediate": InstructionEncoding(0xA2, width_flag="x")}),
            ))

    def test_operand_size_for_implied(self):
        with pytest.raises(ConfigError, match="has no operand"):
            make_arch(instructions=(InstructionDef("NOP", {"implied": InstructionEncoding(0xEA, 1)}),))

    def test_missing_operand_size(self):
        with pytest.raises(ConfigError, match="does not split"):
            make_arch(instructions=(InstructionDef("LDA", {"immediate": InstructionEncoding(0xA9)}),))

    def test_duplicate_mode(self):
        with pytest.raises(ConfigError, match="duplicate addressing mode"):
            make_arch(modes=(AddressingMode("implied", ""), AddressingMode("implied", "A")))

    def test_duplicate_instruction(self):
        with pytest.raises(ConfigError, match="duplicate instruction"):
            make_arch(instructions=(
                InstructionDef("NOP", {"implied": InstructionEncoding(0xEA)}),
                InstructionDef("nop", {"implied": InstructionEncoding(0xEA)}),
            ))

    def test_unknown_marker(self):
        with pytest.raises(ConfigError, match="not an operand marker"):
            make_arch(modes=(
                AddressingMode("implied", ""),
                AddressingMode("immediate", "@{}"),
            ))

    def test_transition_for_unknown_instruction(self):
        rules = ModeFlagRules(
            flags=(ModeFlag("m", bit=0x20),),
            transitions=(ModeTransition("SEP", "set"),),
        )
        with pytest.raises(ConfigError, match="unknown instruction 'SEP'"):
            make_arch(mode_rules=rules)

    def test_duplicate_flags(self):
        with pytest.raises(ConfigError, match="duplicate mode flag"):
            ModeFlagRules(flags=(ModeFlag("m"), ModeFlag("m")))

    def test_flag_width(self):
        with pytest.raises(ConfigError, match="whole number of bytes"):
            ModeFlag("m", set_width=12)

    def test_directive_width(self):
        with pytest.raises(ConfigError, match="cannot be 32 bits"):
            ModeFlagRules(flags=(ModeFlag("m"),), directives={"A32": {"m": 32}})

    def test_directive_unknown_flag(self):
        with pytest.raises(ConfigError, match="unknown flag"):
            ModeFlagRules(flags=(ModeFlag("m"),), directives={"I16": {"x": 16}})

    def test_syntax_marker(self):
        with pytest.raises(ConfigError):
            SyntaxRules(immediate_marker="@")

    def test_syntax_radix(self):
        with pytest.raises(ConfigError, match="unsupported radix"):
            SyntaxRules(radix_prefixes={"&": 7})

    def test_relative_mode_slots(self):
        with pytest.raises(ConfigError, match="one operand slot"):
            make_arch(modes=(
                AddressingMode("implied", ""),
                AddressingMode("immediate", "#{}"),
                AddressingMode("bad", "{},{}", relative=True),
            ))


# =============================================================================
# Context Tests
# =============================================================================

class TestContext:
    """Test context construction and editing."""

    def test_default_segment(self):
        ctx = Context(origin=0x8000)
        assert ctx.segments == {DEFAULT_SEGMENT: 0x8000}

    def test_segment_names_upper_cased(self):
        assert "DATA" in Context(segments={"data": 0x200}).segments

    def test_negative_origin(self):
        with pytest.raises(ConfigError):
            Context(origin=-1)

    def test_duplicate_vectors(self):
        from liteasm.context import Vector

        with pytest.raises(ConfigError, match="duplicate vector"):
            Context(vectors=(Vector("RESET", 0xFFFC, 0), Vector("RESET", 0xFFFE, 0)))

    def test_patch_content(self):
        assert Patch(0, data=b"\x01\x02").content == b"\x01\x02"
        assert Patch(0, repeat=(0xEA, 3)).content == b"\xEA\xEA\xEA"

    def test_patch_repeat_byte(self):
        with pytest.raises(ConfigError):
            Patch(0, repeat=(0x100, 1))

    def test_with_origin_moves_code_segment(self):
        ctx = Context(origin=0x8000).with_origin(0xC000)
        assert ctx.origin == 0xC000
        assert ctx.segments[DEFAULT_SEGMENT] == 0xC000

    def test_with_origin_keeps_explicit_code_segment(self):
        ctx = Context(origin=0, segments={"CODE": 0x9000}).with_origin(0xC000)
        assert ctx.segments[DEFAULT_SEGMENT] == 0x9000

    def test_with_symbol_replaces(self):
        """Copies are edited; the original context never changes."""
        original = Context().with_symbol("IO", 1)
        changed = original.with_symbol("IO", 2)
        assert [(s.name, s.value) for s in changed.symbols] == [("IO", 2)]
        assert [(s.name, s.value) for s in original.symbols] == [("IO", 1)]

    def test_with_symbol_case_rule(self):
        original = Context().with_symbol("IO", 1)
        sensitive = original.with_symbol("io", 2)
        assert [s.name for s in sensitive.symbols] == ["IO", "io"]
        insensitive = original.with_symbol("io", 2, case_sensitive=False)
        assert [(s.name, s.value) for s in insensitive.symbols] == [("io", 2)]

    def test_names_differing_in_case_allowed(self):
        """Whether foo and FOO clash depends on the architecture."""
        ctx = Context(symbols=(ContextSymbol("foo", 1), ContextSymbol("FOO", 2)))
        assert len(ctx.symbols) == 2

    def test_with_vector(self):
        ctx = Context().with_vector("RESET", 0xFFFC, "START").with_vector("NMI", 0xFFFA, 0)
        ctx = ctx.with_vector("RESET", 0xFFFC, "MAIN")
        assert [(v.name, v.handler) for v in ctx.vectors] == [("NMI", 0), ("RESET", "MAIN")]
