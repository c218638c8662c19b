# =============================================================================
# test_modes.py - Width Mode Tracking Tests
# =============================================================================
# Tests for the 65C816 m/x width tracking.
#
# Test coverage includes:
#   - Initial state from architecture defaults and context overrides
#   - SEP/REP transitions, invalidating instructions
#   - .MODE and the architecture's alias directives
#   - Literal-only transition operands
#   - The fold is a pure function of the statements
# =============================================================================

import pytest
from liteasm.arch import get_builtin
from liteasm.assembler.lexer import Lexer
from liteasm.assembler.modes import ModeState, ModeTracker
from liteasm.assembler.parser import Parser
from liteasm.errors import ConfigError, DirectiveError, ModeAmbiguityError


ARCH = get_builtin("65c816")


# =============================================================================
# Helper Functions
# =============================================================================

def statements(source: str, arch=ARCH) -> list:
    return Parser(Lexer(source, arch).tokenize(), arch).parse()


def final_state(source: str, initial_modes=None) -> ModeState:
    tracker = ModeTracker(ARCH, initial_modes)
    state = tracker.initial_state()
    for stmt in statements(source):
        state = tracker.step(state, stmt)
    return state


# =============================================================================
# ModeState Tests
# =============================================================================

class TestModeState:
    """Test the immutable state value."""

    def test_width(self):
        state = ModeState((("m", 8), ("x", 16)))
        assert state.width("m") == 8
        assert state.width("x") == 16

    def test_unknown_flag(self):
        with pytest.raises(KeyError):
            ModeState((("m", 8),)).width("q")

    def test_replace_returns_new_state(self):
        state = ModeState((("m", 8), ("x", 8)))
        changed = state.replace({"m": 16})
        assert changed.as_dict() == {"m": 16, "x": 8}
        assert state.as_dict() == {"m": 8, "x": 8}

    def test_str(self):
        assert str(ModeState((("m", 8), ("x", None)))) == "m=8 x=?"
        assert str(ModeState()) == "-"


# =============================================================================
# Initial State Tests
# =============================================================================

class TestInitialState:
    """Test architecture defaults and context overrides."""

    def test_defaults(self):
        assert ModeTracker(ARCH).initial_state().as_dict() == {"m": 8, "x": 8}

    def test_context_override(self):
        state = ModeTracker(ARCH, {"m": 16}).initial_state()
        assert state.as_dict() == {"m": 16, "x": 8}

    def test_invalid_width(self):
        with pytest.raises(ConfigError):
            ModeTracker(ARCH, {"m": 12}).initial_state()

    def test_unknown_flag(self):
        with pytest.raises(ConfigError, match="unknown mode flag"):
            ModeTracker(ARCH, {"q": 8}).initial_state()

    def test_architecture_without_flags(self):
        assert ModeTracker(get_builtin("6502")).initial_state() == ModeState()


# =============================================================================
# Transition Tests
# =============================================================================

class TestTransitions:
    """Test mode-changing instructions."""

    def test_sep_sets_eight_bit(self):
        assert final_state("SEP #$30", {"m": 16, "x": 16}).as_dict() == {"m": 8, "x": 8}

    def test_rep_clears_to_sixteen_bit(self):
        assert final_state("REP #$20").as_dict() == {"m": 16, "x": 8}

    def test_rep_both(self):
        assert final_state("REP #$30").as_dict() == {"m": 16, "x": 16}

    def test_unrelated_bits_ignored(self):
        assert final_state("REP #$01").as_dict() == {"m": 8, "x": 8}

    def test_literal_expression(self):
        """A transition mask may be any expression of literals."""
        assert final_state("REP #$20|$10").as_dict() == {"m": 16, "x": 16}

    @pytest.mark.parametrize("mnemonic", ["XCE", "PLP"])
    def test_invalidate(self, mnemonic):
        assert final_state(mnemonic).as_dict() == {"m": None, "x": None}

    def test_other_instructions_keep_state(self):
        assert final_state("REP #$20\nLDA #1\nNOP").as_dict() == {"m": 16, "x": 8}

    def test_symbolic_mask_rejected(self):
        """Widths must be decidable from the source text."""
        with pytest.raises(ModeAmbiguityError, match="literal"):
            final_state("SEP #FLAGS")

    def test_current_address_mask_rejected(self):
        with pytest.raises(ModeAmbiguityError):
            final_state("SEP #$ & $30")

    def test_star_mask_rejected(self):
        with pytest.raises(ModeAmbiguityError, match="literal"):
            final_state("SEP #*")

    @pytest.mark.parametrize("source,expected", [
        ("REP #$30\nSEP #LOW($1220)", {"m": 8, "x": 16}),
        ("REP #HIGH($2000)", {"m": 16, "x": 8}),
        ("REP #low($3010) & $10", {"m": 8, "x": 16}),
    ])
    def test_byte_functions_of_literals(self, source, expected):
        assert final_state(source).as_dict() == expected

    def test_byte_function_of_symbol_rejected(self):
        with pytest.raises(ModeAmbiguityError):
            final_state("REP #LOW(FLAGS)")

    def test_symbol_named_like_function_rejected(self):
        """LOW without a call is an ordinary symbol."""
        with pytest.raises(ModeAmbiguityError):
            final_state("REP #LOW")


# =============================================================================
# Directive Tests
# =============================================================================

class TestDirectives:
    """Test .MODE and the alias directives."""

    def test_mode_directive(self):
        assert final_state(".MODE m, 16").as_dict() == {"m": 16, "x": 8}

    def test_mode_restates_after_invalidate(self):
        state = final_state("XCE\n.MODE m, 16\n.MODE x, 8")
        assert state.as_dict() == {"m": 16, "x": 8}

    def test_mode_flag_case(self):
        assert final_state(".MODE M, 16").width("m") == 16

    @pytest.mark.parametrize("directive,expected", [
        (".A16", {"m": 16, "x": 8}),
        (".I16", {"m": 8, "x": 16}),
        (".AXY16", {"m": 16, "x": 16}),
        (".AXY16\n.A8", {"m": 8, "x": 16}),
    ])
    def test_alias_directives(self, directive, expected):
        assert final_state(directive).as_dict() == expected

    def test_alias_takes_no_arguments(self):
        with pytest.raises(DirectiveError):
            final_state(".A16 1")

    def test_unknown_flag(self):
        with pytest.raises(DirectiveError, match="unknown mode flag"):
            final_state(".MODE q, 8")

    def test_invalid_width(self):
        with pytest.raises(DirectiveError, match="valid widths"):
            final_state(".MODE m, 12")

    def test_missing_width(self):
        with pytest.raises(DirectiveError):
            final_state(".MODE m")

    def test_symbolic_width_rejected(self):
        """A defined symbol is still not a literal width."""
        with pytest.raises(ModeAmbiguityError) as exc_info:
            final_state("W = 16\n.MODE m, W")
        assert exc_info.value.flag == "m"
        assert ".MODE m, 16" in exc_info.value.hint

    @pytest.mark.parametrize("width", ["*", "$", "8 + *"])
    def test_current_address_width_rejected(self, width):
        with pytest.raises(ModeAmbiguityError):
            final_state(f".MODE x, {width}")

    def test_width_expression_of_literals(self):
        assert final_state(".MODE m, 2 * 8").width("m") == 16


# =============================================================================
# Fold and Require Tests
# =============================================================================

class TestFold:
    """Test the fold used by both passes."""

    def test_fold_yields_state_before_statement(self):
        tracker = ModeTracker(ARCH)
        stmts = statements("REP #$20\nLDA #$1234")
        states = [state for _, state in tracker.fold(stmts)]
        assert states[0].width("m") == 8
        assert states[1].width("m") == 16

    def test_fold_is_repeatable(self):
        """Folding the same statements twice gives the same states."""
        tracker = ModeTracker(ARCH)
        stmts = statements("SEP #$20\nXCE\n.A16\nREP #$10\nPLP\n.AXY8")
        first = [state for _, state in tracker.fold(stmts)]
        second = [state for _, state in tracker.fold(stmts)]
        assert first == second

    def test_require_known(self):
        tracker = ModeTracker(ARCH)
        assert tracker.require(tracker.initial_state(), "m") == 8

    def test_require_unknown(self):
        tracker = ModeTracker(ARCH)
        state = tracker.initial_state().replace({"x": None})
        with pytest.raises(ModeAmbiguityError) as exc_info:
            tracker.require(state, "x")
        assert exc_info.value.flag == "x"
        assert ".MODE x" in exc_info.value.hint
