"""
Width Mode Tracking
===================

Some processors change operand widths at run time: on the 65816 the m and
x bits of the status register decide whether immediates of the
accumulator and index instructions are one or two bytes long. The
assembler cannot see the status register, so it tracks what the source
*says* about it:

- a transition instruction with a literal mask (``SEP #$20``, ``REP #$30``)
- a ``.MODE flag, width`` directive, or an architecture alias (``.A16``)
- an invalidating instruction (``XCE``, ``PLP``) makes the flags unknown

ModeTracker is a pure fold: ``step(state, statement)`` returns a new state
and touches nothing else. Pass 1 and pass 2 run the same fold over the
same statements, so both passes see exactly the same widths.

Transitions must be decidable from the source text alone. A transition
mask or ``.MODE`` width that names a symbol (``SEP #FLAGS``) or the current
address would make widths depend on values resolved later, and is rejected
with ModeAmbiguityError. LOW, HIGH and BANK of a literal are accepted.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional
import logging

from liteasm.arch.model import ArchitectureDefinition, TransitionAction
from liteasm.errors import (
    ConfigError,
    DirectiveError,
    ModeAmbiguityError,
    SourceLocation,
)
from liteasm.assembler.expressions import ExpressionEvaluator
from liteasm.assembler.lexer import NAME_TOKENS, Token, TokenType
from liteasm.assembler.parser import Directive, Instruction, Statement
from liteasm.assembler.symbols import SymbolTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeState:
    """
    Width of every tracked flag at one point of the program.

    ``widths`` holds (flag, width) pairs in the architecture's flag order;
    a width of None means the flag is unknown.
    """
    widths: tuple[tuple[str, Optional[int]], ...] = ()

    def width(self, flag: str) -> Optional[int]:
        for name, width in self.widths:
            if name == flag:
                return width
        raise KeyError(flag)

    def replace(self, changes: Mapping[str, Optional[int]]) -> "ModeState":
        return ModeState(tuple(
            (name, changes[name] if name in changes else width)
            for name, width in self.widths
        ))

    def as_dict(self) -> dict[str, Optional[int]]:
        return dict(self.widths)

    def __str__(self) -> str:
        if not self.widths:
            return "-"
        return " ".join(
            f"{name}={width if width is not None else '?'}" for name, width in self.widths
        )


class ModeTracker:
    """
    Computes ModeState transitions for an architecture.

    Usage:
        tracker = ModeTracker(arch, context.initial_modes)
        state = tracker.initial_state()
        for stmt in statements:
            state = tracker.step(state, stmt)
    """

    def __init__(
        self,
        arch: ArchitectureDefinition,
        initial_modes: Optional[Mapping[str, int]] = None,
    ):
        self.arch = arch
        self.rules = arch.mode_rules
        self._initial_modes = dict(initial_modes or {})
        # Transition operands are evaluated without any symbols
        self._evaluator = ExpressionEvaluator(SymbolTable(arch.syntax))

    def initial_state(self) -> ModeState:
        """
        Architecture defaults overridden by the context.

        Raises:
            ConfigError: If the context names an unknown flag or width
        """
        widths = []
        for flag in self.rules.flags:
            width = self._initial_modes.get(flag.name, flag.default)
            if width not in flag.widths:
                raise ConfigError(
                    f"initial width {width} is not valid for flag '{flag.name}'"
                )
            widths.append((flag.name, width))
        unknown = set(self._initial_modes) - {f.name for f in self.rules.flags}
        if unknown:
            raise ConfigError(
                f"context sets unknown mode flag(s): {', '.join(sorted(unknown))}"
            )
        return ModeState(tuple(widths))

    def step(self, state: ModeState, stmt: Statement) -> ModeState:
        """Return the state after ``stmt``."""
        if isinstance(stmt, Instruction):
            transition = self.rules.transition_for(stmt.mnemonic)
            if transition is None:
                return state
            if transition.action == TransitionAction.INVALIDATE:
                new_state = state.replace({f.name: None for f in self.rules.flags})
            else:
                mask = self._literal_mask(stmt)
                set_flags = transition.action == TransitionAction.SET
                new_state = state.replace({
                    f.name: f.set_width if set_flags else f.clear_width
                    for f in self.rules.flags
                    if f.bit & mask
                })
            logger.debug("%s: %s -> %s", stmt.location, state, new_state)
            return new_state

        if isinstance(stmt, Directive):
            if stmt.name == "MODE":
                return state.replace(self._mode_directive(stmt))
            if stmt.name in self.rules.directives:
                if stmt.arguments:
                    raise DirectiveError(
                        f"{stmt.name} takes no arguments", stmt.location
                    )
                return state.replace(dict(self.rules.directives[stmt.name]))

        return state

    def fold(
        self,
        statements: Iterable[Statement],
        state: Optional[ModeState] = None,
    ) -> Iterator[tuple[Statement, ModeState]]:
        """Yield each statement with the state in force when it is reached."""
        state = state if state is not None else self.initial_state()
        for stmt in statements:
            yield stmt, state
            state = self.step(state, stmt)

    def require(
        self,
        state: ModeState,
        flag: str,
        location: Optional[SourceLocation] = None,
    ) -> int:
        """
        Width of ``flag``; raises ModeAmbiguityError if it is unknown.
        """
        width = state.width(flag)
        if width is None:
            raise ModeAmbiguityError(
                f"width of flag '{flag}' is unknown here",
                location,
                flag=flag,
                hint=f"state the width with .MODE {flag}, <width> after the "
                     f"instruction that changed it",
            )
        return width

    # =========================================================================
    # Helpers
    # =========================================================================

    def _literal_mask(self, stmt: Instruction) -> int:
        """Evaluate a transition operand that must be a literal."""
        if len(stmt.operands) != 1:
            raise ModeAmbiguityError(
                f"{stmt.mnemonic} needs a literal flag mask",
                stmt.location,
            )
        tokens = stmt.operands[0]
        self._require_literal(
            tokens,
            f"{stmt.mnemonic} operand must be a literal to track register widths",
            hint="write the mask as a number, e.g. #$30",
        )
        return self._evaluator.evaluate(tokens, location=stmt.location)

    def _require_literal(
        self,
        tokens: list[Token],
        message: str,
        hint: str,
        flag: Optional[str] = None,
    ) -> None:
        """
        Reject an operand whose value depends on symbols or the current address.

        LOW, HIGH and BANK calls are allowed; their arguments are checked
        like the rest of the operand.
        """
        for i, tok in enumerate(tokens):
            if tok.type in NAME_TOKENS:
                following = tokens[i + 1] if i + 1 < len(tokens) else None
                if (
                    str(tok.value).upper() in ExpressionEvaluator.FUNCTIONS
                    and following is not None
                    and following.type == TokenType.LPAREN
                ):
                    continue
            elif tok.type not in (TokenType.STAR, TokenType.DOLLAR):
                continue
            raise ModeAmbiguityError(message, tok.location, flag=flag, hint=hint)

    def _mode_directive(self, stmt: Directive) -> dict[str, int]:
        """Parse ``.MODE flag, width``."""
        if len(stmt.arguments) != 2 or len(stmt.arguments[0]) != 1:
            raise DirectiveError("MODE expects: flag, width", stmt.location)
        name_token = stmt.arguments[0][0]
        flag_name = str(name_token.value)
        flag = self.rules.flag(flag_name) or self.rules.flag(flag_name.lower())
        if name_token.type not in NAME_TOKENS or flag is None:
            known = ", ".join(f.name for f in self.rules.flags) or "none"
            raise DirectiveError(
                f"unknown mode flag '{name_token.value}'",
                name_token.location,
                hint=f"flags of this architecture: {known}",
            )
        self._require_literal(
            stmt.arguments[1],
            f"width of flag '{flag.name}' must be a literal",
            hint=f"write the width as a number, e.g. .MODE {flag.name}, 16",
            flag=flag.name,
        )
        width = self._evaluator.evaluate(stmt.arguments[1], location=stmt.location)
        if width not in flag.widths:
            raise DirectiveError(
                f"flag '{flag.name}' cannot be {width} bits wide",
                stmt.location,
                hint=f"valid widths: {', '.join(str(w) for w in sorted(flag.widths))}",
            )
        return {flag.name: width}
