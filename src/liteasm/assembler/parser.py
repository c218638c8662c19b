"""
Assembly Language Parser
========================

This module converts the lexer's token stream into an ordered list of
statements. Parsing is purely syntactic: it never looks at symbol values,
so a forward reference can never make a line fail to parse.

Statement Types
---------------
1. **LabelDef**: Label definition
   ```asm
   start:          ; Global label
   @loop:          ; Local label, scoped to the last global label
   ```

2. **Instruction**: Mnemonic with operand and candidate addressing modes
   ```asm
   LDA #$41        ; immediate
   LDA ($80),Y     ; indirect_y
   LDA BUFFER      ; direct, absolute or long (decided later)
   ```

3. **Directive**: Assembler directive
   ```asm
   .ORG $8000
   COUNT = 10      ; equate (Directive EQU with label COUNT)
   .BYTE 1, 2, 3
   ```

Addressing Mode Detection
-------------------------
The operand tokens are matched against the syntax template of every
addressing mode of the architecture. A template literal (marker or
register name) must match exactly; an expression slot takes one or more
tokens with balanced parentheses and no operand markers (``,`` ``#`` ``[`` ``]``).

Of the modes that match *and* are supported by the mnemonic, the most
specific ones (most literal template elements) are kept. ``LDA $12,X``
matches both ``{},X`` and the block-move template ``{},{}``; ``{},X`` wins.
Modes sharing one template (direct / absolute / long) all remain as
candidates; the resolver chooses among them.

A leading size-override prefix (``<`` direct, ``!`` absolute, ``>`` long
by default) removes every candidate with a different operand size.

| Outcome                              | Error                        |
|--------------------------------------|------------------------------|
| no template matches the operand      | MALFORMED_OPERAND            |
| templates match, mnemonic lacks them | UNSUPPORTED_ADDRESSING_MODE  |
| override leaves no candidate         | UNSUPPORTED_ADDRESSING_MODE  |
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional
import logging

from liteasm.arch.model import SLOT, AddressingMode, ArchitectureDefinition
from liteasm.errors import (
    ParseError,
    ParseErrorKind,
    SourceLocation,
)
from liteasm.assembler.lexer import NAME_TOKENS, Token, TokenType

logger = logging.getLogger(__name__)


# Directive name -> canonical name
DIRECTIVE_ALIASES = {
    "ORG": "ORG",
    "SEGMENT": "SEGMENT",
    "BYTE": "BYTE",
    "DB": "BYTE",
    "WORD": "WORD",
    "DW": "WORD",
    "LONG": "LONG",
    "DL": "LONG",
    "DWORD": "DWORD",
    "DD": "DWORD",
    "TEXT": "TEXT",
    "ASCII": "TEXT",
    "RES": "RES",
    "DS": "RES",
    "ALIGN": "ALIGN",
    "EQU": "EQU",
    "MODE": "MODE",
    "END": "END",
}

OPENING = (TokenType.LPAREN, TokenType.LBRACKET)
CLOSING = (TokenType.RPAREN, TokenType.RBRACKET)
OVERRIDE_TOKENS = (TokenType.LT, TokenType.BANG, TokenType.GT)

# Tokens that can only be template literals, never part of an expression slot
NOT_IN_EXPRESSIONS = frozenset({
    TokenType.COMMA,
    TokenType.HASH,
    TokenType.LBRACKET,
    TokenType.RBRACKET,
    TokenType.BANG,
    TokenType.COLON,
    TokenType.EQUALS,
    TokenType.DIRECTIVE,
    TokenType.ERROR,
})


# =============================================================================
# Statement Data Classes
# =============================================================================

@dataclass
class Statement:
    """
    Base class for all parsed statements.

    Every statement has a source location for error reporting.
    """
    location: SourceLocation


@dataclass
class LabelDef(Statement):
    """
    Label definition statement.

    Attributes:
        name: Label name as written (including the local prefix)
        is_local: True if this is a local label
    """
    name: str
    is_local: bool = False


@dataclass
class Instruction(Statement):
    """
    Machine instruction statement.

    Attributes:
        mnemonic: Upper-case mnemonic
        candidates: Addressing modes the operand may be encoded in, all
                    supported by the mnemonic and sharing one template
        operands: Token list of each expression slot, in template order
        forced_size: Operand size demanded by a size-override prefix
    """
    mnemonic: str
    candidates: tuple[str, ...] = ()
    operands: list[list[Token]] = field(default_factory=list)
    forced_size: Optional[int] = None

    @property
    def addressing_mode(self) -> Optional[str]:
        """The addressing mode, or None while several candidates remain."""
        return self.candidates[0] if len(self.candidates) == 1 else None


@dataclass
class Directive(Statement):
    """
    Assembler directive statement.

    Attributes:
        name: Canonical directive name ("BYTE" for .DB, ...)
        arguments: Token list of each comma-separated argument
        label: Name being defined (EQU only)
    """
    name: str
    arguments: list[list[Token]] = field(default_factory=list)
    label: Optional[str] = None


@dataclass
class _Match:
    mode: AddressingMode
    slots: list[list[Token]]


# =============================================================================
# Parser
# =============================================================================

class Parser:
    """
    Parses a token stream into statements.

    Usage:
        lexer = Lexer(source, arch, filename)
        parser = Parser(lexer.tokenize(), arch, source_lines=source.splitlines())
        statements = parser.parse()

    In the default mode the first error is raised. With
    ``collect_errors=True`` every ParseError is appended to ``errors``,
    the rest of the line is skipped and parsing continues; lines holding
    an ERROR token from the lexer are skipped silently since the lexer
    already reported them.
    """

    def __init__(
        self,
        tokens: Iterable[Token],
        arch: ArchitectureDefinition,
        collect_errors: bool = False,
        source_lines: Optional[list[str]] = None,
    ):
        self._tokens = [t for t in tokens if t.type != TokenType.COMMENT]
        self.arch = arch
        self.syntax = arch.syntax
        self.collect_errors = collect_errors
        self._source_lines = source_lines or []
        self._pos = 0
        self.errors: list[ParseError] = []

    def parse(self) -> list[Statement]:
        """
        Parse all tokens into statements.

        Raises:
            ParseError: On the first syntax error, unless collecting errors
        """
        statements: list[Statement] = []
        self._pos = 0
        self.errors = []

        while not self._at_end():
            if self._match(TokenType.NEWLINE):
                continue

            if self._line_has_error():
                self._skip_to_eol()
                continue

            try:
                statements.extend(self._parse_line())
            except ParseError as e:
                if not self.collect_errors:
                    raise
                self.errors.append(e)
                self._skip_to_eol()

        logger.debug("parsed %d statements", len(statements))
        return statements

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self._tokens) or self._current().type == TokenType.EOF

    def _current(self) -> Token:
        if self._pos >= len(self._tokens):
            last = self._tokens[-1] if self._tokens else None
            return Token(
                TokenType.EOF, None,
                last.line if last else 1,
                last.column if last else 1,
                last.filename if last else "<input>",
            )
        return self._tokens[self._pos]

    def _peek(self, offset: int = 0) -> Token:
        pos = self._pos + offset
        if pos >= len(self._tokens):
            return self._current()
        return self._tokens[pos]

    def _advance(self) -> Token:
        token = self._current()
        self._pos += 1
        return token

    def _check(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._check(*types):
            return self._advance()
        return None

    def _skip_to_eol(self) -> None:
        while not self._check(TokenType.NEWLINE, TokenType.EOF):
            self._advance()

    def _line_has_error(self) -> bool:
        pos = self._pos
        while pos < len(self._tokens):
            token_type = self._tokens[pos].type
            if token_type in (TokenType.NEWLINE, TokenType.EOF):
                return False
            if token_type == TokenType.ERROR:
                return True
            pos += 1
        return False

    def _rest_of_line(self) -> list[Token]:
        tokens = []
        while not self._check(TokenType.NEWLINE, TokenType.EOF):
            tokens.append(self._advance())
        return tokens

    def _error(
        self,
        kind: ParseErrorKind,
        message: str,
        location: SourceLocation,
        hint: Optional[str] = None,
    ) -> ParseError:
        source_line = None
        if 0 < location.line <= len(self._source_lines):
            source_line = self._source_lines[location.line - 1]
        return ParseError(kind, message, location, hint=hint, source_line=source_line)

    # =========================================================================
    # Line Parsing
    # =========================================================================

    def _parse_line(self) -> list[Statement]:
        """Parse one line: [label] [instruction | directive | equate]."""
        statements: list[Statement] = []

        label = self._try_parse_label()
        if label is not None:
            statements.append(label)
            if self._check(*NAME_TOKENS) and self._peek(1).type == TokenType.COLON:
                second = self._current()
                raise self._error(
                    ParseErrorKind.DUPLICATE_LABEL_ON_LINE,
                    f"second label '{second.value}' on the same line as '{label.name}'",
                    second.location,
                )

        # NAME = expr / NAME .EQU expr, with or without a label terminator
        equate_name = None
        if label is not None and self._is_equate_operator():
            statements.pop()
            equate_name = label.name
        elif label is None and self._check(*NAME_TOKENS) and self._is_equate_operator(1):
            equate_name = str(self._advance().value)
        if equate_name is not None:
            statements.append(self._parse_equate(equate_name))
            self._match(TokenType.NEWLINE)
            return statements

        tok = self._current()
        if tok.type == TokenType.MNEMONIC:
            statements.append(self._parse_instruction())
        elif tok.type == TokenType.DIRECTIVE:
            statements.append(self._parse_directive())
        elif tok.type == TokenType.IDENTIFIER:
            hint = None
            if label is None and self._peek(1).type in (TokenType.NEWLINE, TokenType.EOF):
                hint = f"labels end with '{self.syntax.label_terminator}'"
            raise self._error(
                ParseErrorKind.UNKNOWN_MNEMONIC,
                f"unknown instruction '{tok.value}'",
                tok.location,
                hint=hint,
            )
        elif tok.type not in (TokenType.NEWLINE, TokenType.EOF):
            raise self._error(
                ParseErrorKind.UNKNOWN_MNEMONIC,
                f"expected instruction or directive, got '{tok.value}'",
                tok.location,
            )

        if not self._check(TokenType.NEWLINE, TokenType.EOF):
            extra = self._current()
            raise self._error(
                ParseErrorKind.MALFORMED_OPERAND,
                f"unexpected '{extra.value}' after statement",
                extra.location,
            )
        self._match(TokenType.NEWLINE)
        return statements

    def _is_equate_operator(self, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.type == TokenType.EQUALS or (
            tok.type == TokenType.DIRECTIVE and DIRECTIVE_ALIASES.get(tok.value) == "EQU"
        )

    def _try_parse_label(self) -> Optional[LabelDef]:
        """Parse ``name:`` if present."""
        if self._check(*NAME_TOKENS) and self._peek(1).type == TokenType.COLON:
            name_token = self._advance()
            self._advance()  # consume terminator
            name = str(name_token.value)
            prefix = self.syntax.local_label_prefix
            return LabelDef(
                location=name_token.location,
                name=name,
                is_local=bool(prefix) and name.startswith(prefix),
            )
        return None

    def _parse_equate(self, name: str) -> Directive:
        operator = self._advance()  # = or .EQU
        tokens = self._rest_of_line()
        if not tokens:
            raise self._error(
                ParseErrorKind.MALFORMED_OPERAND,
                f"missing value for '{name}'",
                operator.location,
            )
        return Directive(
            location=operator.location, name="EQU", arguments=[tokens], label=name
        )

    # =========================================================================
    # Instruction Parsing
    # =========================================================================

    def _parse_instruction(self) -> Instruction:
        """Parse a mnemonic and determine its candidate addressing modes."""
        mnemonic_token = self._advance()
        mnemonic = str(mnemonic_token.value)
        location = mnemonic_token.location
        tokens = self._rest_of_line()

        forced_size = None
        if (
            tokens
            and tokens[0].type in OVERRIDE_TOKENS
            and tokens[0].value in self.syntax.size_overrides
        ):
            forced_size = self.syntax.size_overrides[tokens[0].value]
            tokens = tokens[1:]
            if not tokens:
                raise self._error(
                    ParseErrorKind.MALFORMED_OPERAND,
                    "size override without an operand",
                    location,
                )

        operand_location = tokens[0].location if tokens else location
        matches = self._match_modes(tokens)
        if not matches:
            raise self._error(
                ParseErrorKind.MALFORMED_OPERAND,
                f"cannot parse operand of {mnemonic}",
                operand_location,
            )

        supported_modes = self.arch.modes_for(mnemonic)
        supported = [m for m in matches if m.mode.name in supported_modes]
        if not supported:
            raise self._error(
                ParseErrorKind.UNSUPPORTED_ADDRESSING_MODE,
                f"{mnemonic} does not support {_describe(matches)} addressing",
                operand_location,
                hint=f"{mnemonic} supports: {', '.join(supported_modes)}",
            )

        best = max(m.mode.literal_count for m in supported)
        supported = [m for m in supported if m.mode.literal_count == best]
        syntax = supported[0].mode.syntax
        supported = [m for m in supported if m.mode.syntax == syntax]

        if forced_size is not None:
            sized = [
                m for m in supported
                if self.arch.encoding(mnemonic, m.mode.name).width_flag is None
                and self.arch.encoding(mnemonic, m.mode.name).operand_size == forced_size
            ]
            if not sized:
                raise self._error(
                    ParseErrorKind.UNSUPPORTED_ADDRESSING_MODE,
                    f"{mnemonic} has no {forced_size}-byte form of {_describe(supported)} addressing",
                    operand_location,
                )
            supported = sized

        return Instruction(
            location=location,
            mnemonic=mnemonic,
            candidates=tuple(m.mode.name for m in supported),
            operands=supported[0].slots,
            forced_size=forced_size,
        )

    def _match_modes(self, tokens: list[Token]) -> list[_Match]:
        """All addressing modes whose template matches the operand tokens."""
        matches = []
        for mode in self.arch.modes:
            slots = _match_template(mode.elements, tokens)
            if slots is not None:
                matches.append(_Match(mode, slots))
        return matches

    # =========================================================================
    # Directive Parsing
    # =========================================================================

    def _parse_directive(self) -> Directive:
        """Parse a directive and its comma-separated arguments."""
        directive_token = self._advance()
        raw_name = str(directive_token.value)
        location = directive_token.location

        name = DIRECTIVE_ALIASES.get(raw_name)
        if name is None and raw_name in self.arch.mode_rules.directives:
            name = raw_name
        if name is None:
            raise self._error(
                ParseErrorKind.UNKNOWN_DIRECTIVE,
                f"unknown directive '{self.syntax.directive_prefix}{raw_name}'",
                location,
            )
        if name == "EQU":
            raise self._error(
                ParseErrorKind.MALFORMED_OPERAND,
                "EQU needs a name to define",
                location,
                hint=f"write NAME {self.syntax.directive_prefix}EQU value",
            )

        args = self._parse_comma_separated_args()
        return Directive(location=location, name=name, arguments=args)

    def _parse_comma_separated_args(self) -> list[list[Token]]:
        """Parse comma-separated arguments up to the end of the line."""
        args: list[list[Token]] = []
        current_arg: list[Token] = []
        depth = 0

        while not self._check(TokenType.NEWLINE, TokenType.EOF):
            tok = self._current()

            if tok.type == TokenType.COMMA and depth == 0:
                if not current_arg:
                    raise self._error(
                        ParseErrorKind.MALFORMED_OPERAND, "empty argument", tok.location
                    )
                args.append(current_arg)
                current_arg = []
                self._advance()
                continue

            if tok.type in OPENING:
                depth += 1
            elif tok.type in CLOSING:
                depth -= 1

            current_arg.append(self._advance())

        if current_arg:
            args.append(current_arg)
        elif args:
            raise self._error(
                ParseErrorKind.MALFORMED_OPERAND, "trailing comma", self._current().location
            )

        return args


# =============================================================================
# Template Matching
# =============================================================================

def _describe(matches: list[_Match]) -> str:
    return "/".join(dict.fromkeys(m.mode.name for m in matches))


def _is_expression(tokens: list[Token]) -> bool:
    """Non-empty, balanced parentheses, no operand markers."""
    if not tokens:
        return False
    depth = 0
    for tok in tokens:
        if tok.type in NOT_IN_EXPRESSIONS:
            return False
        if tok.type == TokenType.LPAREN:
            depth += 1
        elif tok.type == TokenType.RPAREN:
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _literal_matches(element: str, tok: Token) -> bool:
    if tok.type in NAME_TOKENS:
        return str(tok.value).upper() == element
    if tok.type in (TokenType.NUMBER, TokenType.STRING):
        return False
    return tok.value == element


def _match_template(
    elements: tuple[Optional[str], ...],
    tokens: list[Token],
) -> Optional[list[list[Token]]]:
    """
    Match tokens against template elements.

    Returns the token list of each slot, or None if the template does not
    match. Slots are tried shortest first.
    """
    if not elements:
        return [] if not tokens else None

    head, rest = elements[0], elements[1:]
    if head is SLOT:
        for end in range(1, len(tokens) + 1):
            slot = tokens[:end]
            if not _is_expression(slot):
                continue
            tail = _match_template(rest, tokens[end:])
            if tail is not None:
                return [slot] + tail
        return None

    if tokens and _literal_matches(head, tokens[0]):
        return _match_template(rest, tokens[1:])
    return None
