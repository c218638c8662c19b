"""
Assembly Language Lexer
=======================

This module implements the lexer (tokenizer) for liteasm source text.
It converts source text into a stream of tokens that the parser can process.
The lexical rules (comment markers, label terminator, radix prefixes,
directive prefix) come from the architecture's ``SyntaxRules``, so the same
lexer serves every instruction set.

Token Types
-----------
- MNEMONIC: Identifier naming an instruction of the architecture
- DIRECTIVE: Directive prefix followed by a name (".ORG"); value is "ORG"
- IDENTIFIER: Labels, symbols, register names, local labels ("@loop")
- NUMBER: Numeric and character literals
- STRING: Double-quoted strings ("hello")
- Operators: +, -, *, /, %, &, |, ^, ~, <<, >>, comparisons, !
- Delimiters: , : # ( ) [ ] =
- COMMENT: Only produced when ``keep_comments`` is set
- ERROR: Placeholder for a rejected line in collect-errors mode
- NEWLINE: End of line
- EOF: End of file

Number Formats (default rules)
------------------------------

| Format      | Prefix   | Example   | Value |
|-------------|----------|-----------|-------|
| Decimal     | (none)   | 123       | 123   |
| Hexadecimal | $ or 0x  | $7F, 0x7F | 127   |
| Binary      | % or 0b  | %1010     | 10    |
| Octal       | 0o       | 0o177     | 127   |
| Character   | '        | 'A'       | 65    |

A lone ``$`` is the current address. Symbol prefixes only start a number
where an operand is expected, so ``10%3`` and ``N%16`` are modulo while
``#%101`` is binary.

Example
-------
>>> from liteasm.arch import get_builtin
>>> lexer = Lexer("start: LDA #$41  ; load 'A'", get_builtin("6502"))
>>> for token in lexer.tokenize():
...     print(token)
Token(IDENTIFIER, 'start', 1:1)
Token(COLON, ':', 1:6)
Token(MNEMONIC, 'LDA', 1:8)
Token(HASH, '#', 1:12)
Token(NUMBER, $41, 1:13)
Token(EOF, 1:28)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import logging
import string

from liteasm.arch.model import ArchitectureDefinition
from liteasm.errors import LexError, LexErrorKind, SourceLocation

logger = logging.getLogger(__name__)


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Categories of lexical element."""

    # Structural tokens
    NEWLINE = auto()
    EOF = auto()
    COMMENT = auto()
    ERROR = auto()

    # Words
    MNEMONIC = auto()
    DIRECTIVE = auto()
    IDENTIFIER = auto()

    # Values
    NUMBER = auto()
    STRING = auto()

    # Arithmetic operators
    PLUS = auto()        # +
    MINUS = auto()       # -
    STAR = auto()        # * (multiply or current address)
    SLASH = auto()       # /
    PERCENT = auto()     # %

    # Bitwise operators
    AMPERSAND = auto()   # &
    PIPE = auto()        # |
    CARET = auto()       # ^ (xor, or bank byte when unary)
    TILDE = auto()       # ~
    LSHIFT = auto()      # <<
    RSHIFT = auto()      # >>

    # Comparison operators
    LT = auto()          # < (also low byte / direct size override)
    GT = auto()          # > (also high byte / long size override)
    LE = auto()          # <=
    GE = auto()          # >=
    EQ = auto()          # ==
    NE = auto()          # != or <>
    BANG = auto()        # ! (absolute size override)

    # Delimiters
    COMMA = auto()
    COLON = auto()       # label terminator
    HASH = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    DOLLAR = auto()      # $ alone: current address
    EQUALS = auto()      # = (equate shorthand)


# Token types that carry a symbol name in expressions
NAME_TOKENS = frozenset({TokenType.IDENTIFIER, TokenType.MNEMONIC})

# Token types after which an operator, not an operand, is expected
VALUE_END_TOKENS = frozenset({
    TokenType.NUMBER,
    TokenType.STRING,
    TokenType.IDENTIFIER,
    TokenType.RPAREN,
    TokenType.RBRACKET,
    TokenType.DOLLAR,
})


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token with its position.

    Attributes:
        type: The TokenType classification
        value: Name, number, string or operator text
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: TokenType
    value: str | int | None
    line: int
    column: int
    filename: str

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, int):
                return f"Token({self.type.name}, ${self.value:X}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes assembly source using an architecture's syntax rules.

    ``tokenize()`` is a generator; every call starts again from the top of
    the source, so the token stream can be consumed more than once.

    In the default mode the first lexical error is raised as ``LexError``.
    With ``collect_errors=True`` each error is appended to ``errors``, an
    ERROR token is produced in place of the offending text, and the rest
    of that line is skipped.

    Attributes:
        source: The source code being tokenized
        filename: Name of the source file (for error reporting)
        errors: Errors recorded in collect-errors mode
        comments: (location, text) of every comment seen
    """

    IDENT_START = string.ascii_letters + "_"
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    DIGITS = {
        2: "01",
        8: "01234567",
        10: string.digits,
        16: string.hexdigits,
    }

    SINGLE_CHAR_TOKENS = {
        "+": TokenType.PLUS,
        "-": TokenType.MINUS,
        "*": TokenType.STAR,
        "/": TokenType.SLASH,
        "%": TokenType.PERCENT,
        "&": TokenType.AMPERSAND,
        "|": TokenType.PIPE,
        "^": TokenType.CARET,
        "~": TokenType.TILDE,
        ",": TokenType.COMMA,
        "#": TokenType.HASH,
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
    }

    ESCAPE_SEQUENCES = {
        "n": "\n",
        "r": "\r",
        "t": "\t",
        "\\": "\\",
        '"': '"',
        "'": "'",
        "0": "\0",
    }

    def __init__(
        self,
        source: str,
        arch: ArchitectureDefinition,
        filename: str = "<input>",
        collect_errors: bool = False,
        keep_comments: bool = False,
    ):
        self.source = source
        self.arch = arch
        self.syntax = arch.syntax
        self.filename = filename
        self.collect_errors = collect_errors
        self.keep_comments = keep_comments

        # Longest prefixes first so "0x" wins over a bare "0"
        self._radix_prefixes = sorted(
            self.syntax.radix_prefixes.items(), key=lambda item: -len(item[0])
        )

        self.errors: list[LexError] = []
        self.comments: list[tuple[SourceLocation, str]] = []
        self._reset()

    def _reset(self) -> None:
        self._pos = 0
        self._line = 1
        self._column = 1
        self._at_line_start = True
        self._line_start_pos = 0
        self.errors = []
        self._after_value = False
        self.comments = []

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the source code.

        Raises:
            LexError: On the first lexical error, unless collecting errors
        """
        self._reset()
        while not self._at_end():
            if self._skip_whitespace():
                continue

            comment = self._scan_comment()
            if comment is not None:
                if self.keep_comments:
                    yield comment
                continue

            start_line, start_column = self._line, self._column
            try:
                token = self._scan_token()
            except LexError as e:
                if not self.collect_errors:
                    raise
                self.errors.append(e)
                logger.debug("lex error at %s: %s", e.location, e.message)
                self._skip_to_end_of_line()
                token = self._make_token(TokenType.ERROR, None, start_line, start_column)
            self._after_value = self._ends_value(token)
            yield token

        yield self._make_token(TokenType.EOF, None)

    def _ends_value(self, token: Token) -> bool:
        """True if an operator rather than an operand may follow ``token``."""
        if token.type == TokenType.STAR:
            # * in operand position is the current address, otherwise multiply
            return not self._after_value
        return token.type in VALUE_END_TOKENS

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """Character at current position + offset, or "" past the end."""
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line/column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
            self._at_line_start = True
            self._line_start_pos = self._pos
        else:
            self._column += 1
            if char not in " \t\r":
                self._at_line_start = False

        return char

    def _match(self, expected: str) -> bool:
        """Consume next character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _starts_with(self, text: str) -> bool:
        return self.source.startswith(text, self._pos)

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _make_token(
        self,
        token_type: TokenType,
        value: str | int | None,
        start_line: Optional[int] = None,
        start_column: Optional[int] = None,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            line=start_line or self._line,
            column=start_column or self._column,
            filename=self.filename,
        )

    def _error(
        self,
        kind: LexErrorKind,
        message: str,
        column: Optional[int] = None,
    ) -> LexError:
        """Create a LexError at the current line."""
        location = SourceLocation(self.filename, self._line, column or self._column)
        return LexError(kind, message, location, source_line=self.get_current_line())

    # =========================================================================
    # Whitespace and Comment Handling
    # =========================================================================

    def _skip_whitespace(self) -> bool:
        """Skip spaces, tabs and carriage returns (not newlines)."""
        skipped = False
        while self._peek() and self._peek() in " \t\r":
            self._advance()
            skipped = True
        return skipped

    def _skip_to_end_of_line(self) -> None:
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    def _scan_comment(self) -> Optional[Token]:
        """
        Consume a comment if one starts here.

        Returns the COMMENT token (always recorded in ``comments``), or
        None if no comment starts at the current position.
        """
        marker = None
        if self.syntax.comment and self._starts_with(self.syntax.comment):
            marker = self.syntax.comment
        elif (
            self.syntax.line_comment
            and self._at_line_start
            and self._starts_with(self.syntax.line_comment)
        ):
            marker = self.syntax.line_comment
        if marker is None:
            return None

        start_line, start_column = self._line, self._column
        start = self._pos
        self._skip_to_end_of_line()
        text = self.source[start:self._pos].rstrip("\r")
        location = SourceLocation(self.filename, start_line, start_column)
        self.comments.append((location, text))
        return self._make_token(TokenType.COMMENT, text, start_line, start_column)

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> Token:
        """Scan the next token from source."""
        start_line = self._line
        start_column = self._column
        char = self._peek()

        if char == "\n":
            self._advance()
            return self._make_token(TokenType.NEWLINE, None, start_line, start_column)

        if char == self.syntax.label_terminator:
            self._advance()
            return self._make_token(TokenType.COLON, char, start_line, start_column)

        # Numbers with a radix prefix ($FF, %1010, 0x1F, ...)
        number = self._scan_prefixed_number(start_line, start_column)
        if number is not None:
            return number

        if char.isdigit():
            return self._scan_digits(10, start_line, start_column)

        # Directives: prefix immediately followed by a name
        prefix = self.syntax.directive_prefix
        if prefix and self._starts_with(prefix) and self._peek(len(prefix)) in tuple(self.IDENT_START):
            for _ in prefix:
                self._advance()
            name = self._scan_word()
            return self._make_token(TokenType.DIRECTIVE, name.upper(), start_line, start_column)

        # Local labels
        prefix = self.syntax.local_label_prefix
        if prefix and self._starts_with(prefix):
            for _ in prefix:
                self._advance()
            if not (self._peek() and self._peek() in self.IDENT_CHARS):
                raise self._error(
                    LexErrorKind.INVALID_CHARACTER,
                    f"expected label name after '{prefix}'",
                    start_column,
                )
            name = prefix + self._scan_word()
            return self._make_token(TokenType.IDENTIFIER, name, start_line, start_column)

        if char in self.IDENT_START:
            name = self._scan_word()
            if self.arch.has_mnemonic(name):
                return self._make_token(TokenType.MNEMONIC, name.upper(), start_line, start_column)
            return self._make_token(TokenType.IDENTIFIER, name, start_line, start_column)

        if char == "$":
            self._advance()
            return self._make_token(TokenType.DOLLAR, "$", start_line, start_column)

        if char == '"':
            return self._scan_string(start_line, start_column)

        if char == "'":
            return self._scan_char(start_line, start_column)

        # Two-character operators
        if char == "<":
            self._advance()
            if self._match("<"):
                return self._make_token(TokenType.LSHIFT, "<<", start_line, start_column)
            if self._match("="):
                return self._make_token(TokenType.LE, "<=", start_line, start_column)
            if self._match(">"):
                return self._make_token(TokenType.NE, "<>", start_line, start_column)
            return self._make_token(TokenType.LT, "<", start_line, start_column)

        if char == ">":
            self._advance()
            if self._match(">"):
                return self._make_token(TokenType.RSHIFT, ">>", start_line, start_column)
            if self._match("="):
                return self._make_token(TokenType.GE, ">=", start_line, start_column)
            return self._make_token(TokenType.GT, ">", start_line, start_column)

        if char == "!":
            self._advance()
            if self._match("="):
                return self._make_token(TokenType.NE, "!=", start_line, start_column)
            return self._make_token(TokenType.BANG, "!", start_line, start_column)

        if char == "=":
            self._advance()
            if self._match("="):
                return self._make_token(TokenType.EQ, "==", start_line, start_column)
            return self._make_token(TokenType.EQUALS, "=", start_line, start_column)

        if char in self.SINGLE_CHAR_TOKENS:
            self._advance()
            return self._make_token(
                self.SINGLE_CHAR_TOKENS[char], char, start_line, start_column
            )

        self._advance()
        raise self._error(
            LexErrorKind.INVALID_CHARACTER,
            f"unexpected character '{char}'",
            start_column,
        )

    def _scan_word(self) -> str:
        chars = []
        while self._peek() and self._peek() in self.IDENT_CHARS:
            chars.append(self._advance())
        return "".join(chars)

    def _scan_prefixed_number(self, start_line: int, start_column: int) -> Optional[Token]:
        """
        Scan a number introduced by one of the architecture's radix prefixes.

        Symbol prefixes ($, %) directly after a value, or not followed by a
        valid digit, are left alone so they can be lexed as operators.
        Alphanumeric prefixes (0x) without digits are an invalid literal.
        """
        for prefix, radix in self._radix_prefixes:
            candidate = self.source[self._pos:self._pos + len(prefix)]
            if candidate.lower() != prefix.lower():
                continue
            if self._after_value and not prefix[0].isalnum():
                continue
            next_char = self._peek(len(prefix))
            if next_char and next_char in self.DIGITS[radix]:
                for _ in prefix:
                    self._advance()
                return self._scan_digits(radix, start_line, start_column)
            if prefix[0].isalnum():
                for _ in prefix:
                    self._advance()
                self._scan_word()
                raise self._error(
                    LexErrorKind.INVALID_NUMERIC_LITERAL,
                    f"expected base-{radix} digits after '{prefix}'",
                    start_column,
                )
        return None

    def _scan_digits(self, radix: int, start_line: int, start_column: int) -> Token:
        """Scan digits of the given radix; trailing name characters are an error."""
        valid = self.DIGITS[radix]
        chars = []
        while self._peek() and (self._peek() in valid or self._peek() == "_"):
            char = self._advance()
            if char != "_":
                chars.append(char)

        if self._peek() and self._peek() in self.IDENT_CHARS:
            bad = "".join(chars) + self._scan_word()
            raise self._error(
                LexErrorKind.INVALID_NUMERIC_LITERAL,
                f"invalid base-{radix} literal '{bad}'",
                start_column,
            )
        if not chars:
            raise self._error(
                LexErrorKind.INVALID_NUMERIC_LITERAL,
                f"expected base-{radix} digits",
                start_column,
            )

        value = int("".join(chars), radix)
        return self._make_token(TokenType.NUMBER, value, start_line, start_column)

    def _scan_string(self, start_line: int, start_column: int) -> Token:
        """
        Scan a double-quoted string literal.

        Supports escape sequences: \\n, \\r, \\t, \\\\, \\", \\0, \\xNN
        """
        self._advance()  # consume opening "

        chars = []
        while not self._at_end() and self._peek() != "\n":
            char = self._peek()
            if char == '"':
                self._advance()
                return self._make_token(
                    TokenType.STRING, "".join(chars), start_line, start_column
                )
            if char == "\\":
                self._advance()
                chars.append(self._scan_escape_sequence(start_column))
            else:
                chars.append(self._advance())

        raise self._error(
            LexErrorKind.UNTERMINATED_STRING,
            "unterminated string literal",
            start_column,
        )

    def _scan_char(self, start_line: int, start_column: int) -> Token:
        """Scan a character literal; its value is the character code."""
        self._advance()  # consume opening '

        if self._at_end() or self._peek() == "\n":
            raise self._error(
                LexErrorKind.UNTERMINATED_STRING,
                "unterminated character literal",
                start_column,
            )

        if self._peek() == "\\":
            self._advance()
            char = self._scan_escape_sequence(start_column)
        else:
            char = self._advance()

        if not self._match("'"):
            raise self._error(
                LexErrorKind.UNTERMINATED_STRING,
                "expected closing quote for character literal",
                start_column,
            )

        return self._make_token(TokenType.NUMBER, ord(char), start_line, start_column)

    def _scan_escape_sequence(self, start_column: int) -> str:
        """Scan an escape sequence after a backslash."""
        if self._at_end() or self._peek() == "\n":
            raise self._error(
                LexErrorKind.UNTERMINATED_STRING,
                "unterminated escape sequence",
                start_column,
            )

        char = self._advance()
        if char in self.ESCAPE_SEQUENCES:
            return self.ESCAPE_SEQUENCES[char]

        if char == "x":
            hex_chars = []
            for _ in range(2):
                if self._peek() and self._peek() in string.hexdigits:
                    hex_chars.append(self._advance())
                else:
                    break
            if not hex_chars:
                raise self._error(
                    LexErrorKind.INVALID_NUMERIC_LITERAL,
                    "expected hexadecimal digits after \\x",
                )
            return chr(int("".join(hex_chars), 16))

        # Unknown escape - treat as literal
        return char

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def get_current_line(self) -> str:
        """Get the current line of source text."""
        line_end = self.source.find("\n", self._line_start_pos)
        if line_end == -1:
            line_end = len(self.source)
        return self.source[self._line_start_pos:line_end].rstrip("\r")
