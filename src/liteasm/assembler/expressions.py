"""
Assembly Expression Evaluator
=============================

This module evaluates the arithmetic and logical expressions that appear
in operands and directive arguments.

Supported Operations
--------------------
**Arithmetic:** + - * / %

**Bitwise:** & | ^ ~ << >>

**Comparison:** < > <= >= == != <>

**Byte selection (unary):**
- ``<expr``  low byte  (bits 0-7)
- ``>expr``  high byte (bits 8-15)
- ``^expr``  bank byte (bits 16-23)

**Functions:** ``LOW(expr)``, ``HIGH(expr)``, ``BANK(expr)``

**Special Symbols:** ``*`` or ``$`` - current address

Values are unbounded Python integers. Nothing is masked here: whether a
result fits its field is decided by the encoder, which rejects anything
that does not fit instead of truncating it.

Expression Grammar
------------------
Recursive descent, lowest precedence first:

1. Comparison: < <= > >= == !=
2. Bitwise OR: |
3. Bitwise XOR: ^
4. Bitwise AND: &
5. Shift: << >>
6. Addition/Subtraction: + -
7. Multiplication/Division: * / %
8. Unary: + - ~ < > ^
9. Primary: number, symbol, function call, (grouped expression)

Forward References
------------------
``evaluate`` raises UndefinedSymbolError for unknown names. ``try_evaluate``
returns None instead, which is how pass 1 asks "is this value known yet?"
without failing on forward references.
"""

from typing import Optional

from liteasm.errors import (
    ExpressionError,
    UndefinedSymbolError,
    SourceLocation,
)
from liteasm.assembler.lexer import NAME_TOKENS, Token, TokenType
from liteasm.assembler.symbols import SymbolTable


class _Unresolved(Exception):
    """Internal signal: a symbol has no value yet."""


class ExpressionEvaluator:
    """
    Evaluates token lists against a symbol table.

    The evaluator never modifies the table; it only looks names up.

    Attributes:
        symbols: The SymbolTable used to resolve names
    """

    FUNCTIONS = {"HIGH", "LOW", "BANK"}

    def __init__(self, symbols: SymbolTable):
        self.symbols = symbols
        self._tokens: list[Token] = []
        self._pos = 0
        self._pc: Optional[int] = None
        self._scope: Optional[str] = None
        self._location: Optional[SourceLocation] = None
        self._strict = True

    # =========================================================================
    # Main Evaluation Interface
    # =========================================================================

    def evaluate(
        self,
        tokens: list[Token],
        pc: Optional[int] = None,
        scope: Optional[str] = None,
        location: Optional[SourceLocation] = None,
    ) -> int:
        """
        Evaluate an expression.

        Args:
            tokens: Token list representing the expression
            pc: Current address, or None where it is not available
            scope: Enclosing global label for local label references
            location: Source location for error reporting

        Raises:
            ExpressionError: If the expression is malformed
            UndefinedSymbolError: If a referenced symbol has no value
        """
        return self._run(tokens, pc, scope, location, strict=True)

    def try_evaluate(
        self,
        tokens: list[Token],
        pc: Optional[int] = None,
        scope: Optional[str] = None,
        location: Optional[SourceLocation] = None,
    ) -> Optional[int]:
        """
        Evaluate an expression if every symbol it references has a value.

        Returns None on an undefined or unresolved symbol; malformed
        expressions still raise ExpressionError.
        """
        try:
            return self._run(tokens, pc, scope, location, strict=False)
        except _Unresolved:
            return None

    def references(self, tokens: list[Token], scope: Optional[str] = None) -> list[str]:
        """Qualified names of the symbols an expression refers to."""
        names = []
        for i, tok in enumerate(tokens):
            if tok.type not in NAME_TOKENS:
                continue
            following = tokens[i + 1] if i + 1 < len(tokens) else None
            if (
                str(tok.value).upper() in self.FUNCTIONS
                and following is not None
                and following.type == TokenType.LPAREN
            ):
                continue
            names.append(self.symbols.qualify(str(tok.value), scope))
        return names

    def _run(
        self,
        tokens: list[Token],
        pc: Optional[int],
        scope: Optional[str],
        location: Optional[SourceLocation],
        strict: bool,
    ) -> int:
        if not tokens:
            raise ExpressionError("empty expression", location)

        self._tokens = tokens
        self._pos = 0
        self._pc = pc
        self._scope = scope
        self._location = location or tokens[0].location
        self._strict = strict

        result = self._parse_comparison()

        if self._pos < len(self._tokens):
            tok = self._current()
            raise ExpressionError(
                f"unexpected '{tok.value if tok.value is not None else tok.type.name}' "
                f"in expression",
                tok.location,
            )
        return result

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self._pos >= len(self._tokens):
            last = self._tokens[-1]
            return Token(TokenType.EOF, None, last.line, last.column, last.filename)
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

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._current().type in types:
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, message: str) -> Token:
        if self._current().type != token_type:
            raise ExpressionError(message, self._current().location)
        return self._advance()

    # =========================================================================
    # Recursive Descent Parser with Evaluation
    # =========================================================================

    def _parse_comparison(self) -> int:
        """Parse comparison operators (lowest precedence)."""
        left = self._parse_or()

        while True:
            if self._match(TokenType.LT):
                left = int(left < self._parse_or())
            elif self._match(TokenType.GT):
                left = int(left > self._parse_or())
            elif self._match(TokenType.LE):
                left = int(left <= self._parse_or())
            elif self._match(TokenType.GE):
                left = int(left >= self._parse_or())
            elif self._match(TokenType.EQ):
                left = int(left == self._parse_or())
            elif self._match(TokenType.NE):
                left = int(left != self._parse_or())
            else:
                break

        return left

    def _parse_or(self) -> int:
        left = self._parse_xor()
        while self._match(TokenType.PIPE):
            left = left | self._parse_xor()
        return left

    def _parse_xor(self) -> int:
        left = self._parse_and()
        while self._match(TokenType.CARET):
            left = left ^ self._parse_and()
        return left

    def _parse_and(self) -> int:
        left = self._parse_shift()
        while self._match(TokenType.AMPERSAND):
            left = left & self._parse_shift()
        return left

    def _parse_shift(self) -> int:
        left = self._parse_additive()

        while True:
            if self._match(TokenType.LSHIFT):
                right = self._parse_additive()
                if right < 0:
                    raise ExpressionError("negative shift count", self._location)
                left = left << right
            elif self._match(TokenType.RSHIFT):
                right = self._parse_additive()
                if right < 0:
                    raise ExpressionError("negative shift count", self._location)
                left = left >> right
            else:
                break

        return left

    def _parse_additive(self) -> int:
        left = self._parse_multiplicative()

        while True:
            if self._match(TokenType.PLUS):
                left = left + self._parse_multiplicative()
            elif self._match(TokenType.MINUS):
                left = left - self._parse_multiplicative()
            else:
                break

        return left

    def _parse_multiplicative(self) -> int:
        left = self._parse_unary()

        while True:
            if self._match(TokenType.STAR):
                left = left * self._parse_unary()
            elif self._match(TokenType.SLASH):
                right = self._parse_unary()
                if right == 0:
                    raise ExpressionError("division by zero", self._location)
                left = left // right
            elif self._match(TokenType.PERCENT):
                right = self._parse_unary()
                if right == 0:
                    raise ExpressionError("modulo by zero", self._location)
                left = left % right
            else:
                break

        return left

    def _parse_unary(self) -> int:
        """Parse unary operators (+, -, ~, and the byte selectors < > ^)."""
        if self._match(TokenType.PLUS):
            return self._parse_unary()
        if self._match(TokenType.MINUS):
            return -self._parse_unary()
        if self._match(TokenType.TILDE):
            return ~self._parse_unary()
        if self._match(TokenType.LT):
            return self._parse_unary() & 0xFF
        if self._match(TokenType.GT):
            return (self._parse_unary() >> 8) & 0xFF
        if self._match(TokenType.CARET):
            return (self._parse_unary() >> 16) & 0xFF

        return self._parse_primary()

    def _parse_primary(self) -> int:
        """Parse numbers, symbols, function calls and groups."""
        tok = self._current()

        if tok.type == TokenType.NUMBER:
            self._advance()
            return tok.value

        # A string in an expression stands for its first character
        if tok.type == TokenType.STRING:
            self._advance()
            if len(tok.value) != 1:
                raise ExpressionError(
                    f"string \"{tok.value}\" used as a value; only one character is allowed",
                    tok.location,
                )
            return ord(tok.value)

        if tok.type in (TokenType.STAR, TokenType.DOLLAR):
            self._advance()
            if self._pc is None:
                raise ExpressionError(
                    "current address is not available here", tok.location
                )
            return self._pc

        if tok.type == TokenType.LPAREN:
            self._advance()
            result = self._parse_comparison()
            self._expect(TokenType.RPAREN, "expected ')' to close expression")
            return result

        if tok.type in NAME_TOKENS:
            name = str(tok.value)
            if name.upper() in self.FUNCTIONS and self._peek(1).type == TokenType.LPAREN:
                return self._parse_function_call(name.upper())

            self._advance()
            return self._resolve_symbol(name, tok.location)

        if tok.type == TokenType.EOF:
            raise ExpressionError("unexpected end of expression", tok.location)
        raise ExpressionError(
            f"expected value, got '{tok.value if tok.value is not None else tok.type.name}'",
            tok.location,
        )

    def _parse_function_call(self, func_name: str) -> int:
        """Parse LOW(expr), HIGH(expr) or BANK(expr)."""
        self._advance()  # consume function name
        self._expect(TokenType.LPAREN, f"expected '(' after {func_name}")
        arg = self._parse_comparison()
        self._expect(TokenType.RPAREN, f"expected ')' after {func_name} argument")

        if func_name == "LOW":
            return arg & 0xFF
        if func_name == "HIGH":
            return (arg >> 8) & 0xFF
        return (arg >> 16) & 0xFF

    def _resolve_symbol(self, name: str, location: SourceLocation) -> int:
        """
        Look up a symbol.

        Raises:
            UndefinedSymbolError: If the symbol has no value (strict mode)
        """
        qualified = self.symbols.qualify(name, self._scope)
        value = self.symbols.lookup(qualified)
        if value is not None:
            return value

        if not self._strict:
            raise _Unresolved(qualified)

        raise UndefinedSymbolError(
            qualified,
            location=location,
            similar_symbols=self.symbols.similar(qualified),
        )
