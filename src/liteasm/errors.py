"""
liteasm Error Hierarchy
=======================

This module defines the exception hierarchy for the whole assembler.
All exceptions inherit from LiteasmError, allowing callers to catch every
toolchain error with a single except clause if desired.

Exception Hierarchy
-------------------
LiteasmError (base)
├── ConfigError - invalid architecture or context data
└── AssemblyError (anything tied to a source position)
    ├── LexError - invalid characters, literals, strings
    ├── ParseError - unknown mnemonic, bad operand, bad addressing mode
    ├── ModeAmbiguityError - width mode not statically known
    ├── DuplicateSymbolError - symbol defined more than once
    ├── UndefinedSymbolError - reference to an undefined symbol
    ├── OperandOverflowError - value does not fit its field
    │   └── BranchRangeError - relative target out of range
    ├── ExpressionError - malformed expression, division by zero
    ├── DirectiveError - directive used incorrectly
    ├── OverlapError - two units write the same address
    ├── MultipleErrors - aggregate raised in collect-all mode
    └── InternalConsistencyError - assembler defect, not user error
        └── EncodingError - unsupported (mnemonic, mode) reached the encoder

User errors and internal errors are told apart by the ``is_internal``
attribute, so that front ends can ask for a bug report instead of a fix.

Error messages follow this format:
    filename:line:column: error: description
    source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class LiteasmError(Exception):
    """
    Base exception for all liteasm errors.

        try:
            assemble(source, arch, ctx)
        except LiteasmError as e:
            print(f"Error: {e}")
    """
    is_internal = False


class ConfigError(LiteasmError):
    """
    Invalid architecture or context configuration.

    Raised by the model constructors and by the configuration loader when
    the supplied data is inconsistent (unknown addressing mode names,
    opcode bytes out of range, duplicate flags, ...).
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True, order=True)
class SourceLocation:
    """
    A position in source text, used as the span of tokens and statements.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Assembly Exceptions
# =============================================================================

class AssemblyError(LiteasmError):
    """
    Base exception for errors raised while assembling a program.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The actual source text at the error location (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            boot.asm:15:9: error: undefined symbol 'RESTE'
                JMP RESTE
                    ^
            hint: did you mean 'RESET'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None:
            parts.append(f"    {self.source_line}")
            if self.location and self.location.column > 0:
                parts.append("    " + " " * (self.location.column - 1) + "^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)

    def attach_source(self, source_line: Optional[str]) -> "AssemblyError":
        """Show ``source_line`` under the message unless one is already set."""
        if self.source_line is None and source_line is not None:
            self.source_line = source_line
            self.args = (self._format_message(),)
        return self


class LexErrorKind(Enum):
    """Reasons the lexer rejects input."""
    UNTERMINATED_STRING = "unterminated string"
    INVALID_CHARACTER = "invalid character"
    INVALID_NUMERIC_LITERAL = "invalid numeric literal"


class LexError(AssemblyError):
    """
    Invalid lexical element in the source.

    Examples:
        - Character that starts no token (``LDA ?``)
        - String or character literal without closing quote
        - Radix prefix without digits (``$`` followed by ``G``)
    """

    def __init__(
        self,
        kind: LexErrorKind,
        message: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.kind = kind
        super().__init__(message, location, source_line=source_line)


class ParseErrorKind(Enum):
    """Reasons the parser rejects a statement."""
    UNKNOWN_MNEMONIC = "unknown mnemonic"
    UNKNOWN_DIRECTIVE = "unknown directive"
    UNSUPPORTED_ADDRESSING_MODE = "unsupported addressing mode"
    MALFORMED_OPERAND = "malformed operand"
    DUPLICATE_LABEL_ON_LINE = "duplicate label on line"


class ParseError(AssemblyError):
    """
    Syntax error in a source statement.

    Parsing is purely syntactic: it never fails because a symbol is not
    yet defined. The ``kind`` attribute tells which rule was broken.
    """

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.kind = kind
        super().__init__(message, location, hint=hint, source_line=source_line)


class ModeAmbiguityError(AssemblyError):
    """
    A width mode could not be determined statically.

    Raised when a mode-changing instruction takes a non-literal operand
    (``SEP #FLAGS``), or when a width-sensitive encoding is needed while a
    flag is unknown after an invalidating instruction.
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        flag: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.flag = flag
        super().__init__(message, location, hint=hint)


class UndefinedSymbolError(AssemblyError):
    """
    Reference to an undefined symbol (label or constant).

    Raised during the second pass when a symbol reference cannot be
    resolved because no definition was found. Similarly-named symbols are
    offered as a hint to catch typos.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
        similar_symbols: Optional[list[str]] = None,
    ):
        self.symbol = symbol
        self.similar_symbols = similar_symbols or []

        if not hint and self.similar_symbols:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_symbols[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"undefined symbol '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateSymbolError(AssemblyError):
    """
    Symbol defined multiple times.

    Carries both the location of the offending definition and the
    location of the original one. Predefined (context) symbols report
    ``<context>`` as their original location.
    """

    def __init__(
        self,
        symbol: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.symbol = symbol
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{symbol}' was first defined at {original_location}"

        super().__init__(
            f"duplicate symbol '{symbol}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )

    @property
    def spans(self) -> tuple[Optional[SourceLocation], Optional[SourceLocation]]:
        """Both definition sites, original first."""
        return (self.original_location, self.location)


class OperandOverflowError(AssemblyError):
    """
    Value does not fit the field it is encoded into.

    Values are never truncated: anything below the signed minimum or above
    the unsigned maximum of the field raises this error.

    Attributes:
        mode: Addressing mode or data directive name
        value: The offending value
        max: Largest representable unsigned value
    """

    def __init__(
        self,
        mode: str,
        value: int,
        max: int,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
    ):
        self.mode = mode
        self.value = value
        self.max = max
        super().__init__(
            f"value {value} (${value & 0xFFFFFFFF:X}) does not fit {mode} operand "
            f"(maximum ${max:X})",
            location=location,
            hint=hint,
        )


class BranchRangeError(OperandOverflowError):
    """
    Relative branch target is out of range.

    A relative operand of n bytes reaches -2**(8n-1) .. 2**(8n-1)-1 bytes
    from the address following the instruction.
    """

    def __init__(
        self,
        mode: str,
        offset: int,
        limit: int,
        location: Optional[SourceLocation] = None,
    ):
        direction = "forward" if offset > 0 else "backward"
        super().__init__(
            mode,
            offset,
            limit,
            location=location,
            hint=(
                f"branch offset is {offset}, but range is {-limit - 1} to +{limit}; "
                f"consider a long form for {direction} references"
            ),
        )
        self.offset = offset


class ExpressionError(AssemblyError):
    """
    Error evaluating an expression.

    Raised for malformed expressions, division by zero, or a current
    address reference where none is allowed.
    """
    pass


class DirectiveError(AssemblyError):
    """
    Error in an assembler directive.

    Examples:
        - ORG with a value not known in pass 1
        - RES with negative count
        - MODE naming an unknown flag
    """
    pass


class OverlapError(AssemblyError):
    """
    Two encoded units write to the same address range.

    Attributes:
        address: First overlapping address
        end: One past the last overlapping address
        spans: Source locations of both writers (earlier writer first)
    """

    def __init__(
        self,
        address: int,
        end: int,
        spans: tuple[Optional[SourceLocation], Optional[SourceLocation]],
    ):
        self.address = address
        self.end = end
        self.spans = spans
        first, second = spans
        super().__init__(
            f"overlapping output at ${address:04X}-${end - 1:04X}",
            location=second,
            hint=f"already written by {first}" if first else None,
        )


class MultipleErrors(AssemblyError):
    """
    Several errors collected in collect-all mode.

    Attributes:
        errors: The individual errors in the order they were found
    """

    def __init__(self, errors: list[AssemblyError]):
        self.errors = list(errors)
        first = self.errors[0] if self.errors else None
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        super().__init__(
            f"assembly failed with {count} {noun}:\n\n"
            + "\n\n".join(str(e) for e in self.errors),
            location=first.location if first else None,
        )

    @property
    def is_internal(self) -> bool:  # type: ignore[override]
        return any(e.is_internal for e in self.errors)


class InternalConsistencyError(AssemblyError):
    """
    An invariant of the assembler itself was violated.

    These indicate a defect in liteasm (or in a hand-built architecture
    object that bypassed validation), not a problem in the user's source.
    """
    is_internal = True


class EncodingError(InternalConsistencyError):
    """
    The encoder was asked for a (mnemonic, mode) pair it does not know.

    The parser validates every pair against the same architecture, so
    reaching this error means pre-validated input was not valid.
    """

    UNSUPPORTED_COMBINATION = "unsupported combination"

    def __init__(
        self,
        mnemonic: str,
        mode: str,
        location: Optional[SourceLocation] = None,
    ):
        self.kind = self.UNSUPPORTED_COMBINATION
        self.mnemonic = mnemonic
        self.mode = mode
        super().__init__(
            f"internal error: no encoding for {mnemonic} in {mode} mode",
            location=location,
            hint="this is an assembler bug; please report it",
        )


# =============================================================================
# Error Collection for Multiple Error Reporting
# =============================================================================

class ErrorCollector:
    """
    Collects multiple errors for batch reporting.

    Used in collect-all mode so that every independent syntax problem is
    reported in one run.

    Example:
        collector = ErrorCollector(max_errors=100)
        collector.add(ParseError(...))
        if collector.has_errors():
            raise collector.to_exception()
    """

    def __init__(self, max_errors: int = 100):
        """
        Initialize the error collector.

        Args:
            max_errors: Maximum errors to collect before raising TooManyErrors
        """
        self.errors: list[AssemblyError] = []
        self.max_errors = max_errors

    def add(self, error: AssemblyError) -> None:
        """
        Add an error to the collection.

        Raises:
            TooManyErrors: If max_errors has been reached
        """
        self.errors.append(error)
        if len(self.errors) >= self.max_errors:
            raise TooManyErrors(self.errors)

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def to_exception(self) -> AssemblyError:
        """Return the single error, or a MultipleErrors aggregate."""
        if len(self.errors) == 1:
            return self.errors[0]
        return MultipleErrors(self.errors)


class TooManyErrors(MultipleErrors):
    """
    Raised when too many errors have been collected.

    This prevents runaway diagnostics when there are fundamental problems
    with the source code.
    """
    pass
