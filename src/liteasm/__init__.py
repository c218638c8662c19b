"""
liteasm - Table-Driven Cross Assembler
======================================

This package assembles source text for processors whose instruction set is
supplied as data: mnemonics, addressing-mode syntax, opcodes and
mode-dependent operand widths all come from an ArchitectureDefinition.
Built-in tables cover the 6502, 65C02 and 65C816.

Main Components
---------------
- **arch**: Architecture data model and built-in tables
- **context**: Predefined symbols, vector table, patches, segments
- **assembler**: Lexer, parser, mode tracker, two-pass resolver, encoder
- **config**: JSON (de)serialisation of architectures and contexts
- **cli**: The ``liteasm`` command

Quick Start
-----------
    >>> from liteasm import assemble, get_builtin
    >>> result = assemble("LDA #$05\\nRTS", get_builtin("6502"))
    >>> result.image.to_bytes()
    b'\\xa9\\x05`'

Or use the command-line tool:
    $ liteasm -a 65c816 assemble boot.asm -o boot.bin -l boot.lst
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from liteasm.arch import ArchitectureDefinition, get_builtin, BUILTIN_ARCHITECTURES
from liteasm.assembler import Assembler, AssemblyResult, Image, SymbolReport, assemble
from liteasm.context import Context, ContextSymbol, Patch, Vector
from liteasm.errors import (
    LiteasmError,
    ConfigError,
    AssemblyError,
    LexError,
    ParseError,
    ModeAmbiguityError,
    DuplicateSymbolError,
    UndefinedSymbolError,
    OperandOverflowError,
    BranchRangeError,
    ExpressionError,
    DirectiveError,
    OverlapError,
    MultipleErrors,
    InternalConsistencyError,
    EncodingError,
)

__all__ = [
    # Version info
    "__version__",
    # Architecture and context
    "ArchitectureDefinition",
    "BUILTIN_ARCHITECTURES",
    "get_builtin",
    "Context",
    "ContextSymbol",
    "Patch",
    "Vector",
    # Assembler
    "Assembler",
    "AssemblyResult",
    "Image",
    "SymbolReport",
    "assemble",
    # Exception hierarchy
    "LiteasmError",
    "ConfigError",
    "AssemblyError",
    "LexError",
    "ParseError",
    "ModeAmbiguityError",
    "DuplicateSymbolError",
    "UndefinedSymbolError",
    "OperandOverflowError",
    "BranchRangeError",
    "ExpressionError",
    "DirectiveError",
    "OverlapError",
    "MultipleErrors",
    "InternalConsistencyError",
    "EncodingError",
]
