"""
Table-Driven Assembler
======================

This package turns source text into a binary image for any architecture
described by an ArchitectureDefinition.

Main Components
---------------
- **Assembler**: Facade that runs the whole pipeline
- **Lexer**: Tokenizes source using the architecture's syntax rules
- **Parser**: Parses tokens into statements and candidate addressing modes
- **ExpressionEvaluator**: Evaluates operand and directive expressions
- **ModeTracker**: Pure fold computing register width modes per statement
- **Resolver**: Two-pass address assignment and encoding
- **Encoder**: Table-driven instruction encoding
- **ImageBuilder**: Merges encoded units into an Image

Assembly Process
----------------
1. **Parsing (Lexer + Parser)**: tokens, statements, candidate modes
2. **Pass 1 (Resolver)**: addresses, labels, mode choice, sizes
3. **Equates**: deferred equates resolved, symbol table frozen
4. **Pass 2 (Resolver + Encoder)**: operand values, bytes
5. **Image (ImageBuilder)**: overlap check, contiguous chunks, report
"""

from liteasm.assembler.assembler import Assembler, AssemblyResult, assemble
from liteasm.assembler.encoder import Encoder
from liteasm.assembler.expressions import ExpressionEvaluator
from liteasm.assembler.image import (
    EncodedUnit,
    Image,
    ImageBuilder,
    ListingLine,
    SegmentExtent,
    SymbolEntry,
    SymbolReport,
    VectorEntry,
)
from liteasm.assembler.lexer import Lexer, Token, TokenType
from liteasm.assembler.modes import ModeState, ModeTracker
from liteasm.assembler.parser import Directive, Instruction, LabelDef, Parser, Statement
from liteasm.assembler.resolver import PlannedStatement, Resolver
from liteasm.assembler.symbols import Symbol, SymbolKind, SymbolTable

__all__ = [
    "Assembler",
    "AssemblyResult",
    "assemble",
    "Directive",
    "EncodedUnit",
    "Encoder",
    "ExpressionEvaluator",
    "Image",
    "ImageBuilder",
    "Instruction",
    "LabelDef",
    "Lexer",
    "ListingLine",
    "ModeState",
    "ModeTracker",
    "Parser",
    "PlannedStatement",
    "Resolver",
    "SegmentExtent",
    "Statement",
    "Symbol",
    "SymbolEntry",
    "SymbolKind",
    "SymbolReport",
    "SymbolTable",
    "Token",
    "TokenType",
    "VectorEntry",
]
