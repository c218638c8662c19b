"""
liteasm Assembler - Main Interface
==================================

This module provides the Assembler class, the primary interface for
assembling source text for a table-described architecture. It coordinates
the lexer, parser and two-pass resolver and returns the image together
with its symbol report.

Example Usage
-------------
>>> from liteasm.arch import get_builtin
>>> from liteasm.assembler import Assembler
>>>
>>> asm = Assembler(get_builtin("65c816"))
>>> result = asm.assemble_string('''
...     .ORG $8000
... start:
...     SEP #$20
...     LDA #$41
...     REP #$20
...     LDA #$1234
...     RTS
... ''')
>>> result.image.to_bytes().hex()
'e220a941c220a9341260'
>>> result.report.symbol("START")
32768

Error Policy
------------
By default the first error is raised, with its location, the offending
source line and a hint where one is available. ``collect_errors=True``
gathers every lexical and syntax error, then every error of each pass,
and raises them together as MultipleErrors. No image is ever returned
for a run that had an error.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

from liteasm.arch.model import ArchitectureDefinition
from liteasm.context import Context
from liteasm.errors import AssemblyError, ErrorCollector
from liteasm.assembler.image import Image, SymbolReport
from liteasm.assembler.lexer import Lexer
from liteasm.assembler.parser import Parser, Statement
from liteasm.assembler.resolver import Resolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    """
    Output of a successful run.

    Attributes:
        image: Address-indexed bytes
        report: Symbols, vectors, segment extents and listing
    """
    image: Image
    report: SymbolReport


class Assembler:
    """
    Assembler for one architecture and context.

    The architecture and context are read-only; one Assembler can run any
    number of assemblies, and separate Assemblers can run concurrently.

    Attributes:
        arch: Architecture definition
        context: Context layered onto every program
        collect_errors: Report all errors instead of the first one
        max_errors: Give up after this many collected errors
    """

    def __init__(
        self,
        arch: ArchitectureDefinition,
        context: Optional[Context] = None,
        collect_errors: bool = False,
        max_errors: int = 100,
    ):
        self.arch = arch
        self.context = context or Context()
        self.collect_errors = collect_errors
        self.max_errors = max_errors

    def parse(self, source: str, filename: str = "<input>") -> list[Statement]:
        """
        Lex and parse source text.

        Raises:
            LexError: Invalid token (fail-fast mode)
            ParseError: Invalid statement (fail-fast mode)
            MultipleErrors: Several errors (collect mode)
        """
        lines = source.splitlines()
        lexer = Lexer(source, self.arch, filename, collect_errors=self.collect_errors)
        parser = Parser(
            lexer.tokenize(),
            self.arch,
            collect_errors=self.collect_errors,
            source_lines=lines,
        )
        statements = parser.parse()

        if self.collect_errors:
            collector = ErrorCollector(self.max_errors)
            found: list[AssemblyError] = [*lexer.errors, *parser.errors]
            for error in sorted(found, key=lambda e: e.location):
                collector.add(error)
            if collector.has_errors():
                raise collector.to_exception()

        return statements

    def assemble_string(self, source: str, filename: str = "<input>") -> AssemblyResult:
        """
        Assemble source code from a string.

        Args:
            source: Assembly source text
            filename: Name used in error locations

        Returns:
            AssemblyResult with the image and report

        Raises:
            AssemblyError: If assembly fails
        """
        logger.info("assembling %s for %s", filename, self.arch.name)
        statements = self.parse(source, filename)
        logger.debug("%s: %d statement(s)", filename, len(statements))

        resolver = Resolver(
            self.arch,
            self.context,
            source_lines=source.splitlines(),
            collect_errors=self.collect_errors,
            max_errors=self.max_errors,
        )
        image, report = resolver.run(statements)
        return AssemblyResult(image, report)

    def assemble_file(self, filepath: str | Path) -> AssemblyResult:
        """
        Assemble source code from a file.

        Raises:
            AssemblyError: If assembly fails
            FileNotFoundError: If the source file does not exist
        """
        filepath = Path(filepath)
        source = filepath.read_text()
        return self.assemble_string(source, str(filepath))


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(
    source: str,
    arch: ArchitectureDefinition,
    ctx: Optional[Context] = None,
    filename: str = "<input>",
    collect_errors: bool = False,
) -> AssemblyResult:
    """
    Assemble ``source`` for ``arch`` with context ``ctx``.

    Raises:
        AssemblyError: If assembly fails
    """
    return Assembler(arch, ctx, collect_errors=collect_errors).assemble_string(
        source, filename
    )
