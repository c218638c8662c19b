"""
Symbol Table
============

Maps symbol names to values for one assembly run.

The table is seeded with the context's predefined symbols, grows during
pass 1 (labels and equates) and is frozen before pass 2. After freezing
every lookup is read-only and any attempt to define a symbol is an
internal error.

Names follow the architecture's case rule (upper-cased unless the syntax
is case-sensitive). Local labels (``@loop``) are stored under their fully
qualified name, the enclosing global label followed by the local name
(``MAIN@LOOP``).

Equates whose value depends on symbols defined later are *declared*
during pass 1 and resolved once all labels are known; a declared symbol
has no value until then.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import logging

from liteasm.arch.model import SyntaxRules
from liteasm.context import Context
from liteasm.errors import (
    AssemblyError,
    ConfigError,
    DuplicateSymbolError,
    InternalConsistencyError,
    SourceLocation,
)

logger = logging.getLogger(__name__)

# Definition site reported for symbols supplied by the context
CONTEXT_LOCATION = SourceLocation("<context>", 0, 0)


class SymbolKind(Enum):
    """Where a symbol's value came from."""
    LABEL = auto()       # Address of a statement
    CONSTANT = auto()    # EQU / = definition
    PREDEFINED = auto()  # Supplied by the context


@dataclass
class Symbol:
    """
    Symbol table entry.

    Attributes:
        name: Fully qualified, case-normalized name
        value: Resolved value, or None for a declared equate not yet resolved
        kind: SymbolKind
        location: Where the symbol was defined
        segment: Segment a label belongs to
    """
    name: str
    value: Optional[int]
    kind: SymbolKind
    location: SourceLocation
    segment: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.value is not None


class SymbolTable:
    """
    Name -> Symbol mapping with duplicate detection and freezing.

    Usage:
        table = SymbolTable(arch.syntax)
        table.seed(context)
        table.define("START", 0x8000, SymbolKind.LABEL, location)
        table.freeze()
        table.lookup("START")  # 0x8000
    """

    def __init__(self, syntax: Optional[SyntaxRules] = None):
        self.syntax = syntax or SyntaxRules()
        self._symbols: dict[str, Symbol] = {}
        self._frozen = False

    # =========================================================================
    # Names
    # =========================================================================

    def is_local(self, name: str) -> bool:
        prefix = self.syntax.local_label_prefix
        return bool(prefix) and name.startswith(prefix)

    def qualify(self, name: str, scope: Optional[str] = None) -> str:
        """
        Return the table key for ``name`` as written in the source.

        Local names are prefixed with ``scope`` (the enclosing global
        label). A local name outside any scope is kept as written.
        """
        name = self.syntax.normalize(name)
        if scope and self.is_local(name):
            return self.syntax.normalize(scope) + name
        return name

    # =========================================================================
    # Definition
    # =========================================================================

    def _check_writable(self, name: str) -> None:
        if self._frozen:
            raise InternalConsistencyError(
                f"symbol table is frozen; cannot define '{name}'"
            )

    def define(
        self,
        name: str,
        value: Optional[int],
        kind: SymbolKind,
        location: SourceLocation,
        segment: Optional[str] = None,
    ) -> Symbol:
        """
        Add a symbol. ``name`` must already be qualified.

        A value of None declares the symbol for later resolution.

        Raises:
            DuplicateSymbolError: If the name is already defined
            InternalConsistencyError: If the table is frozen
        """
        self._check_writable(name)
        existing = self._symbols.get(name)
        if existing is not None:
            raise DuplicateSymbolError(
                name,
                location=location,
                original_location=existing.location,
            )
        symbol = Symbol(name, value, kind, location, segment)
        self._symbols[name] = symbol
        logger.debug("defined %s %s = %s", kind.name.lower(), name, value)
        return symbol

    def resolve(self, name: str, value: int) -> None:
        """Give a declared symbol its value."""
        self._check_writable(name)
        symbol = self._symbols[name]
        if symbol.value is not None:
            raise InternalConsistencyError(f"symbol '{name}' resolved twice")
        symbol.value = value

    def seed(self, context: Context) -> None:
        """
        Define every context symbol as PREDEFINED.

        Raises:
            ConfigError: If two entries name the same symbol under the
                architecture's case rule
        """
        for entry in context.symbols:
            name = self.syntax.normalize(entry.name)
            existing = self.get(name)
            if existing is not None and existing.kind == SymbolKind.PREDEFINED:
                raise ConfigError(f"context defines {name} more than once")
            if self.is_local(name):
                raise AssemblyError(
                    f"predefined symbol '{entry.name}' cannot be a local label",
                    CONTEXT_LOCATION,
                )
            self.define(name, entry.value, SymbolKind.PREDEFINED, CONTEXT_LOCATION)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, name: str) -> Optional[Symbol]:
        return self._symbols.get(name)

    def lookup(self, name: str) -> Optional[int]:
        """Value of a qualified name, or None if undefined or unresolved."""
        symbol = self._symbols.get(name)
        return symbol.value if symbol else None

    def unresolved(self) -> list[Symbol]:
        return [s for s in self._symbols.values() if s.value is None]

    def similar(self, name: str, limit: int = 3) -> list[str]:
        """
        Find defined names close to ``name`` for "did you mean" hints.

        Uses Levenshtein distance; names differing only in case always match.
        """
        name_lower = name.lower()
        similar = []
        for candidate in self._symbols:
            candidate_lower = candidate.lower()
            if candidate_lower == name_lower or (
                abs(len(candidate) - len(name)) <= 1
                and _edit_distance(name_lower, candidate_lower) <= 2
            ):
                similar.append(candidate)
        return sorted(similar)[:limit]

    def __contains__(self, name: str) -> bool:
        return name in self._symbols

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._symbols.values())

    def __len__(self) -> int:
        return len(self._symbols)


def _edit_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein edit distance between two strings."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    distances = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        new_distances = [i + 1]
        for j, c2 in enumerate(s2):
            if c1 == c2:
                new_distances.append(distances[j])
            else:
                new_distances.append(1 + min(
                    distances[j],
                    distances[j + 1],
                    new_distances[-1],
                ))
        distances = new_distances

    return distances[-1]
