"""
Assembly Context
================

The context layers program-specific data on top of an architecture:

- predefined symbols (hardware registers, ROM entry points)
- the exception/vector table, written into the image after pass 2
- literal byte patches placed into the image like any other output
- the default origin, named segments and initial width modes

A Context is immutable. The resolver reads it; nothing in the core ever
writes to it. The ``with_*`` helpers return modified copies and are what
the command line tools use to edit a saved context file.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

from liteasm.errors import ConfigError


DEFAULT_SEGMENT = "CODE"


@dataclass(frozen=True)
class ContextSymbol:
    """A symbol with a fixed value supplied from outside the source."""
    name: str
    value: int


@dataclass(frozen=True)
class Vector:
    """
    One entry of the exception/vector table.

    Attributes:
        name: Vector name ("RESET", "NMI", ...)
        address: Where the vector word is stored
        handler: Symbol name or literal address written at ``address``
    """
    name: str
    address: int
    handler: str | int


@dataclass(frozen=True)
class Patch:
    """
    Literal bytes placed into the image.

    Either ``data`` holds the bytes, or ``repeat`` is a ``(byte, count)``
    pair producing ``count`` copies of ``byte``.
    """
    address: int
    data: bytes = b""
    repeat: Optional[tuple[int, int]] = None

    def __post_init__(self):
        object.__setattr__(self, "data", bytes(self.data))
        if self.repeat is not None:
            byte, count = self.repeat
            object.__setattr__(self, "repeat", (byte, count))
            if self.data:
                raise ConfigError(f"patch at ${self.address:04X} has both data and repeat")
            if not 0 <= byte <= 0xFF or count < 0:
                raise ConfigError(f"patch at ${self.address:04X}: invalid repeat {self.repeat}")

    @property
    def content(self) -> bytes:
        """The bytes this patch writes."""
        if self.repeat is not None:
            byte, count = self.repeat
            return bytes([byte]) * count
        return self.data


@dataclass(frozen=True)
class Context:
    """
    Program-specific settings for one assembly run.

    Attributes:
        symbols: Predefined symbols
        vectors: Exception/vector table entries
        patches: Literal byte patches
        origin: Default origin of the CODE segment
        segments: Segment name -> start address
        initial_modes: Flag name -> width, overriding architecture defaults
    """
    symbols: tuple[ContextSymbol, ...] = ()
    vectors: tuple[Vector, ...] = ()
    patches: tuple[Patch, ...] = ()
    origin: int = 0
    segments: Mapping[str, int] = field(default_factory=dict)
    initial_modes: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "symbols", tuple(self.symbols))
        object.__setattr__(self, "vectors", tuple(self.vectors))
        object.__setattr__(self, "patches", tuple(self.patches))

        segments = {name.upper(): start for name, start in self.segments.items()}
        segments.setdefault(DEFAULT_SEGMENT, self.origin)
        object.__setattr__(self, "segments", MappingProxyType(segments))
        object.__setattr__(self, "initial_modes", MappingProxyType(dict(self.initial_modes)))

        if self.origin < 0:
            raise ConfigError(f"negative origin {self.origin}")
        vector_names = [v.name for v in self.vectors]
        if len(set(vector_names)) != len(vector_names):
            raise ConfigError("duplicate vector names in context")

    # =========================================================================
    # Copy-on-write editing
    # =========================================================================

    def with_origin(self, origin: int) -> "Context":
        segments = dict(self.segments)
        if segments.get(DEFAULT_SEGMENT) == self.origin:
            segments[DEFAULT_SEGMENT] = origin
        return replace(self, origin=origin, segments=segments)

    def with_symbol(self, name: str, value: int, case_sensitive: bool = True) -> "Context":
        """
        Return a copy with ``name`` defined (replacing any previous value).

        ``case_sensitive`` is the architecture's symbol case rule; a
        case-insensitive edit also replaces names differing only in case.
        """
        def same(other: str) -> bool:
            if case_sensitive:
                return other == name
            return other.upper() == name.upper()

        kept = tuple(s for s in self.symbols if not same(s.name))
        return replace(self, symbols=kept + (ContextSymbol(name, value),))

    def with_vector(self, name: str, address: int, handler: str | int) -> "Context":
        kept = tuple(v for v in self.vectors if v.name != name)
        return replace(self, vectors=kept + (Vector(name, address, handler),))
