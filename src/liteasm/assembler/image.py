"""
Image Builder
=============

Merges the encoded units of a program into an address-indexed image.

Units arrive in program order, which is not address order once ``.ORG``
jumps around. The builder sorts them by address, joins touching units
into contiguous chunks, and refuses any two units that write the same
address: output is never silently overwritten.

Alongside the image the resolver produces a SymbolReport, the
human-facing summary of a run:

| Part      | Content                                         |
|-----------|-------------------------------------------------|
| symbols   | name, value, kind and definition site           |
| vectors   | vector table entries with their resolved value  |
| segments  | address range actually used by each segment     |
| listing   | address, bytes and source text of each unit     |
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional
import logging

from liteasm.errors import OverlapError, SourceLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodedUnit:
    """
    Bytes produced by one statement (or one context entry).

    Attributes:
        address: Address of the first byte
        data: The bytes
        location: Statement that produced them
    """
    address: int
    data: bytes
    location: Optional[SourceLocation] = None

    @property
    def end(self) -> int:
        """One past the last address written."""
        return self.address + len(self.data)


class Image:
    """
    Final mapping from addresses to bytes.

    The image is a sorted tuple of non-overlapping, non-touching chunks.
    Addresses between chunks are unwritten.
    """

    def __init__(self, chunks: tuple[tuple[int, bytes], ...] = ()):
        self._chunks = tuple((start, bytes(data)) for start, data in chunks)

    def chunks(self) -> Iterator[tuple[int, bytes]]:
        """Contiguous (start, bytes) runs in address order."""
        return iter(self._chunks)

    @property
    def start(self) -> int:
        return self._chunks[0][0] if self._chunks else 0

    @property
    def end(self) -> int:
        """One past the highest written address."""
        if not self._chunks:
            return 0
        start, data = self._chunks[-1]
        return start + len(data)

    @property
    def size(self) -> int:
        """Span from the lowest to the highest written address."""
        return self.end - self.start

    def to_bytes(self, fill: int = 0) -> bytes:
        """
        Flatten the image from ``start`` to ``end``.

        Gaps between chunks are filled with ``fill``.
        """
        if not 0 <= fill <= 0xFF:
            raise ValueError(f"fill byte out of range: {fill}")
        output = bytearray([fill]) * self.size
        for start, data in self._chunks:
            offset = start - self.start
            output[offset:offset + len(data)] = data
        return bytes(output)

    def hex_dump(self, width: int = 16) -> str:
        """Chunks as ``$ADDR  XX XX ...`` lines of ``width`` bytes."""
        lines = []
        for start, data in self._chunks:
            for offset in range(0, len(data), width):
                row = data[offset:offset + width]
                lines.append(f"${start + offset:04X}  {row.hex(' ').upper()}")
        return "\n".join(lines)

    def __getitem__(self, address: int) -> int:
        for start, data in self._chunks:
            if start <= address < start + len(data):
                return data[address - start]
        raise KeyError(f"address ${address:04X} is not part of the image")

    def __contains__(self, address: int) -> bool:
        return any(start <= address < start + len(data) for start, data in self._chunks)

    def __len__(self) -> int:
        """Number of bytes written."""
        return sum(len(data) for _, data in self._chunks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Image):
            return NotImplemented
        return self._chunks == other._chunks

    def __repr__(self) -> str:
        runs = ", ".join(f"${s:04X}+{len(d)}" for s, d in self._chunks)
        return f"Image({runs})"


class ImageBuilder:
    """
    Collects EncodedUnits and merges them into an Image.

    Usage:
        builder = ImageBuilder()
        builder.add(EncodedUnit(0x8000, b"\\xA9\\x05", location))
        image = builder.build()
    """

    def __init__(self):
        self.units: list[EncodedUnit] = []

    def add(self, unit: EncodedUnit) -> None:
        if unit.data:
            self.units.append(unit)

    def build(self) -> Image:
        """
        Merge the units.

        Raises:
            OverlapError: If two units write the same address
        """
        ordered = sorted(self.units, key=lambda u: u.address)
        chunks: list[tuple[int, bytearray]] = []
        furthest: Optional[EncodedUnit] = None

        for unit in ordered:
            if furthest is not None and unit.address < furthest.end:
                raise OverlapError(
                    unit.address,
                    min(furthest.end, unit.end),
                    (furthest.location, unit.location),
                )
            if chunks and chunks[-1][0] + len(chunks[-1][1]) == unit.address:
                chunks[-1][1].extend(unit.data)
            else:
                chunks.append((unit.address, bytearray(unit.data)))
            if furthest is None or unit.end > furthest.end:
                furthest = unit

        logger.debug("image: %d unit(s) in %d chunk(s)", len(ordered), len(chunks))
        return Image(tuple((start, bytes(data)) for start, data in chunks))


# =============================================================================
# Report
# =============================================================================

@dataclass(frozen=True)
class SymbolEntry:
    name: str
    value: int
    kind: str
    location: Optional[SourceLocation] = None


@dataclass(frozen=True)
class VectorEntry:
    name: str
    address: int
    handler: str | int
    value: int


@dataclass(frozen=True)
class SegmentExtent:
    """Address range used by a segment; ``end`` is exclusive."""
    name: str
    start: int
    end: int


@dataclass(frozen=True)
class ListingLine:
    address: int
    data: bytes
    location: Optional[SourceLocation]
    text: str = ""


@dataclass(frozen=True)
class SymbolReport:
    """
    Everything a run resolved, for display and for external dumpers.

    Attributes:
        symbols: Every symbol, sorted by name
        vectors: Vector table entries in context order
        segments: Extents of the segments that produced output
        listing: One line per unit in program order
    """
    symbols: tuple[SymbolEntry, ...] = ()
    vectors: tuple[VectorEntry, ...] = ()
    segments: tuple[SegmentExtent, ...] = ()
    listing: tuple[ListingLine, ...] = ()

    def symbol(self, name: str) -> Optional[int]:
        """Value of a symbol by its table name, or None."""
        for entry in self.symbols:
            if entry.name == name:
                return entry.value
        return None

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, suitable for JSON."""
        return {
            "symbols": [
                {
                    "name": s.name,
                    "value": s.value,
                    "kind": s.kind,
                    "location": str(s.location) if s.location else None,
                }
                for s in self.symbols
            ],
            "vectors": [
                {
                    "name": v.name,
                    "address": v.address,
                    "handler": v.handler,
                    "value": v.value,
                }
                for v in self.vectors
            ],
            "segments": [
                {"name": s.name, "start": s.start, "end": s.end}
                for s in self.segments
            ],
        }

    def format_symbols(self) -> str:
        """Symbol file text: ``name $value`` per line."""
        lines = ["# Symbol table", "# Generated by liteasm"]
        for entry in self.symbols:
            lines.append(f"{entry.name} ${entry.value:04X}")
        return "\n".join(lines) + "\n"

    def format_listing(self) -> str:
        """Listing text with addresses, bytes and source lines."""
        lines = [
            "liteasm Listing",
            "=" * 60,
            "",
            "Addr   Code          Line  Source",
            "-" * 60,
        ]
        for entry in self.listing:
            hex_str = entry.data[:4].hex(" ").upper()
            if len(entry.data) > 4:
                hex_str += "+"
            line = entry.location.line if entry.location else 0
            lines.append(f"${entry.address:04X}  {hex_str:12s}  {line:4d}  {entry.text}")
        lines.append("")
        lines.append("Symbol Table")
        lines.append("-" * 30)
        for entry in self.symbols:
            lines.append(f"{entry.name:20s} = ${entry.value:04X}")
        return "\n".join(lines) + "\n"
