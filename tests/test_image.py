# =============================================================================
# test_image.py - Image Builder and Report Tests
# =============================================================================
# Tests for merging encoded units into an image, and for the symbol report.
#
# Test coverage includes:
#   - Sorting, merging of touching units, gaps
#   - Overlap detection with both writers
#   - Flattening with a fill byte, hex dump
#   - Symbol file and listing text
# =============================================================================

import pytest
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
from liteasm.errors import OverlapError, SourceLocation


def loc(line: int) -> SourceLocation:
    return SourceLocation("prog.asm", line, 1)


def build(*units: EncodedUnit) -> Image:
    builder = ImageBuilder()
    for unit in units:
        builder.add(unit)
    return builder.build()


# =============================================================================
# Builder Tests
# =============================================================================

class TestImageBuilder:
    """Test merging units."""

    def test_empty(self):
        image = build()
        assert len(image) == 0
        assert image.to_bytes() == b""
        assert image.start == 0

    def test_touching_units_merge(self):
        image = build(
            EncodedUnit(0x8000, b"\xA9\x05", loc(1)),
            EncodedUnit(0x8002, b"\x60", loc(2)),
        )
        assert list(image.chunks()) == [(0x8000, b"\xA9\x05\x60")]

    def test_units_are_sorted(self):
        """Program order does not need to be address order."""
        image = build(
            EncodedUnit(0x9000, b"\x02", loc(3)),
            EncodedUnit(0x8000, b"\x01", loc(1)),
        )
        assert list(image.chunks()) == [(0x8000, b"\x01"), (0x9000, b"\x02")]

    def test_empty_units_are_ignored(self):
        builder = ImageBuilder()
        builder.add(EncodedUnit(0x8000, b""))
        assert builder.units == []

    def test_overlap(self):
        with pytest.raises(OverlapError) as exc_info:
            build(
                EncodedUnit(0x8000, b"\x01\x02\x03", loc(2)),
                EncodedUnit(0x8001, b"\x04", loc(4)),
            )
        error = exc_info.value
        assert error.address == 0x8001
        assert error.end == 0x8002
        assert error.spans == (loc(2), loc(4))
        assert "$8001" in error.message

    def test_overlap_inside_long_unit(self):
        """A short unit between two others still overlaps the long one."""
        with pytest.raises(OverlapError) as exc_info:
            build(
                EncodedUnit(0x8000, bytes(16), loc(1)),
                EncodedUnit(0x8004, b"\x01", loc(2)),
                EncodedUnit(0x8008, b"\x02", loc(3)),
            )
        assert exc_info.value.spans == (loc(1), loc(2))


# =============================================================================
# Image Tests
# =============================================================================

class TestImage:
    """Test image access and output."""

    @pytest.fixture
    def image(self):
        return Image(((0x8000, b"\xA9\x05"), (0x8004, b"\x60")))

    def test_extent(self, image):
        assert image.start == 0x8000
        assert image.end == 0x8005
        assert image.size == 5
        assert len(image) == 3

    def test_to_bytes_fills_gaps(self, image):
        assert image.to_bytes() == b"\xA9\x05\x00\x00\x60"
        assert image.to_bytes(0xFF) == b"\xA9\x05\xFF\xFF\x60"

    def test_invalid_fill(self, image):
        with pytest.raises(ValueError):
            image.to_bytes(0x100)

    def test_indexing(self, image):
        assert image[0x8001] == 0x05
        assert 0x8004 in image
        assert 0x8002 not in image
        with pytest.raises(KeyError):
            image[0x8002]

    def test_hex_dump(self, image):
        assert image.hex_dump() == "$8000  A9 05\n$8004  60"

    def test_hex_dump_wraps(self):
        image = Image(((0x0200, bytes(range(5))),))
        assert image.hex_dump(width=4) == "$0200  00 01 02 03\n$0204  04"

    def test_equality(self, image):
        assert image == Image(((0x8000, b"\xA9\x05"), (0x8004, b"\x60")))
        assert image != Image()


# =============================================================================
# Report Tests
# =============================================================================

class TestSymbolReport:
    """Test report queries and text output."""

    @pytest.fixture
    def report(self):
        return SymbolReport(
            symbols=(
                SymbolEntry("COUNT", 10, "constant", loc(1)),
                SymbolEntry("START", 0x8000, "label", loc(3)),
            ),
            vectors=(VectorEntry("RESET", 0xFFFC, "START", 0x8000),),
            segments=(SegmentExtent("CODE", 0x8000, 0x8003),),
            listing=(ListingLine(0x8000, b"\xA9\x0A\x60", loc(4), "LDA #COUNT"),),
        )

    def test_symbol_lookup(self, report):
        assert report.symbol("START") == 0x8000
        assert report.symbol("MISSING") is None

    def test_to_dict(self, report):
        data = report.to_dict()
        assert data["symbols"][0] == {
            "name": "COUNT", "value": 10, "kind": "constant", "location": "prog.asm:1:1",
        }
        assert data["vectors"][0]["value"] == 0x8000
        assert data["segments"] == [{"name": "CODE", "start": 0x8000, "end": 0x8003}]

    def test_format_symbols(self, report):
        lines = report.format_symbols().splitlines()
        assert lines[0].startswith("#")
        assert "START $8000" in lines
        assert "COUNT $000A" in lines

    def test_format_listing(self, report):
        text = report.format_listing()
        assert "$8000  A9 0A 60" in text
        assert "LDA #COUNT" in text
        assert "Symbol Table" in text
