# =============================================================================
# test_encoder.py - Instruction Encoder Tests
# =============================================================================
# Tests for table-driven encoding.
#
# Test coverage includes:
#   - Opcode and operand bytes per addressing mode
#   - Width-sensitive operand sizes
#   - Field range checks (no silent truncation)
#   - Relative offsets and branch range
#   - Block move operand order, big-endian architectures
# =============================================================================

import pytest
from liteasm.arch import get_builtin
from liteasm.arch.model import (
    AddressingMode,
    ArchitectureDefinition,
    Endianness,
    InstructionDef,
    InstructionEncoding,
)
from liteasm.assembler.encoder import Encoder, field_range
from liteasm.assembler.modes import ModeState
from liteasm.errors import (
    BranchRangeError,
    EncodingError,
    InternalConsistencyError,
    ModeAmbiguityError,
    OperandOverflowError,
)


NO_FLAGS = ModeState()
M8 = ModeState((("m", 8), ("x", 8)))
M16 = ModeState((("m", 16), ("x", 16)))


@pytest.fixture
def enc6502():
    return Encoder(get_builtin("6502"))


@pytest.fixture
def enc816():
    return Encoder(get_builtin("65c816"))


# =============================================================================
# Field Range Tests
# =============================================================================

class TestFieldRange:
    """Test the accepted range of an n-byte field."""

    @pytest.mark.parametrize("size,expected", [
        (1, (-128, 255)),
        (2, (-32768, 65535)),
        (3, (-(1 << 23), (1 << 24) - 1)),
    ])
    def test_field_range(self, size, expected):
        assert field_range(size) == expected


# =============================================================================
# Encoding Tests
# =============================================================================

class TestEncode:
    """Test complete instruction encodings."""

    @pytest.mark.parametrize("mnemonic,mode,values,expected", [
        ("RTS", "implied", [], "60"),
        ("ASL", "accumulator", [], "0A"),
        ("LDA", "immediate", [0x41], "A9 41"),
        ("LDA", "direct", [0x80], "A5 80"),
        ("LDA", "absolute", [0x1234], "AD 34 12"),
        ("LDA", "indirect_y", [0x80], "B1 80"),
        ("JMP", "indirect", [0xFFFC], "6C FC FF"),
        ("STA", "absolute_x", [0x0400], "9D 00 04"),
    ])
    def test_6502(self, enc6502, mnemonic, mode, values, expected):
        data = enc6502.encode(mnemonic, mode, NO_FLAGS, values, address=0x8000)
        assert data == bytes.fromhex(expected)

    def test_negative_value_twos_complement(self, enc6502):
        assert enc6502.encode("LDA", "immediate", NO_FLAGS, [-1], 0) == b"\xA9\xFF"

    def test_long_mode(self, enc816):
        data = enc816.encode("JML", "long", M8, [0x123456], 0)
        assert data == bytes.fromhex("5C 56 34 12")

    def test_block_move_reversed(self, enc816):
        """MVN src,dst stores the destination bank first."""
        data = enc816.encode("MVN", "block_move", M8, [0x01, 0x02], 0)
        assert data == bytes.fromhex("54 02 01")

    def test_slot_count_mismatch(self, enc6502):
        with pytest.raises(InternalConsistencyError):
            enc6502.encode("LDA", "immediate", NO_FLAGS, [], 0)

    def test_unknown_combination(self, enc6502):
        with pytest.raises(EncodingError) as exc_info:
            enc6502.encode("STA", "immediate", NO_FLAGS, [1], 0)
        assert exc_info.value.is_internal
        assert exc_info.value.mnemonic == "STA"


# =============================================================================
# Width Tests
# =============================================================================

class TestWidths:
    """Test width-sensitive immediates."""

    def test_eight_bit_accumulator(self, enc816):
        assert enc816.length("LDA", "immediate", M8) == 2
        assert enc816.encode("LDA", "immediate", M8, [0x05], 0) == b"\xA9\x05"

    def test_sixteen_bit_accumulator(self, enc816):
        assert enc816.length("LDA", "immediate", M16) == 3
        assert enc816.encode("LDA", "immediate", M16, [0x0600], 0) == b"\xA9\x00\x06"

    def test_index_flag(self, enc816):
        state = ModeState((("m", 8), ("x", 16)))
        assert enc816.length("LDX", "immediate", state) == 3
        assert enc816.length("LDA", "immediate", state) == 2

    def test_fixed_size_ignores_flags(self, enc816):
        assert enc816.length("SEP", "immediate", M16) == 2

    def test_unknown_width(self, enc816):
        state = ModeState((("m", None), ("x", 8)))
        with pytest.raises(ModeAmbiguityError) as exc_info:
            enc816.length("LDA", "immediate", state)
        assert exc_info.value.flag == "m"

    def test_unknown_width_irrelevant(self, enc816):
        """An unknown flag only matters to instructions that depend on it."""
        state = ModeState((("m", None), ("x", None)))
        assert enc816.length("LDA", "absolute", state) == 3


# =============================================================================
# Overflow Tests
# =============================================================================

class TestOverflow:
    """Values are never truncated."""

    def test_byte_overflow(self, enc6502):
        with pytest.raises(OperandOverflowError) as exc_info:
            enc6502.encode("LDA", "immediate", NO_FLAGS, [0x100], 0)
        assert exc_info.value.value == 0x100
        assert exc_info.value.max == 0xFF

    def test_eight_bit_mode_overflow(self, enc816):
        with pytest.raises(OperandOverflowError):
            enc816.encode("LDA", "immediate", M8, [0x100], 0)

    def test_sixteen_bit_mode_fits(self, enc816):
        assert enc816.encode("LDA", "immediate", M16, [0x100], 0) == b"\xA9\x00\x01"

    def test_negative_underflow(self, enc6502):
        with pytest.raises(OperandOverflowError):
            enc6502.encode("LDA", "immediate", NO_FLAGS, [-129], 0)

    def test_fits(self, enc6502):
        assert enc6502.fits("LDA", "direct", NO_FLAGS, [0xFF], 0)
        assert not enc6502.fits("LDA", "direct", NO_FLAGS, [0x100], 0)

    def test_pack(self, enc6502):
        assert enc6502.pack(0x1234, 2, "WORD") == b"\x34\x12"
        with pytest.raises(OperandOverflowError):
            enc6502.pack(0x10000, 2, "WORD")


# =============================================================================
# Relative Branch Tests
# =============================================================================

class TestRelative:
    """Test relative offsets from the following instruction."""

    def test_forward(self, enc6502):
        # BNE at $8000 is two bytes; target $8010 is 14 ahead of $8002
        assert enc6502.encode("BNE", "relative", NO_FLAGS, [0x8010], 0x8000) == b"\xD0\x0E"

    def test_backward(self, enc6502):
        assert enc6502.encode("BNE", "relative", NO_FLAGS, [0x8000], 0x8000) == b"\xD0\xFE"

    @pytest.mark.parametrize("target,offset", [(0x8002 + 127, 127), (0x8002 - 128, -128)])
    def test_range_limits(self, enc6502, target, offset):
        data = enc6502.encode("BEQ", "relative", NO_FLAGS, [target], 0x8000)
        assert data[1] == offset & 0xFF

    @pytest.mark.parametrize("target", [0x8002 + 128, 0x8002 - 129])
    def test_out_of_range(self, enc6502, target):
        with pytest.raises(BranchRangeError) as exc_info:
            enc6502.encode("BEQ", "relative", NO_FLAGS, [target], 0x8000)
        assert exc_info.value.offset == target - 0x8002

    def test_branch_range_is_overflow(self):
        assert issubclass(BranchRangeError, OperandOverflowError)

    def test_relative_long(self, enc816):
        # BRL at $8000 is three bytes; $9003 is $1000 ahead of $8003
        assert enc816.encode("BRL", "relative_long", M8, [0x9003], 0x8000) == b"\x82\x00\x10"


# =============================================================================
# Byte Order Tests
# =============================================================================

class TestByteOrder:
    """Test a big-endian architecture."""

    def test_big_endian(self):
        arch = ArchitectureDefinition(
            name="be",
            modes=(AddressingMode("absolute", "{}"),),
            instructions=(
                InstructionDef("JMP", {"absolute": InstructionEncoding(0x7E, 2)}),
            ),
            endianness=Endianness.BIG,
        )
        assert Encoder(arch).encode("JMP", "absolute", NO_FLAGS, [0x1234], 0) == b"\x7E\x12\x34"
