"""
Instruction Encoder
===================

Turns (mnemonic, addressing mode, mode state, operand values) into bytes,
using nothing but the architecture's tables.

Pass 1 only needs sizes, so ``length`` works without operand values.
Pass 2 calls ``encode`` with the resolved values.

Operand Fields
--------------
A field of n bytes accepts any value from the signed minimum
-2**(8n-1) to the unsigned maximum 2**(8n)-1; negative values are stored
in two's complement. Anything outside that range raises
OperandOverflowError. Relative fields hold ``target - next_address`` and
must fit the signed range, otherwise BranchRangeError is raised.

Width-sensitive encodings take their operand size from the mode state
(an 8-bit flag gives a 1-byte operand, a 16-bit flag a 2-byte operand).
"""

from typing import Optional
import logging

from liteasm.arch.model import ArchitectureDefinition, Endianness, InstructionEncoding
from liteasm.errors import (
    BranchRangeError,
    EncodingError,
    InternalConsistencyError,
    ModeAmbiguityError,
    OperandOverflowError,
    SourceLocation,
)
from liteasm.assembler.modes import ModeState

logger = logging.getLogger(__name__)


def field_range(size: int) -> tuple[int, int]:
    """(minimum, maximum) value accepted by a field of ``size`` bytes."""
    bits = 8 * size
    return -(1 << (bits - 1)), (1 << bits) - 1


class Encoder:
    """
    Table-driven instruction encoder.

    Usage:
        encoder = Encoder(arch)
        size = encoder.length("LDA", "immediate", state)
        data = encoder.encode("LDA", "immediate", state, [0x05], address=0x8000)
    """

    def __init__(self, arch: ArchitectureDefinition):
        self.arch = arch
        self.byteorder = "big" if arch.endianness == Endianness.BIG else "little"

    def encoding_for(
        self,
        mnemonic: str,
        mode: str,
        location: Optional[SourceLocation] = None,
    ) -> InstructionEncoding:
        """
        Look up the table entry for a (mnemonic, mode) pair.

        Raises:
            EncodingError: If the architecture has no such entry
        """
        encoding = self.arch.encoding(mnemonic, mode)
        if encoding is None:
            raise EncodingError(mnemonic, mode, location)
        return encoding

    def operand_width(
        self,
        mnemonic: str,
        mode: str,
        state: ModeState,
        location: Optional[SourceLocation] = None,
    ) -> int:
        """
        Operand size in bytes under ``state``.

        Raises:
            EncodingError: Unknown (mnemonic, mode)
            ModeAmbiguityError: The governing width flag is unknown
        """
        encoding = self.encoding_for(mnemonic, mode, location)
        if encoding.width_flag is None:
            return encoding.operand_size

        width = state.width(encoding.width_flag)
        if width is None:
            raise ModeAmbiguityError(
                f"{mnemonic} {mode}: width of flag '{encoding.width_flag}' is unknown here",
                location,
                flag=encoding.width_flag,
                hint=f"restate it with .MODE {encoding.width_flag}, <width>",
            )
        return width // 8

    def length(
        self,
        mnemonic: str,
        mode: str,
        state: ModeState,
        location: Optional[SourceLocation] = None,
    ) -> int:
        """Total instruction length in bytes (opcode + operand)."""
        return 1 + self.operand_width(mnemonic, mode, state, location)

    def encode(
        self,
        mnemonic: str,
        mode: str,
        state: ModeState,
        values: list[int],
        address: int,
        location: Optional[SourceLocation] = None,
    ) -> bytes:
        """
        Encode a complete instruction.

        Args:
            mnemonic: Upper-case mnemonic
            mode: Addressing mode name
            state: Mode state in force at the instruction
            values: One resolved value per template slot
            address: Address of the opcode byte
            location: Source location for errors

        Raises:
            EncodingError: Unknown (mnemonic, mode)
            OperandOverflowError: A value does not fit its field
            BranchRangeError: A relative target is out of range
        """
        encoding = self.encoding_for(mnemonic, mode, location)
        addressing_mode = self.arch.mode(mode)
        size = self.operand_width(mnemonic, mode, state, location)

        if len(values) != addressing_mode.slot_count:
            raise InternalConsistencyError(
                f"{mnemonic} {mode} expects {addressing_mode.slot_count} operand(s), "
                f"got {len(values)}",
                location,
            )

        data = bytearray([encoding.opcode])
        if not values:
            return bytes(data)

        if addressing_mode.relative:
            offset = values[0] - (address + 1 + size)
            low, _ = field_range(size)
            limit = -low - 1
            if not -limit - 1 <= offset <= limit:
                raise BranchRangeError(mode, offset, limit, location)
            data += self.pack(offset, size, mode, location)
            return bytes(data)

        slot_size = size // len(values)
        ordered = list(reversed(values)) if addressing_mode.reverse_operands else values
        for value in ordered:
            data += self.pack(value, slot_size, mode, location)
        return bytes(data)

    def pack(
        self,
        value: int,
        size: int,
        what: str,
        location: Optional[SourceLocation] = None,
    ) -> bytes:
        """
        Store ``value`` in ``size`` bytes with the architecture's byte order.

        Raises:
            OperandOverflowError: If the value does not fit
        """
        low, high = field_range(size)
        if not low <= value <= high:
            raise OperandOverflowError(what, value, high, location)
        return (value & high).to_bytes(size, self.byteorder)

    def fits(
        self,
        mnemonic: str,
        mode: str,
        state: ModeState,
        values: list[int],
        address: int,
    ) -> bool:
        """True if ``encode`` would accept these values."""
        try:
            self.encode(mnemonic, mode, state, values, address)
        except OperandOverflowError:
            return False
        return True
