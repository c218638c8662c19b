"""
Architecture Definition Model
=============================

An architecture is described entirely by data: the addressing modes and
their surface syntax, the opcode table, the lexical rules of the source
language, and the processor flags that change operand widths. Nothing in
the assembler is specific to one CPU; the built-in 6502 family tables in
this package are ordinary instances of these classes.

Addressing Mode Templates
-------------------------
Each addressing mode carries a syntax template. ``{}`` marks an expression
slot, letters are register names, anything else is an operand marker
character declared in ``SyntaxRules``:

| Template    | Example       | Typical mode            |
|-------------|---------------|-------------------------|
| ``""``      | ``RTS``       | implied                 |
| ``"A"``     | ``ASL A``     | accumulator             |
| ``"#{}"``   | ``LDA #$12``  | immediate               |
| ``"{}"``    | ``LDA $1234`` | direct/absolute/long    |
| ``"{},X"``  | ``LDA $12,X`` | indexed                 |
| ``"({},X)"``| ``LDA ($12,X)``| indexed indirect       |
| ``"[{}],Y"``| ``LDA [$12],Y``| indirect long indexed  |
| ``"{},{}"`` | ``MVN 1,2``   | block move              |

Several modes may share a template (``{}`` is direct, absolute and long on
the 65816); the mnemonic's opcode table and the operand value choose among
them.

Width Modes
-----------
An ``InstructionEncoding`` with a ``width_flag`` takes its operand size
from the current value of that flag (8 bits -> 1 byte, 16 bits -> 2 bytes).
``ModeFlagRules`` say which instructions and directives change the flags.
On the 65816 ``SEP #$20`` selects an 8-bit accumulator and ``REP #$20`` a
16-bit one, so ``LDA #imm`` is two or three bytes long depending on what
came before it.

All classes here are frozen; an ``ArchitectureDefinition`` is validated once
at construction and can then be shared by any number of assembly runs.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Mapping, Optional
import string

from liteasm.errors import ConfigError


# =============================================================================
# Enumerations
# =============================================================================

class Endianness(Enum):
    """Byte order of multi-byte operands."""
    LITTLE = "little"
    BIG = "big"


class TransitionAction(Enum):
    """
    Effect of a mode-changing instruction on the flags it names.

    SET and CLEAR take a literal bit mask operand; every flag whose bit is
    in the mask takes its ``set_width`` or ``clear_width``. INVALIDATE makes
    every flag unknown until a MODE directive re-establishes it.
    """
    SET = "set"
    CLEAR = "clear"
    INVALIDATE = "invalidate"


# Template element used for an expression slot
SLOT = None

# Characters allowed as operand markers (the lexer emits each as one token)
MARKER_CHARACTERS = frozenset("#()[],")


def parse_template(syntax: str) -> tuple[Optional[str], ...]:
    """
    Split an addressing-mode template into elements.

    Returns a tuple in which ``SLOT`` (None) stands for an expression and
    strings are literal markers or upper-cased register names.

        >>> parse_template("({},X)")
        ('(', None, ',', 'X', ')')
    """
    elements: list[Optional[str]] = []
    i = 0
    while i < len(syntax):
        char = syntax[i]
        if syntax.startswith("{}", i):
            elements.append(SLOT)
            i += 2
        elif char in string.ascii_letters or char == "_":
            start = i
            while i < len(syntax) and (syntax[i].isalnum() or syntax[i] == "_"):
                i += 1
            elements.append(syntax[start:i].upper())
        elif char.isspace():
            i += 1
        else:
            elements.append(char)
            i += 1
    return tuple(elements)


# =============================================================================
# Addressing Modes and Encodings
# =============================================================================

@dataclass(frozen=True)
class AddressingMode:
    """
    A named operand form.

    Attributes:
        name: Mode tag used by instruction encodings (e.g. "absolute_x")
        syntax: Surface template, see module documentation
        relative: True if the operand is encoded as a displacement from
                  the address following the instruction
        reverse_operands: Emit slot values last slot first (65816 block
                          moves are written ``src,dst`` but encoded
                          ``dst src``)
    """
    name: str
    syntax: str
    relative: bool = False
    reverse_operands: bool = False

    @cached_property
    def elements(self) -> tuple[Optional[str], ...]:
        """Parsed template elements."""
        return parse_template(self.syntax)

    @property
    def slot_count(self) -> int:
        """Number of expression slots in the template."""
        return sum(1 for e in self.elements if e is SLOT)

    @property
    def literal_count(self) -> int:
        """Number of literal elements; higher means more specific."""
        return sum(1 for e in self.elements if e is not SLOT)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class InstructionEncoding:
    """
    How one mnemonic is encoded in one addressing mode.

    Attributes:
        opcode: Opcode byte
        operand_size: Operand size in bytes when not width-sensitive
        width_flag: Name of the mode flag whose width sets the operand
                    size, or None for a fixed size
    """
    opcode: int
    operand_size: int = 0
    width_flag: Optional[str] = None

    def __repr__(self) -> str:
        if self.width_flag:
            return f"InstructionEncoding(${self.opcode:02X}, width={self.width_flag})"
        return f"InstructionEncoding(${self.opcode:02X}, size={self.operand_size})"


@dataclass(frozen=True)
class InstructionDef:
    """
    A mnemonic and the addressing modes it supports.

    Attributes:
        mnemonic: Upper-case mnemonic
        encodings: Read-only mapping of mode name -> InstructionEncoding
    """
    mnemonic: str
    encodings: Mapping[str, InstructionEncoding] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "mnemonic", self.mnemonic.upper())
        object.__setattr__(self, "encodings", MappingProxyType(dict(self.encodings)))

    @property
    def mode_names(self) -> tuple[str, ...]:
        return tuple(self.encodings)


# =============================================================================
# Lexical and Syntactic Rules
# =============================================================================

DEFAULT_RADIX_PREFIXES = {"$": 16, "%": 2, "0x": 16, "0b": 2, "0o": 8}
DEFAULT_SIZE_OVERRIDES = {"<": 1, "!": 2, ">": 3}


@dataclass(frozen=True)
class SyntaxRules:
    """
    Source-language conventions of an architecture.

    Attributes:
        comment: Marker starting a comment anywhere on a line
        line_comment: Marker starting a comment only in column 1 (or None)
        label_terminator: Character ending a label definition
        directive_prefix: Prefix of directive names (".ORG")
        local_label_prefix: Prefix of labels scoped to the last global label
        radix_prefixes: Numeric literal prefixes and their radix
        immediate_marker: Operand marker for immediate values
        indirect_markers: Opening/closing markers for indirection
        long_indirect_markers: Opening/closing markers for long indirection
        index_separator: Separator between operand and index register
        size_overrides: Operand prefixes forcing an operand size in bytes
        case_sensitive: If False, symbol names are upper-cased
    """
    comment: str = ";"
    line_comment: Optional[str] = "*"
    label_terminator: str = ":"
    directive_prefix: str = "."
    local_label_prefix: str = "@"
    radix_prefixes: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_RADIX_PREFIXES)
    )
    immediate_marker: str = "#"
    indirect_markers: tuple[str, str] = ("(", ")")
    long_indirect_markers: tuple[str, str] = ("[", "]")
    index_separator: str = ","
    size_overrides: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_SIZE_OVERRIDES)
    )
    case_sensitive: bool = False

    def __post_init__(self):
        object.__setattr__(self, "radix_prefixes", MappingProxyType(dict(self.radix_prefixes)))
        object.__setattr__(self, "size_overrides", MappingProxyType(dict(self.size_overrides)))
        object.__setattr__(self, "indirect_markers", tuple(self.indirect_markers))
        object.__setattr__(self, "long_indirect_markers", tuple(self.long_indirect_markers))

        for radix in self.radix_prefixes.values():
            if radix not in (2, 8, 10, 16):
                raise ConfigError(f"unsupported radix {radix}")
        for marker in self.operand_markers:
            if marker not in MARKER_CHARACTERS:
                raise ConfigError(
                    f"operand marker '{marker}' is not one of {''.join(sorted(MARKER_CHARACTERS))}"
                )
        if len(self.label_terminator) != 1:
            raise ConfigError("label terminator must be a single character")

    @property
    def operand_markers(self) -> frozenset[str]:
        """All marker characters that may appear in mode templates."""
        return frozenset(
            (self.immediate_marker, self.index_separator)
            + self.indirect_markers
            + self.long_indirect_markers
        )

    def normalize(self, name: str) -> str:
        """Apply the symbol case rule to a name."""
        return name if self.case_sensitive else name.upper()


# =============================================================================
# Width Mode Rules
# =============================================================================

@dataclass(frozen=True)
class ModeFlag:
    """
    A processor flag that selects an operand width.

    Attributes:
        name: Flag name used by encodings and directives ("m", "x")
        bit: Bit of the flag in SEP/REP style masks
        set_width: Width in bits while the flag bit is set
        clear_width: Width in bits while the flag bit is clear
        default: Width at the start of assembly
    """
    name: str
    bit: int = 0
    set_width: int = 8
    clear_width: int = 16
    default: int = 8

    def __post_init__(self):
        for width in (self.set_width, self.clear_width, self.default):
            if width <= 0 or width % 8:
                raise ConfigError(f"flag '{self.name}': width {width} is not a whole number of bytes")

    @property
    def widths(self) -> frozenset[int]:
        return frozenset((self.set_width, self.clear_width))


@dataclass(frozen=True)
class ModeTransition:
    """An instruction that changes mode flags."""
    mnemonic: str
    action: TransitionAction

    def __post_init__(self):
        object.__setattr__(self, "mnemonic", self.mnemonic.upper())
        if not isinstance(self.action, TransitionAction):
            object.__setattr__(self, "action", TransitionAction(self.action))


@dataclass(frozen=True)
class ModeFlagRules:
    """
    Everything the mode tracker needs to know about width flags.

    Attributes:
        flags: The trackable flags
        transitions: Mode-changing instructions
        directives: Directive aliases mapped to flag assignments,
                    e.g. {"A16": {"m": 16}}
    """
    flags: tuple[ModeFlag, ...] = ()
    transitions: tuple[ModeTransition, ...] = ()
    directives: Mapping[str, Mapping[str, int]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "flags", tuple(self.flags))
        object.__setattr__(self, "transitions", tuple(self.transitions))
        object.__setattr__(
            self,
            "directives",
            MappingProxyType({
                name.upper(): MappingProxyType(dict(assignments))
                for name, assignments in self.directives.items()
            }),
        )

        names = [f.name for f in self.flags]
        if len(set(names)) != len(names):
            raise ConfigError("duplicate mode flag names")
        for alias, assignments in self.directives.items():
            for flag_name, width in assignments.items():
                flag = self.flag(flag_name)
                if flag is None:
                    raise ConfigError(f"directive {alias} names unknown flag '{flag_name}'")
                if width not in flag.widths:
                    raise ConfigError(f"directive {alias}: flag '{flag_name}' cannot be {width} bits")

    def flag(self, name: str) -> Optional[ModeFlag]:
        for f in self.flags:
            if f.name == name:
                return f
        return None

    def transition_for(self, mnemonic: str) -> Optional[ModeTransition]:
        mnemonic = mnemonic.upper()
        for t in self.transitions:
            if t.mnemonic == mnemonic:
                return t
        return None


# =============================================================================
# Architecture Definition
# =============================================================================

@dataclass(frozen=True)
class ArchitectureDefinition:
    """
    Complete, validated description of an instruction set.

    Attributes:
        name: Architecture name ("65c816")
        modes: Addressing modes in declaration order
        instructions: Instruction definitions
        syntax: Lexical and operand syntax rules
        mode_rules: Width flag rules
        endianness: Byte order of operands and data words
        address_size: Size of an ordinary address in bytes; used to pick a
                      default among same-syntax modes when the operand
                      value is not yet known, and as vector entry size
        description: Free text
    """
    name: str
    modes: tuple[AddressingMode, ...]
    instructions: tuple[InstructionDef, ...]
    syntax: SyntaxRules = field(default_factory=SyntaxRules)
    mode_rules: ModeFlagRules = field(default_factory=ModeFlagRules)
    endianness: Endianness = Endianness.LITTLE
    address_size: int = 2
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "modes", tuple(self.modes))
        object.__setattr__(self, "instructions", tuple(self.instructions))
        if not isinstance(self.endianness, Endianness):
            object.__setattr__(self, "endianness", Endianness(self.endianness))

        mode_index = {}
        for mode in self.modes:
            if mode.name in mode_index:
                raise ConfigError(f"duplicate addressing mode '{mode.name}'")
            mode_index[mode.name] = mode
        object.__setattr__(self, "_mode_index", MappingProxyType(mode_index))

        instruction_index = {}
        for inst in self.instructions:
            if inst.mnemonic in instruction_index:
                raise ConfigError(f"duplicate instruction '{inst.mnemonic}'")
            instruction_index[inst.mnemonic] = inst
        object.__setattr__(self, "_instruction_index", MappingProxyType(instruction_index))

        self._validate()

    def _validate(self) -> None:
        """Check internal consistency; raise ConfigError on the first problem."""
        if self.address_size <= 0:
            raise ConfigError("address size must be positive")

        markers = self.syntax.operand_markers
        for mode in self.modes:
            for element in mode.elements:
                if element is SLOT or element[0].isalpha() or element[0] == "_":
                    continue
                if element not in markers:
                    raise ConfigError(
                        f"mode '{mode.name}': '{element}' is not an operand marker"
                    )
            if mode.relative and mode.slot_count != 1:
                raise ConfigError(f"relative mode '{mode.name}' must have one operand slot")

        for inst in self.instructions:
            for mode_name, enc in inst.encodings.items():
                mode = self._mode_index.get(mode_name)
                where = f"{inst.mnemonic} {mode_name}"
                if mode is None:
                    raise ConfigError(f"{where}: unknown addressing mode")
                if not 0 <= enc.opcode <= 0xFF:
                    raise ConfigError(f"{where}: opcode {enc.opcode} is not a byte")
                if enc.width_flag is not None:
                    if self.mode_rules.flag(enc.width_flag) is None:
                        raise ConfigError(f"{where}: unknown width flag '{enc.width_flag}'")
                    if mode.slot_count != 1:
                        raise ConfigError(f"{where}: width-sensitive modes take one operand")
                elif mode.slot_count == 0 and enc.operand_size:
                    raise ConfigError(f"{where}: mode has no operand but size is {enc.operand_size}")
                elif mode.slot_count and (
                    enc.operand_size <= 0 or enc.operand_size % mode.slot_count
                ):
                    raise ConfigError(
                        f"{where}: operand size {enc.operand_size} does not split "
                        f"into {mode.slot_count} slot(s)"
                    )

        for transition in self.mode_rules.transitions:
            inst = self._instruction_index.get(transition.mnemonic)
            if inst is None:
                raise ConfigError(f"mode transition for unknown instruction '{transition.mnemonic}'")

    # =========================================================================
    # Lookups
    # =========================================================================

    def mode(self, name: str) -> AddressingMode:
        """Return the addressing mode called ``name`` (KeyError if unknown)."""
        return self._mode_index[name]

    def has_mnemonic(self, mnemonic: str) -> bool:
        return mnemonic.upper() in self._instruction_index

    def instruction(self, mnemonic: str) -> Optional[InstructionDef]:
        return self._instruction_index.get(mnemonic.upper())

    def encoding(self, mnemonic: str, mode: str) -> Optional[InstructionEncoding]:
        """Look up the encoding of a (mnemonic, mode) pair, or None."""
        inst = self.instruction(mnemonic)
        if inst is None:
            return None
        return inst.encodings.get(mode)

    def modes_for(self, mnemonic: str) -> tuple[str, ...]:
        """Mode names supported by ``mnemonic`` (empty if unknown)."""
        inst = self.instruction(mnemonic)
        return inst.mode_names if inst else ()

    @property
    def mnemonics(self) -> frozenset[str]:
        return frozenset(self._instruction_index)

    def __repr__(self) -> str:
        return (
            f"ArchitectureDefinition({self.name!r}, {len(self.instructions)} instructions, "
            f"{len(self.modes)} modes)"
        )
