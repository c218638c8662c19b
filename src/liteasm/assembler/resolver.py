"""
Two-Pass Resolver
=================

Turns parsed statements into encoded units and a symbol report.

Pass 1 (planning)
-----------------
Walks the statements in order with a program counter per segment and the
mode state of the ModeTracker:

- labels are defined at the current address
- instructions get their addressing mode chosen and their length computed
  from the mode state; operand values are not needed yet
- data directives advance the counter by their size
- ``.ORG``, ``.RES`` and ``.ALIGN`` need values known at this point
- equates are defined immediately when their value is known, otherwise
  declared and resolved after the pass

Every statement is recorded as a PlannedStatement holding its address,
segment, label scope, mode state and, for instructions, the chosen mode
and length.

Equates
-------
Declared equates are resolved by repeated evaluation until no more
progress is made. Whatever is left refers to an undefined symbol or to
itself through a cycle; both are reported as UndefinedSymbolError. The
symbol table is frozen afterwards.

Pass 2 (encoding)
-----------------
Replays the same ModeTracker fold over the plan and checks it agrees with
the states recorded in pass 1. Operands are evaluated against the frozen
table and encoded; the emitted length must equal the planned length and
every label must sit at the address its bytes start at. A disagreement
is an InternalConsistencyError, never a silent shift.

Mode Selection
--------------
When several addressing modes share the operand's template (direct,
absolute and long all read ``{}``), pass 1 picks one:

1. operand value known: the narrowest mode whose field holds the value
2. otherwise: the mode whose operand is ``address_size`` bytes wide
3. otherwise: the widest mode

The choice is stored in the plan; pass 2 never re-decides it.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from liteasm.arch.model import ArchitectureDefinition
from liteasm.context import DEFAULT_SEGMENT, Context
from liteasm.errors import (
    AssemblyError,
    DirectiveError,
    ErrorCollector,
    InternalConsistencyError,
    MultipleErrors,
    SourceLocation,
    UndefinedSymbolError,
)
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
from liteasm.assembler.lexer import NAME_TOKENS, Token, TokenType
from liteasm.assembler.modes import ModeState, ModeTracker
from liteasm.assembler.parser import Directive, Instruction, LabelDef, Statement
from liteasm.assembler.symbols import CONTEXT_LOCATION, SymbolKind, SymbolTable

logger = logging.getLogger(__name__)


# Bytes per value of each data directive
DATA_SIZES = {
    "BYTE": 1,
    "TEXT": 1,
    "WORD": 2,
    "LONG": 3,
    "DWORD": 4,
}

# Data directives that expand a string argument into one byte per character
STRING_DIRECTIVES = ("BYTE", "TEXT")


@dataclass
class PlannedStatement:
    """
    A statement as placed by pass 1.

    Attributes:
        statement: The parsed statement
        address: Program counter when the statement is reached
        segment: Active segment
        state: Mode state in force before the statement
        scope: Global label that local names resolve against
        mode: Chosen addressing mode (instructions only)
        size: Bytes the statement occupies
    """
    statement: Statement
    address: int
    segment: str
    state: ModeState
    scope: Optional[str] = None
    mode: Optional[str] = None
    size: int = 0


@dataclass
class _DeferredEquate:
    name: str
    tokens: list[Token]
    address: int
    scope: Optional[str]
    location: SourceLocation


class Resolver:
    """
    Runs both passes for one program.

    A Resolver holds the state of a single run; create a new one for each
    assembly.

    Usage:
        resolver = Resolver(arch, context, source_lines)
        image, report = resolver.run(statements)

    With ``collect_errors=True`` the errors of every statement in a pass
    are gathered and raised together at the end of the pass; pass 2 is
    never started after a failing pass 1.
    """

    def __init__(
        self,
        arch: ArchitectureDefinition,
        context: Optional[Context] = None,
        source_lines: Optional[list[str]] = None,
        collect_errors: bool = False,
        max_errors: int = 100,
    ):
        self.arch = arch
        self.context = context or Context()
        self.collect_errors = collect_errors
        self.encoder = Encoder(arch)
        self.tracker = ModeTracker(arch, self.context.initial_modes)
        self.symbols = SymbolTable(arch.syntax)
        self.evaluator = ExpressionEvaluator(self.symbols)
        self.errors = ErrorCollector(max_errors)
        self.plan: list[PlannedStatement] = []

        self._source_lines = source_lines or []
        self._pcs: dict[str, int] = dict(self.context.segments)
        self._segment = DEFAULT_SEGMENT
        self._scope: Optional[str] = None
        self._deferred: list[_DeferredEquate] = []
        self._ended = False

    def run(self, statements: list[Statement]) -> tuple[Image, SymbolReport]:
        """
        Assemble parsed statements.

        Raises:
            AssemblyError: The first error, or MultipleErrors when collecting
        """
        self.pass1(statements)
        self.resolve_equates()
        units = self.pass2()
        units.extend(self._context_units())

        builder = ImageBuilder()
        for unit in units:
            builder.add(unit)
        try:
            image = builder.build()
        except AssemblyError as e:
            self._attach_source(e)
            raise

        report = SymbolReport(
            symbols=self._symbol_entries(),
            vectors=self._vector_entries(),
            segments=self._segment_extents(),
            listing=tuple(self._listing(units)),
        )
        logger.info(
            "assembled %d byte(s) in %d chunk(s), %d symbol(s)",
            len(image), len(list(image.chunks())), len(report.symbols),
        )
        return image, report

    # =========================================================================
    # Pass 1
    # =========================================================================

    def pass1(self, statements: list[Statement]) -> list[PlannedStatement]:
        """Place every statement and collect symbol definitions."""
        try:
            self.symbols.seed(self.context)
        except AssemblyError as e:
            self._report(e)

        state = self.tracker.initial_state()
        for stmt in statements:
            if self._ended:
                logger.debug("%s: ignored after END", stmt.location)
                continue
            try:
                self.plan.append(self._plan(stmt, state))
                state = self.tracker.step(state, stmt)
            except AssemblyError as e:
                self._report(e)

        self._raise_collected()
        logger.debug(
            "pass 1: %d statement(s), %d symbol(s), %d deferred equate(s)",
            len(self.plan), len(self.symbols), len(self._deferred),
        )
        return self.plan

    def _plan(self, stmt: Statement, state: ModeState) -> PlannedStatement:
        if isinstance(stmt, LabelDef):
            self._define_label(stmt)

        address = self._pcs[self._segment]
        planned = PlannedStatement(stmt, address, self._segment, state, self._scope)

        if isinstance(stmt, Instruction):
            planned.mode = self._choose_mode(stmt, state, address)
            planned.size = self.encoder.length(
                stmt.mnemonic, planned.mode, state, stmt.location
            )
        elif isinstance(stmt, Directive):
            planned.size = self._plan_directive(stmt, address)
            # ORG and SEGMENT move the counter instead of advancing it
            if stmt.name in ("ORG", "SEGMENT"):
                return planned

        self._pcs[self._segment] = address + planned.size
        return planned

    def _define_label(self, label: LabelDef) -> None:
        name = self._qualify(label.name, label.location)
        if not label.is_local:
            self._scope = name
        self.symbols.define(
            name,
            self._pcs[self._segment],
            SymbolKind.LABEL,
            label.location,
            segment=self._segment,
        )

    def _qualify(self, name: str, location: SourceLocation) -> str:
        """Table name for a label or equate defined at ``location``."""
        if self.symbols.is_local(name) and self._scope is None:
            raise AssemblyError(
                f"local label '{name}' has no enclosing global label",
                location,
                hint="define a global label before the first local one",
            )
        return self.symbols.qualify(name, self._scope)

    def _choose_mode(self, stmt: Instruction, state: ModeState, address: int) -> str:
        """Pick one of the parser's candidate modes (see module docstring)."""
        if len(stmt.candidates) == 1:
            return stmt.candidates[0]

        def width(mode: str) -> int:
            return self.encoder.operand_width(stmt.mnemonic, mode, state, stmt.location)

        ordered = sorted(stmt.candidates, key=width)
        values = [
            self.evaluator.try_evaluate(tokens, address, self._scope, stmt.location)
            for tokens in stmt.operands
        ]

        if all(v is not None for v in values):
            for mode in ordered:
                if self.encoder.fits(stmt.mnemonic, mode, state, values, address):
                    return mode
            # Pass 2 reports the overflow
            return ordered[-1]

        for mode in ordered:
            if width(mode) == self.arch.address_size:
                return mode
        return ordered[-1]

    def _plan_directive(self, stmt: Directive, address: int) -> int:
        """Apply a directive's pass 1 effect and return its size."""
        name = stmt.name
        args = stmt.arguments

        if name == "ORG":
            self._expect_arguments(stmt, 1, 1)
            origin = self._known_value(stmt, args[0], address)
            if origin < 0:
                raise DirectiveError(f"negative origin {origin}", stmt.location)
            self._pcs[self._segment] = origin
            return 0

        if name == "SEGMENT":
            self._expect_arguments(stmt, 1, 1)
            tokens = args[0]
            if len(tokens) != 1 or tokens[0].type not in NAME_TOKENS:
                raise DirectiveError("SEGMENT expects a segment name", stmt.location)
            segment = str(tokens[0].value).upper()
            if segment not in self._pcs:
                raise DirectiveError(
                    f"unknown segment '{tokens[0].value}'",
                    tokens[0].location,
                    hint=f"segments of this context: {', '.join(sorted(self._pcs))}",
                )
            self._segment = segment
            return 0

        if name in DATA_SIZES:
            if not args:
                raise DirectiveError(f"{name} needs at least one value", stmt.location)
            return sum(
                len(self._string_bytes(name, arg)) if self._is_string(name, arg)
                else DATA_SIZES[name]
                for arg in args
            )

        if name == "RES":
            self._expect_arguments(stmt, 1, 2)
            count = self._known_value(stmt, args[0], address)
            if count < 0:
                raise DirectiveError(f"RES with negative count {count}", stmt.location)
            return count

        if name == "ALIGN":
            self._expect_arguments(stmt, 1, 2)
            boundary = self._known_value(stmt, args[0], address)
            if boundary <= 0:
                raise DirectiveError(
                    f"ALIGN boundary must be positive, got {boundary}", stmt.location
                )
            return -address % boundary

        if name == "EQU":
            self._plan_equate(stmt, address)
            return 0

        if name == "END":
            self._ended = True
        return 0

    def _plan_equate(self, stmt: Directive, address: int) -> None:
        name = self._qualify(stmt.label, stmt.location)
        tokens = stmt.arguments[0]
        value = self.evaluator.try_evaluate(tokens, address, self._scope, stmt.location)
        self.symbols.define(name, value, SymbolKind.CONSTANT, stmt.location)
        if value is None:
            self._deferred.append(
                _DeferredEquate(name, tokens, address, self._scope, stmt.location)
            )

    def _expect_arguments(self, stmt: Directive, least: int, most: int) -> None:
        count = len(stmt.arguments)
        if not least <= count <= most:
            expected = str(least) if least == most else f"{least} to {most}"
            raise DirectiveError(
                f"{stmt.name} expects {expected} argument(s), got {count}",
                stmt.location,
            )

    def _known_value(self, stmt: Directive, tokens: list[Token], address: int) -> int:
        value = self.evaluator.try_evaluate(tokens, address, self._scope, stmt.location)
        if value is None:
            raise DirectiveError(
                f"{stmt.name} value must be known when the line is reached",
                stmt.location,
                hint="define the symbols it uses earlier in the source",
            )
        return value

    @staticmethod
    def _is_string(name: str, tokens: list[Token]) -> bool:
        return (
            name in STRING_DIRECTIVES
            and len(tokens) == 1
            and tokens[0].type == TokenType.STRING
        )

    @staticmethod
    def _string_bytes(name: str, tokens: list[Token]) -> bytes:
        text = tokens[0].value
        try:
            return text.encode("ascii")
        except UnicodeEncodeError:
            raise DirectiveError(
                f"{name} string contains non-ASCII characters",
                tokens[0].location,
            ) from None

    # =========================================================================
    # Equates
    # =========================================================================

    def resolve_equates(self) -> None:
        """
        Resolve deferred equates, then freeze the symbol table.

        Raises:
            UndefinedSymbolError: For equates that cannot be resolved
        """
        pending = self._deferred
        while pending:
            remaining = []
            for equate in pending:
                value = self.evaluator.try_evaluate(
                    equate.tokens, equate.address, equate.scope, equate.location
                )
                if value is None:
                    remaining.append(equate)
                else:
                    self.symbols.resolve(equate.name, value)
            if len(remaining) == len(pending):
                break
            pending = remaining

        for equate in pending:
            self._report(self._unresolved_equate(equate))

        self._raise_collected()
        self.symbols.freeze()

    def _unresolved_equate(self, equate: _DeferredEquate) -> UndefinedSymbolError:
        for name in self.evaluator.references(equate.tokens, equate.scope):
            if self.symbols.lookup(name) is not None:
                continue
            if name in self.symbols:
                return UndefinedSymbolError(
                    name,
                    location=equate.location,
                    hint=f"circular equate: '{equate.name}' depends on '{name}', "
                         f"which never gets a value",
                )
            return UndefinedSymbolError(
                name,
                location=equate.location,
                similar_symbols=self.symbols.similar(name),
            )
        raise InternalConsistencyError(
            f"equate '{equate.name}' is unresolved but all its symbols have values",
            equate.location,
        )

    # =========================================================================
    # Pass 2
    # =========================================================================

    def pass2(self) -> list[EncodedUnit]:
        """Encode the plan into units, in program order."""
        if not self.symbols.frozen:
            raise InternalConsistencyError("pass 2 started before the symbol table was frozen")

        units = []
        replay = self.tracker.fold(p.statement for p in self.plan)
        for planned, (stmt, state) in zip(self.plan, replay):
            try:
                if state != planned.state:
                    raise InternalConsistencyError(
                        f"mode state differs between passes ({planned.state} / {state})",
                        stmt.location,
                    )
                data = self._emit(planned)
                if data is not None:
                    units.append(EncodedUnit(planned.address, data, stmt.location))
            except AssemblyError as e:
                self._report(e)

        self._raise_collected()
        logger.debug("pass 2: %d unit(s)", len(units))
        return units

    def _emit(self, planned: PlannedStatement) -> Optional[bytes]:
        stmt = planned.statement

        if isinstance(stmt, LabelDef):
            name = self.symbols.qualify(stmt.name, planned.scope)
            if self.symbols.lookup(name) != planned.address:
                raise InternalConsistencyError(
                    f"label '{name}' moved between passes", stmt.location
                )
            return None

        if isinstance(stmt, Instruction):
            values = [
                self.evaluator.evaluate(tokens, planned.address, planned.scope, stmt.location)
                for tokens in stmt.operands
            ]
            data = self.encoder.encode(
                stmt.mnemonic, planned.mode, planned.state, values,
                planned.address, stmt.location,
            )
        elif isinstance(stmt, Directive):
            data = self._emit_directive(stmt, planned)
            if data is None:
                return None
        else:
            raise InternalConsistencyError(
                f"unexpected statement {type(stmt).__name__}", stmt.location
            )

        if len(data) != planned.size:
            raise InternalConsistencyError(
                f"statement planned as {planned.size} byte(s) encoded as {len(data)}",
                stmt.location,
            )
        return data

    def _emit_directive(self, stmt: Directive, planned: PlannedStatement) -> Optional[bytes]:
        name = stmt.name

        if name in DATA_SIZES:
            data = bytearray()
            for arg in stmt.arguments:
                if self._is_string(name, arg):
                    data += self._string_bytes(name, arg)
                    continue
                value = self.evaluator.evaluate(
                    arg, planned.address, planned.scope, stmt.location
                )
                data += self.encoder.pack(value, DATA_SIZES[name], name, arg[0].location)
            return bytes(data)

        if name in ("RES", "ALIGN"):
            if len(stmt.arguments) < 2:
                return None
            fill = self.evaluator.evaluate(
                stmt.arguments[1], planned.address, planned.scope, stmt.location
            )
            return self.encoder.pack(fill, 1, f"{name} fill", stmt.location) * planned.size

        return None

    # =========================================================================
    # Context Output
    # =========================================================================

    def _vector_value(self, handler: str | int, vector_name: str) -> int:
        if isinstance(handler, int):
            return handler
        name = self.symbols.qualify(handler)
        value = self.symbols.lookup(name)
        if value is None:
            raise UndefinedSymbolError(
                name,
                location=CONTEXT_LOCATION,
                hint=f"handler of vector {vector_name}",
                similar_symbols=self.symbols.similar(name),
            )
        return value

    def _context_units(self) -> list[EncodedUnit]:
        """Vector table words and patches."""
        units = []
        for vector in self.context.vectors:
            try:
                value = self._vector_value(vector.handler, vector.name)
                data = self.encoder.pack(
                    value, self.arch.address_size, f"vector {vector.name}", CONTEXT_LOCATION
                )
                units.append(EncodedUnit(vector.address, data, CONTEXT_LOCATION))
            except AssemblyError as e:
                self._report(e)

        for patch in self.context.patches:
            units.append(EncodedUnit(patch.address, patch.content, CONTEXT_LOCATION))

        self._raise_collected()
        return units

    # =========================================================================
    # Report
    # =========================================================================

    def _symbol_entries(self) -> tuple[SymbolEntry, ...]:
        return tuple(
            SymbolEntry(s.name, s.value, s.kind.name.lower(), s.location)
            for s in sorted(self.symbols, key=lambda s: s.name)
        )

    def _vector_entries(self) -> tuple[VectorEntry, ...]:
        return tuple(
            VectorEntry(v.name, v.address, v.handler, self._vector_value(v.handler, v.name))
            for v in self.context.vectors
        )

    def _segment_extents(self) -> tuple[SegmentExtent, ...]:
        extents: dict[str, tuple[int, int]] = {}
        for planned in self.plan:
            if planned.size == 0:
                continue
            end = planned.address + planned.size
            start, last = extents.get(planned.segment, (planned.address, end))
            extents[planned.segment] = (min(start, planned.address), max(last, end))
        return tuple(
            SegmentExtent(name, start, end)
            for name, (start, end) in sorted(extents.items(), key=lambda item: item[1])
        )

    def _listing(self, units: list[EncodedUnit]):
        for unit in units:
            yield ListingLine(unit.address, unit.data, unit.location, self._line_text(unit.location))

    # =========================================================================
    # Errors
    # =========================================================================

    def _line_text(self, location: Optional[SourceLocation]) -> str:
        if location is None or not 0 < location.line <= len(self._source_lines):
            return ""
        if location.filename == CONTEXT_LOCATION.filename:
            return ""
        return self._source_lines[location.line - 1].strip()

    def _attach_source(self, error: AssemblyError) -> None:
        if isinstance(error, MultipleErrors) or error.location is None:
            return
        text = self._line_text(error.location)
        if text:
            error.attach_source(self._source_lines[error.location.line - 1])

    def _report(self, error: AssemblyError) -> None:
        """Raise ``error``, or collect it in collect-all mode."""
        self._attach_source(error)
        if not self.collect_errors:
            raise error
        self.errors.add(error)

    def _raise_collected(self) -> None:
        if self.errors.has_errors():
            raise self.errors.to_exception()
