"""
Configuration Files
===================

Converts architectures and contexts to and from plain dicts and JSON
files, the human-editable form used by ``liteasm dump-arch`` /
``dump-ctx`` and by ``--arch-file`` / ``--ctx-file``.

Numbers (opcodes, addresses, symbol values) may be written as JSON
integers or as strings with a radix prefix: ``"$8000"``, ``"0x8000"``,
``"%1010"``, ``"0b1010"``. Dumps write opcodes and addresses in ``$``
hex so that files read like assembler source.

Architecture file::

    {
      "name": "mini",
      "endianness": "little",
      "address_size": 2,
      "syntax": {"comment": ";", "label_terminator": ":"},
      "modes": [
        {"name": "implied", "syntax": ""},
        {"name": "immediate", "syntax": "#{}"}
      ],
      "mode_rules": {
        "flags": [{"name": "m", "bit": 32, "set_width": 8, "clear_width": 16}],
        "transitions": [{"mnemonic": "SEP", "action": "set"}],
        "directives": {"A16": {"m": 16}}
      },
      "instructions": {
        "LDA": {"immediate": {"opcode": "$A9", "width_flag": "m"}},
        "SEP": {"immediate": {"opcode": "$E2", "operand_size": 1}}
      }
    }

Context file::

    {
      "origin": "$8000",
      "segments": {"CODE": "$8000", "DATA": "$0200"},
      "initial_modes": {"m": 8},
      "symbols": {"SCREEN": "$0400"},
      "vectors": [{"name": "RESET", "address": "$FFFC", "handler": "START"}],
      "patches": [{"address": "$FFF0", "data": "EA EA"},
                  {"address": "$FFF4", "repeat": [255, 4]}]
    }

The context path defaults to ``./ctx.json``; the ``LITEASM_CTX_PATH``
environment variable overrides it.

Every malformed file raises ConfigError naming the offending entry.
"""

from pathlib import Path
from typing import Any, Mapping, Optional
import json
import logging
import os

from liteasm.arch.model import (
    AddressingMode,
    ArchitectureDefinition,
    Endianness,
    InstructionDef,
    InstructionEncoding,
    ModeFlag,
    ModeFlagRules,
    ModeTransition,
    SyntaxRules,
)
from liteasm.context import Context, ContextSymbol, Patch, Vector
from liteasm.errors import ConfigError

logger = logging.getLogger(__name__)

CTX_PATH_ENV = "LITEASM_CTX_PATH"
DEFAULT_CTX_FILE = "ctx.json"

_NUMBER_PREFIXES = (("$", 16), ("0x", 16), ("%", 2), ("0b", 2), ("0o", 8))
_NUMBER_STARTS = frozenset("$%-0123456789")


def default_context_path() -> Path:
    """``$LITEASM_CTX_PATH`` if set, else ``./ctx.json``."""
    return Path(os.environ.get(CTX_PATH_ENV) or DEFAULT_CTX_FILE)


# =============================================================================
# Value Helpers
# =============================================================================

def parse_number(value: Any, what: str) -> int:
    """
    Read an integer written as a JSON number or a prefixed string.

    Raises:
        ConfigError: If the value is not a number
    """
    if isinstance(value, bool):
        raise ConfigError(f"{what}: expected a number, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().replace("_", "")
        negative = text.startswith("-")
        if negative:
            text = text[1:]
        radix = 10
        for prefix, prefix_radix in _NUMBER_PREFIXES:
            if text.lower().startswith(prefix):
                text, radix = text[len(prefix):], prefix_radix
                break
        try:
            number = int(text, radix)
        except ValueError:
            raise ConfigError(f"{what}: invalid number {value!r}") from None
        return -number if negative else number
    raise ConfigError(f"{what}: expected a number, got {value!r}")


def _hex(value: int, digits: int = 4) -> str:
    return f"${value:0{digits}X}"


def _require(data: Mapping[str, Any], key: str, what: str) -> Any:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{what}: expected an object, got {type(data).__name__}")
    if key not in data:
        raise ConfigError(f"{what}: missing '{key}'")
    return data[key]


# =============================================================================
# Architecture
# =============================================================================

def architecture_to_dict(arch: ArchitectureDefinition) -> dict[str, Any]:
    """Plain-data form of an architecture, accepted by architecture_from_dict."""
    syntax = arch.syntax
    rules = arch.mode_rules
    return {
        "name": arch.name,
        "description": arch.description,
        "endianness": arch.endianness.value,
        "address_size": arch.address_size,
        "syntax": {
            "comment": syntax.comment,
            "line_comment": syntax.line_comment,
            "label_terminator": syntax.label_terminator,
            "directive_prefix": syntax.directive_prefix,
            "local_label_prefix": syntax.local_label_prefix,
            "radix_prefixes": dict(syntax.radix_prefixes),
            "immediate_marker": syntax.immediate_marker,
            "indirect_markers": list(syntax.indirect_markers),
            "long_indirect_markers": list(syntax.long_indirect_markers),
            "index_separator": syntax.index_separator,
            "size_overrides": dict(syntax.size_overrides),
            "case_sensitive": syntax.case_sensitive,
        },
        "modes": [_mode_to_dict(mode) for mode in arch.modes],
        "mode_rules": {
            "flags": [
                {
                    "name": f.name,
                    "bit": f.bit,
                    "set_width": f.set_width,
                    "clear_width": f.clear_width,
                    "default": f.default,
                }
                for f in rules.flags
            ],
            "transitions": [
                {"mnemonic": t.mnemonic, "action": t.action.value}
                for t in rules.transitions
            ],
            "directives": {
                name: dict(assignments) for name, assignments in rules.directives.items()
            },
        },
        "instructions": {
            inst.mnemonic: {
                mode: _encoding_to_dict(encoding)
                for mode, encoding in inst.encodings.items()
            }
            for inst in arch.instructions
        },
    }


def _mode_to_dict(mode: AddressingMode) -> dict[str, Any]:
    data: dict[str, Any] = {"name": mode.name, "syntax": mode.syntax}
    if mode.relative:
        data["relative"] = True
    if mode.reverse_operands:
        data["reverse_operands"] = True
    return data


def _encoding_to_dict(encoding: InstructionEncoding) -> dict[str, Any]:
    data: dict[str, Any] = {"opcode": _hex(encoding.opcode, 2)}
    if encoding.width_flag is not None:
        data["width_flag"] = encoding.width_flag
    else:
        data["operand_size"] = encoding.operand_size
    return data


def architecture_from_dict(data: Mapping[str, Any]) -> ArchitectureDefinition:
    """
    Build and validate an architecture from plain data.

    Raises:
        ConfigError: If the data is malformed or inconsistent
    """
    name = _require(data, "name", "architecture")
    try:
        syntax = _syntax_from_dict(data.get("syntax") or {})
        modes = tuple(
            AddressingMode(
                name=_require(m, "name", "mode"),
                syntax=_require(m, "syntax", f"mode {m.get('name')}"),
                relative=bool(m.get("relative", False)),
                reverse_operands=bool(m.get("reverse_operands", False)),
            )
            for m in _require(data, "modes", f"architecture {name}")
        )
        mode_rules = _mode_rules_from_dict(data.get("mode_rules") or {})
        instructions = tuple(
            InstructionDef(
                mnemonic,
                {
                    mode: _encoding_from_dict(enc, f"{mnemonic} {mode}")
                    for mode, enc in encodings.items()
                },
            )
            for mnemonic, encodings in _require(
                data, "instructions", f"architecture {name}"
            ).items()
        )
        endianness = Endianness(data.get("endianness", "little"))
        address_size = parse_number(data.get("address_size", 2), "address_size")
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigError(f"architecture {name}: {e}") from e

    arch = ArchitectureDefinition(
        name=str(name),
        modes=modes,
        instructions=instructions,
        syntax=syntax,
        mode_rules=mode_rules,
        endianness=endianness,
        address_size=address_size,
        description=str(data.get("description", "")),
    )
    logger.debug("loaded architecture %s: %d mnemonics", arch.name, len(arch.instructions))
    return arch


def _syntax_from_dict(data: Mapping[str, Any]) -> SyntaxRules:
    known = set(SyntaxRules.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"syntax: unknown setting(s) {', '.join(sorted(unknown))}")
    values = dict(data)
    for key in ("indirect_markers", "long_indirect_markers"):
        if key in values:
            values[key] = tuple(values[key])
    return SyntaxRules(**values)


def _mode_rules_from_dict(data: Mapping[str, Any]) -> ModeFlagRules:
    flags = tuple(
        ModeFlag(
            name=_require(f, "name", "flag"),
            bit=parse_number(f.get("bit", 0), f"flag {f.get('name')} bit"),
            set_width=f.get("set_width", 8),
            clear_width=f.get("clear_width", 16),
            default=f.get("default", 8),
        )
        for f in data.get("flags", ())
    )
    transitions = tuple(
        ModeTransition(
            _require(t, "mnemonic", "transition"),
            _require(t, "action", f"transition {t.get('mnemonic')}"),
        )
        for t in data.get("transitions", ())
    )
    return ModeFlagRules(flags, transitions, data.get("directives", {}))


def _encoding_from_dict(data: Mapping[str, Any], what: str) -> InstructionEncoding:
    if not isinstance(data, Mapping):
        # "LDA": {"immediate": "$A9"} is shorthand for an operand-less entry
        return InstructionEncoding(parse_number(data, what))
    return InstructionEncoding(
        opcode=parse_number(_require(data, "opcode", what), f"{what} opcode"),
        operand_size=parse_number(data.get("operand_size", 0), f"{what} operand_size"),
        width_flag=data.get("width_flag"),
    )


# =============================================================================
# Context
# =============================================================================

def context_to_dict(ctx: Context) -> dict[str, Any]:
    """Plain-data form of a context, accepted by context_from_dict."""
    patches = []
    for patch in ctx.patches:
        if patch.repeat is not None:
            patches.append({"address": _hex(patch.address), "repeat": list(patch.repeat)})
        else:
            patches.append({"address": _hex(patch.address), "data": patch.data.hex(" ").upper()})
    return {
        "origin": _hex(ctx.origin),
        "segments": {name: _hex(start) for name, start in ctx.segments.items()},
        "initial_modes": dict(ctx.initial_modes),
        "symbols": {s.name: _hex(s.value) if s.value >= 0 else s.value for s in ctx.symbols},
        "vectors": [
            {
                "name": v.name,
                "address": _hex(v.address),
                "handler": v.handler if isinstance(v.handler, str) else _hex(v.handler),
            }
            for v in ctx.vectors
        ],
        "patches": patches,
    }


def context_from_dict(data: Mapping[str, Any]) -> Context:
    """
    Build and validate a context from plain data.

    Raises:
        ConfigError: If the data is malformed
    """
    if not isinstance(data, Mapping):
        raise ConfigError(f"context: expected an object, got {type(data).__name__}")
    try:
        symbols = tuple(
            ContextSymbol(name, parse_number(value, f"symbol {name}"))
            for name, value in (data.get("symbols") or {}).items()
        )
        vectors = tuple(_vector_from_dict(v) for v in data.get("vectors") or ())
        patches = tuple(_patch_from_dict(p) for p in data.get("patches") or ())
        segments = {
            name: parse_number(start, f"segment {name}")
            for name, start in (data.get("segments") or {}).items()
        }
        initial_modes = {
            flag: parse_number(width, f"initial mode {flag}")
            for flag, width in (data.get("initial_modes") or {}).items()
        }
        origin = parse_number(data.get("origin", 0), "origin")
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigError(f"context: {e}") from e

    return Context(
        symbols=symbols,
        vectors=vectors,
        patches=patches,
        origin=origin,
        segments=segments,
        initial_modes=initial_modes,
    )


def _vector_from_dict(data: Mapping[str, Any]) -> Vector:
    name = _require(data, "name", "vector")
    handler = _require(data, "handler", f"vector {name}")
    # A handler string is a symbol name unless it starts like a number
    if not isinstance(handler, str) or handler.strip()[:1] in _NUMBER_STARTS:
        handler = parse_number(handler, f"vector {name} handler")
    return Vector(
        name=name,
        address=parse_number(_require(data, "address", f"vector {name}"), f"vector {name} address"),
        handler=handler,
    )


def _patch_from_dict(data: Mapping[str, Any]) -> Patch:
    address = parse_number(_require(data, "address", "patch"), "patch address")
    what = f"patch at {_hex(address)}"
    if "repeat" in data:
        byte, count = data["repeat"]
        return Patch(
            address,
            repeat=(parse_number(byte, f"{what} byte"), parse_number(count, f"{what} count")),
        )
    text = _require(data, "data", what)
    try:
        content = bytes.fromhex(text)
    except (TypeError, ValueError):
        raise ConfigError(f"{what}: data must be hex bytes, got {text!r}") from None
    return Patch(address, data=content)


# =============================================================================
# Files
# =============================================================================

def _read_json(path: str | Path, what: str) -> Any:
    path = Path(path)
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise ConfigError(f"{what} file not found: {path}") from None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}:{e.lineno}:{e.colno}: invalid JSON: {e.msg}") from None


def load_architecture(path: str | Path) -> ArchitectureDefinition:
    """Read an architecture file."""
    return architecture_from_dict(_read_json(path, "architecture"))


def load_context(path: Optional[str | Path] = None, missing_ok: bool = False) -> Context:
    """
    Read a context file.

    Args:
        path: File to read; defaults to default_context_path()
        missing_ok: Return an empty Context if the file does not exist
    """
    path = Path(path) if path is not None else default_context_path()
    if missing_ok and not path.exists():
        logger.debug("no context file at %s; using an empty context", path)
        return Context()
    return context_from_dict(_read_json(path, "context"))


def dump_architecture(arch: ArchitectureDefinition) -> str:
    """JSON text of an architecture."""
    return json.dumps(architecture_to_dict(arch), indent=2) + "\n"


def dump_context(ctx: Context) -> str:
    """JSON text of a context."""
    return json.dumps(context_to_dict(ctx), indent=2) + "\n"


def save_context(ctx: Context, path: Optional[str | Path] = None) -> Path:
    """Write a context file and return its path."""
    path = Path(path) if path is not None else default_context_path()
    path.write_text(dump_context(ctx))
    logger.info("saved context to %s", path)
    return path
