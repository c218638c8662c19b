"""
Architecture definitions.

The data model lives in ``liteasm.arch.model``; the built-in 6502 family
tables are available by name through ``get_builtin``.
"""

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
    TransitionAction,
)
from liteasm.arch import a6502, a65c02, a65c816
from liteasm.errors import ConfigError

BUILTIN_ARCHITECTURES: dict[str, ArchitectureDefinition] = {
    a6502.ARCH.name: a6502.ARCH,
    a65c02.ARCH.name: a65c02.ARCH,
    a65c816.ARCH.name: a65c816.ARCH,
}


def get_builtin(name: str) -> ArchitectureDefinition:
    """
    Return a built-in architecture by name (case-insensitive).

    Raises:
        ConfigError: If no built-in architecture has that name
    """
    try:
        return BUILTIN_ARCHITECTURES[name.lower()]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_ARCHITECTURES))
        raise ConfigError(f"unknown architecture '{name}' (built-in: {known})") from None


__all__ = [
    "AddressingMode",
    "ArchitectureDefinition",
    "BUILTIN_ARCHITECTURES",
    "Endianness",
    "InstructionDef",
    "InstructionEncoding",
    "ModeFlag",
    "ModeFlagRules",
    "ModeTransition",
    "SyntaxRules",
    "TransitionAction",
    "get_builtin",
]
