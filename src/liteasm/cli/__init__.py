"""
liteasm Command-Line Interface
=============================

This package provides the ``liteasm`` command, a Click group with
subcommands to assemble source files and to create and edit the JSON
architecture and context files the assembler reads.
"""

__all__ = ["liteasm"]
