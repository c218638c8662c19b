"""
CLI Error Handling
==================

Maps exceptions to messages and exit codes for the ``liteasm`` command.

| Exit code | Meaning                                             |
|-----------|-----------------------------------------------------|
| 0         | success                                             |
| 1         | the source has errors                               |
| 2         | invalid arguments, missing files, bad config files  |
| 3         | internal error; the message asks for a bug report   |
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from liteasm.errors import AssemblyError, ConfigError, LiteasmError


class ExitCode(IntEnum):
    """Standard exit codes for the CLI."""
    SUCCESS = 0
    ASSEMBLY_ERROR = 1   # Errors in the user's source
    INVALID_ARGS = 2     # Invalid arguments, missing files or config
    INTERNAL_ERROR = 3   # Assembler defect


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report ``error`` on stderr and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print the traceback of internal errors

    Raises:
        SystemExit: Always
    """
    if isinstance(error, LiteasmError) and error.is_internal:
        click.echo(str(error), err=True)
        click.echo("This is a bug in liteasm; please report it with the source that triggered it.", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)

    elif isinstance(error, AssemblyError):
        # Already formatted as "file:line:col: error: ..."
        click.echo(str(error), err=True)
        sys.exit(ExitCode.ASSEMBLY_ERROR)

    elif isinstance(error, ConfigError):
        click.echo(f"Configuration error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (click.BadParameter, FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
