"""
liteasm - Command-Line Interface
================================

Assembles source files and manages the architecture and context files.

Usage Examples
--------------
Assemble for the 65C816 into a raw binary:
    $ liteasm -a 65c816 assemble boot.asm -o boot.bin

Listing and symbol files, all errors at once:
    $ liteasm assemble boot.asm -o boot.bin -l boot.lst -s boot.sym --collect-errors

Start a custom architecture from a built-in one:
    $ liteasm -a 65c02 dump-arch -o mycpu.json
    $ liteasm --arch-file mycpu.json assemble prog.asm

Edit the context file (./ctx.json or $LITEASM_CTX_PATH):
    $ liteasm org '$8000'
    $ liteasm defsym SCREEN '$0400'
    $ liteasm vector RESET '$FFFC' START
    $ liteasm dump-ctx
"""

from pathlib import Path
from typing import Optional
import logging

import click

from liteasm import __version__
from liteasm.arch import BUILTIN_ARCHITECTURES, ArchitectureDefinition, get_builtin
from liteasm.assembler import Assembler
from liteasm.config import (
    default_context_path,
    dump_architecture,
    dump_context,
    load_architecture,
    load_context,
    parse_number,
    save_context,
)
from liteasm.context import Context
from liteasm.errors import ConfigError
from liteasm.cli.errors import handle_cli_exception

logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class CliContext:
    """
    Shared state of the command group.

    Stores the global options: architecture choice, context file and
    verbosity.
    """

    def __init__(self) -> None:
        self.arch_name: str = "6502"
        self.arch_file: Optional[Path] = None
        self.ctx_file: Optional[Path] = None
        self.verbose: int = 0

    def setup_logging(self) -> None:
        """Configure logging from the -v count."""
        if self.verbose >= 2:
            level = logging.DEBUG
        elif self.verbose == 1:
            level = logging.INFO
        else:
            level = logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(name)s: %(message)s" if self.verbose >= 2 else "%(message)s",
        )

    def load_arch(self) -> ArchitectureDefinition:
        if self.arch_file is not None:
            return load_architecture(self.arch_file)
        return get_builtin(self.arch_name)

    @property
    def context_path(self) -> Path:
        return self.ctx_file if self.ctx_file is not None else default_context_path()

    def load_context(self) -> Context:
        return load_context(self.context_path, missing_ok=True)


pass_cli = click.make_pass_decorator(CliContext, ensure=True)


class NumberParamType(click.ParamType):
    """Integer written in decimal or with a $, 0x, % or 0b prefix."""
    name = "number"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return parse_number(value, "value")
        except ConfigError:
            self.fail(f"{value!r} is not a number", param, ctx)


NUMBER = NumberParamType()


def _write_output(path: Optional[Path], data: bytes | str) -> None:
    """Write to ``path``, or to stdout when no path (or '-') is given."""
    if path is None or str(path) == "-":
        if isinstance(data, bytes):
            click.get_binary_stream("stdout").write(data)
        else:
            click.echo(data, nl=False)
        return
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-a", "--arch",
    type=click.Choice(sorted(BUILTIN_ARCHITECTURES), case_sensitive=False),
    default="6502",
    show_default=True,
    help="Built-in architecture",
)
@click.option(
    "--arch-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Architecture JSON file (overrides --arch)",
)
@click.option(
    "--ctx-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Context JSON file (default: $LITEASM_CTX_PATH or ./ctx.json)",
)
@click.option(
    "-v", "--verbose",
    count=True,
    help="More output (-v info, -vv debug)",
)
@click.version_option(version=__version__, prog_name="liteasm")
@pass_cli
def main(
    cli: CliContext,
    arch: str,
    arch_file: Optional[Path],
    ctx_file: Optional[Path],
    verbose: int,
) -> None:
    """
    Table-driven cross assembler for the 6502 family and custom CPUs.

    The instruction set comes from a built-in table (--arch) or a JSON
    architecture file (--arch-file); predefined symbols, the vector
    table and the default origin come from the context file.
    """
    cli.arch_name = arch.lower()
    cli.arch_file = arch_file
    cli.ctx_file = ctx_file
    cli.verbose = verbose
    cli.setup_logging()


# =============================================================================
# Assemble Command
# =============================================================================

@main.command()
@click.argument(
    "source",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
    help="Output file (default: stdout)",
)
@click.option(
    "--format", "output_format",
    type=click.Choice(["raw", "hex"]),
    default="raw",
    show_default=True,
    help="raw binary, or a hex dump with addresses",
)
@click.option(
    "--fill",
    type=NUMBER,
    default=0,
    help="Byte written into gaps of a raw image (default: 0)",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write symbol file",
)
@click.option(
    "-l", "--listing",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write listing file",
)
@click.option(
    "--collect-errors",
    is_flag=True,
    help="Report all errors instead of stopping at the first",
)
@pass_cli
def assemble(
    cli: CliContext,
    source: Path,
    output: Optional[Path],
    output_format: str,
    fill: int,
    symbols: Optional[Path],
    listing: Optional[Path],
    collect_errors: bool,
) -> None:
    """
    Assemble SOURCE ('-' reads stdin).

    \b
    Examples:
        liteasm assemble boot.asm -o boot.bin
        liteasm -a 65c816 assemble boot.asm --format hex
    """
    try:
        if not 0 <= fill <= 0xFF:
            raise click.BadParameter(f"fill byte out of range: {fill}", param_hint="--fill")

        asm = Assembler(cli.load_arch(), cli.load_context(), collect_errors=collect_errors)
        if str(source) == "-":
            result = asm.assemble_string(click.get_text_stream("stdin").read(), "<stdin>")
        else:
            result = asm.assemble_file(source)

        image = result.image
        if output_format == "hex":
            dump = image.hex_dump()
            _write_output(output, dump + "\n" if dump else "")
        else:
            _write_output(output, image.to_bytes(fill))

        if listing:
            listing.write_text(result.report.format_listing())
            logger.info("wrote listing to %s", listing)
        if symbols:
            symbols.write_text(result.report.format_symbols())
            logger.info("wrote symbols to %s", symbols)

        logger.info(
            "assembly complete: %d bytes at $%04X-$%04X, %d symbols",
            len(image), image.start, max(image.end - 1, image.start), len(result.report.symbols),
        )

    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


# =============================================================================
# Configuration Commands
# =============================================================================

@main.command("dump-arch")
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
    help="Output file (default: stdout)",
)
@pass_cli
def dump_arch(cli: CliContext, output: Optional[Path]) -> None:
    """
    Write the selected architecture as JSON.

    The output is a starting point for a custom --arch-file.
    """
    try:
        _write_output(output, dump_architecture(cli.load_arch()))
    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


@main.command("dump-ctx")
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
    help="Output file (default: stdout)",
)
@pass_cli
def dump_ctx(cli: CliContext, output: Optional[Path]) -> None:
    """Write the current context as JSON (an empty one if no file exists)."""
    try:
        _write_output(output, dump_context(cli.load_context()))
    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


@main.command()
@click.argument("address", type=NUMBER)
@pass_cli
def org(cli: CliContext, address: int) -> None:
    """Set the default origin in the context file."""
    try:
        path = save_context(cli.load_context().with_origin(address), cli.context_path)
        click.echo(f"Origin set to ${address:04X} in {path}")
    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


@main.command()
@click.argument("name")
@click.argument("value", type=NUMBER)
@pass_cli
def defsym(cli: CliContext, name: str, value: int) -> None:
    """Define (or redefine) a predefined symbol in the context file."""
    try:
        case_sensitive = cli.load_arch().syntax.case_sensitive
        ctx = cli.load_context().with_symbol(name, value, case_sensitive)
        path = save_context(ctx, cli.context_path)
        click.echo(f"Defined {name} = ${value:04X} in {path}")
    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


@main.command()
@click.argument("name")
@click.argument("address", type=NUMBER)
@click.argument("handler")
@pass_cli
def vector(cli: CliContext, name: str, address: int, handler: str) -> None:
    """
    Add a vector table entry to the context file.

    HANDLER is a symbol name or a number.
    """
    try:
        target: str | int = handler
        if handler[:1] in "$%-0123456789":
            target = parse_number(handler, f"vector {name} handler")
        path = save_context(cli.load_context().with_vector(name, address, target), cli.context_path)
        shown = f"${target:04X}" if isinstance(target, int) else target
        click.echo(f"Vector {name} at ${address:04X} -> {shown} in {path}")
    except Exception as e:
        handle_cli_exception(e, verbose=cli.verbose > 0)


if __name__ == "__main__":
    main()
