# =============================================================================
# test_cli.py - Command-Line Interface Tests
# =============================================================================
# Tests for the liteasm command.
#
# Test coverage includes:
#   - assemble: raw and hex output, listing and symbol files, stdin
#   - Exit codes for source errors and invalid arguments
#   - dump-arch / --arch-file round trip
#   - Context editing: org, defsym, vector, dump-ctx
# =============================================================================

import json
from pathlib import Path

import pytest


PROGRAM = """\
        .ORG $8000
start:  LDA #$05
        STA SCREEN
        RTS
"""


@pytest.fixture(autouse=True)
def no_context_env(monkeypatch):
    """Keep a developer's LITEASM_CTX_PATH out of the tests."""
    monkeypatch.delenv("LITEASM_CTX_PATH", raising=False)


# =============================================================================
# General Tests
# =============================================================================

class TestGeneral:
    """Test the command group itself."""

    def test_help(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "assemble" in result.output
        assert "dump-arch" in result.output

    def test_version(self):
        from click.testing import CliRunner
        from liteasm import __version__
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_unknown_architecture(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        result = runner.invoke(main, ["-a", "z80", "dump-arch"])

        assert result.exit_code == 2


# =============================================================================
# Assemble Command Tests
# =============================================================================

class TestAssemble:
    """Test the assemble command."""

    def test_raw_output(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text(".ORG $8000\nLDA #$05\nRTS\n")

            result = runner.invoke(main, ["assemble", "prog.asm", "-o", "prog.bin"])

            assert result.exit_code == 0, f"Assembly failed: {result.output}"
            assert Path("prog.bin").read_bytes() == b"\xA9\x05\x60"

    def test_hex_output(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text(".ORG $8000\nLDA #$05\nRTS\n")

            result = runner.invoke(main, ["assemble", "prog.asm", "--format", "hex"])

            assert result.exit_code == 0
            assert "$8000  A9 05 60" in result.output

    def test_fill_byte(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text(".BYTE 1\n.RES 2\n.BYTE 2\n")

            result = runner.invoke(
                main, ["assemble", "prog.asm", "-o", "prog.bin", "--fill", "$FF"]
            )

            assert result.exit_code == 0
            assert Path("prog.bin").read_bytes() == b"\x01\xFF\xFF\x02"

    def test_fill_out_of_range(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text("NOP\n")

            result = runner.invoke(main, ["assemble", "prog.asm", "--fill", "300"])

            assert result.exit_code == 2

    def test_listing_and_symbols(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text(".ORG $8000\nstart: LDA #$05\nRTS\n")

            result = runner.invoke(main, [
                "assemble", "prog.asm", "-o", "prog.bin",
                "-l", "prog.lst", "-s", "prog.sym",
            ])

            assert result.exit_code == 0, result.output
            assert "START $8000" in Path("prog.sym").read_text()
            listing = Path("prog.lst").read_text()
            assert "A9 05" in listing
            assert "LDA #$05" in listing

    def test_stdin(self):
        """'-' reads the source from standard input."""
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(
                main, ["assemble", "-", "-o", "prog.bin"], input="LDA #1\nRTS\n"
            )

            assert result.exit_code == 0, result.output
            assert Path("prog.bin").read_bytes() == b"\xA9\x01\x60"

    def test_65c816(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text("REP #$20\nLDA #$1234\n")

            result = runner.invoke(main, ["-a", "65c816", "assemble", "prog.asm", "-o", "prog.bin"])

            assert result.exit_code == 0, result.output
            assert Path("prog.bin").read_bytes() == bytes.fromhex("C2 20 A9 34 12")

    def test_source_error(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text("NOP\nJMP RESTE\nRESET: RTS\n")

            result = runner.invoke(main, ["assemble", "prog.asm", "-o", "prog.bin"])

            assert result.exit_code == 1
            assert "undefined symbol 'RESTE'" in result.output
            assert "did you mean 'RESET'?" in result.output
            assert not Path("prog.bin").exists()

    def test_collect_errors(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text("FOO\nNOP\n.BAR\n")

            result = runner.invoke(main, ["assemble", "prog.asm", "--collect-errors"])

            assert result.exit_code == 1
            assert "2 errors" in result.output

    def test_missing_source(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["assemble", "missing.asm"])

            assert result.exit_code == 2


# =============================================================================
# Architecture File Tests
# =============================================================================

class TestArchitectureFiles:
    """Test dump-arch and --arch-file."""

    def test_dump_arch(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        result = runner.invoke(main, ["-a", "65c02", "dump-arch"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["name"] == "65c02"
        assert "BRA" in data["instructions"]

    def test_arch_file_round_trip(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text("SEP #$20\nLDA #$05\nMVN 1, 2\n")

            result = runner.invoke(main, ["-a", "65c816", "dump-arch", "-o", "cpu.json"])
            assert result.exit_code == 0

            result = runner.invoke(main, [
                "--arch-file", "cpu.json", "assemble", "prog.asm", "-o", "prog.bin",
            ])
            assert result.exit_code == 0, result.output
            assert Path("prog.bin").read_bytes() == bytes.fromhex("E2 20 A9 05 54 02 01")

    def test_invalid_arch_file(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("cpu.json").write_text('{"name": "bad", "modes": []}')
            Path("prog.asm").write_text("NOP\n")

            result = runner.invoke(main, ["--arch-file", "cpu.json", "assemble", "prog.asm"])

            assert result.exit_code == 2
            assert "Configuration error" in result.output


# =============================================================================
# Context Command Tests
# =============================================================================

class TestContextCommands:
    """Test editing the context file."""

    def test_dump_empty_context(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["dump-ctx"])

            assert result.exit_code == 0
            assert json.loads(result.output)["origin"] == "$0000"

    def test_edit_and_assemble(self):
        """Context edits are picked up by the next assembly."""
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prog.asm").write_text(PROGRAM)

            result = runner.invoke(main, ["defsym", "SCREEN", "$0400"])
            assert result.exit_code == 0
            assert "SCREEN" in result.output

            result = runner.invoke(main, ["vector", "RESET", "$FFFC", "START"])
            assert result.exit_code == 0

            result = runner.invoke(main, ["assemble", "prog.asm", "--format", "hex"])
            assert result.exit_code == 0, result.output
            assert "$8000  A9 05 8D 00 04 60" in result.output
            assert "$FFFC  00 80" in result.output

    def test_ctx_file_option(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["--ctx-file", "rom.json", "org", "$C000"])
            assert result.exit_code == 0
            assert "$C000" in result.output

            data = json.loads(Path("rom.json").read_text())
            assert data["origin"] == "$C000"
            assert not Path("ctx.json").exists()

    def test_context_path_from_environment(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(
                main, ["org", "$2000"], env={"LITEASM_CTX_PATH": "env.json"}
            )

            assert result.exit_code == 0
            assert json.loads(Path("env.json").read_text())["origin"] == "$2000"

    def test_redefine_symbol_in_other_case(self):
        """On a case-insensitive architecture defsym replaces the old spelling."""
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            assert runner.invoke(main, ["defsym", "SCREEN", "$0400"]).exit_code == 0
            assert runner.invoke(main, ["defsym", "screen", "$0500"]).exit_code == 0

            symbols = json.loads(Path("ctx.json").read_text())["symbols"]
            assert symbols == {"screen": "$0500"}

    def test_numeric_vector_handler(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["vector", "NMI", "$FFFA", "$8100"])
            assert result.exit_code == 0

            vectors = json.loads(Path("ctx.json").read_text())["vectors"]
            assert vectors == [{"name": "NMI", "address": "$FFFA", "handler": "$8100"}]

    def test_invalid_number(self):
        from click.testing import CliRunner
        from liteasm.cli.liteasm import main

        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["org", "$XYZ"])

            assert result.exit_code == 2
