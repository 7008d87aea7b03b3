"""Tests for the command line entry points."""

from pathlib import Path

from click.testing import CliRunner

from goldcast.cli import cli

CONFIG = str(Path(__file__).parent.parent / "config" / "config.yaml")


def test_smoke_test():
    result = CliRunner().invoke(cli, ["smoke-test", "--config", CONFIG])

    assert result.exit_code == 0
    assert "Smoke test passed" in result.output


def test_check_rate_with_sim_source():
    result = CliRunner().invoke(cli, ["check-rate", "--config", CONFIG, "--source", "sim"])

    assert result.exit_code == 0
    assert "Buy" in result.output
    assert "Rp " in result.output


def test_missing_config_file():
    result = CliRunner().invoke(cli, ["run", "--config", "/nonexistent.yaml"])

    assert result.exit_code == 2
