"""Tests for the command line interface."""

from __future__ import annotations

import base64

import pytest
from click.testing import CliRunner

from btclient.cli.main import cli
from tests.conftest import ANNOUNCE_URL, INFO_HASH, TORRENT_BYTES

pytestmark = [pytest.mark.unit, pytest.mark.cli]


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return CliRunner()


def test_resolve_hex(runner):
    result = runner.invoke(cli, ["resolve", INFO_HASH.hex().upper()])
    assert result.exit_code == 0, result.output
    assert INFO_HASH.hex() in result.output
    assert "hex" in result.output


def test_resolve_base32(runner):
    result = runner.invoke(cli, ["resolve", base64.b32encode(INFO_HASH).decode()])
    assert result.exit_code == 0, result.output
    assert INFO_HASH.hex() in result.output


def test_resolve_torrent_file(runner, tmp_path):
    path = tmp_path / "test.torrent"
    path.write_bytes(TORRENT_BYTES)
    result = runner.invoke(cli, ["resolve", "--file", str(path)])
    assert result.exit_code == 0, result.output
    assert INFO_HASH.hex() in result.output
    assert "test.bin" in result.output
    assert "12345" in result.output
    assert ANNOUNCE_URL in result.output


def test_resolve_invalid(runner):
    result = runner.invoke(cli, ["resolve", "not-a-hash"])
    assert result.exit_code == 1
    assert "Unrecognized torrent identifier" in result.output


def test_resolve_requires_input(runner):
    result = runner.invoke(cli, ["resolve"])
    assert result.exit_code == 1
    assert "Provide an identifier or --file" in result.output


def test_invalid_config_file(runner, tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("torrent_port = 70000", encoding="utf-8")
    result = runner.invoke(cli, ["--config", str(path), "version"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["version"])
    assert result.exit_code == 0, result.output
    assert result.output.startswith("btclient ")
    assert "peer id prefix: -BC" in result.output
