#!/usr/bin/env python3
"""
Tests for the zk-cite command line interface.
"""

import os
import json
import tempfile
from unittest.mock import patch, MagicMock

import pytest
from typer.testing import CliRunner

from cite_core.cli import app, get_socket_path


SMITH = {
    "id": "smith2020",
    "type": "article-journal",
    "title": "A Study",
    "author": [{"given": "Jane", "family": "Smith"}],
    "issued": {"date-parts": [[2020]]},
}


@pytest.fixture
def notes_config():
    """Config pointing at a temporary notes directory with a CSL-JSON export."""
    with tempfile.TemporaryDirectory() as tmpdir:
        os.makedirs(os.path.join(tmpdir, "Reading notes"))
        with open(os.path.join(tmpdir, "library.json"), "w", encoding="utf-8") as f:
            json.dump([SMITH], f)
        yield {
            "notes_dir": tmpdir,
            "citations": {"citation_export_path": "library.json"},
        }


def invoke(config, args):
    runner = CliRunner()
    with patch("cite_core.cli.load_config", return_value=config):
        return runner.invoke(app, ["-q"] + args)


def test_refresh(notes_config):
    """Test loading the export from the command line."""
    result = invoke(notes_config, ["refresh"])
    assert result.exit_code == 0
    assert "Loaded 1 entries." in result.stdout


def test_list(notes_config):
    """Test listing citekeys."""
    result = invoke(notes_config, ["list"])
    assert result.exit_code == 0
    assert "smith2020::A Study::2020" in result.stdout


def test_cite(notes_config):
    """Test printing citations."""
    result = invoke(notes_config, ["cite", "smith2020"])
    assert result.exit_code == 0
    assert "[@smith2020]" in result.stdout

    result = invoke(notes_config, ["cite", "--alternative", "smith2020"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "@smith2020"


def test_open_creates_note(notes_config):
    """Test that open creates the literature note and prints its path."""
    result = invoke(notes_config, ["open", "smith2020"])
    note = os.path.join(notes_config["notes_dir"], "Reading notes", "@smith2020.md")
    assert result.exit_code == 0
    assert os.path.exists(note)
    assert "@smith2020.md" in result.stdout


def test_link_and_zotero_link(notes_config):
    """Test link output formats."""
    result = invoke(notes_config, ["link", "smith2020"])
    assert result.exit_code == 0
    assert "[[@smith2020]]" in result.stdout

    result = invoke(notes_config, ["zotero-link", "--entry", "smith2020"])
    assert result.exit_code == 0
    assert "[smith2020](zotero://select/items/smith2020)" in result.stdout


def test_unknown_citekey_exits_with_error(notes_config):
    """Test that an unknown citekey is reported."""
    result = invoke(notes_config, ["cite", "nobody1999"])
    assert result.exit_code == 1


def test_missing_export_exits_with_error(notes_config):
    """Test that a missing export file fails the command."""
    notes_config["citations"]["citation_export_path"] = "missing.json"
    result = invoke(notes_config, ["refresh"])
    assert result.exit_code == 1


@patch("cite_core.plugin.CommandExecutor.open_uri", return_value=True)
def test_open_zotero(mock_open_uri, notes_config):
    """Test opening a reference in Zotero."""
    result = invoke(notes_config, ["open-zotero", "smith2020"])
    assert result.exit_code == 0
    mock_open_uri.assert_called_once_with("zotero://select/items/@smith2020")


def test_open_zotero_without_citekey(notes_config):
    """Test that no citekey and nothing under the cursor is an error."""
    result = invoke(notes_config, ["open-zotero"])
    assert result.exit_code == 1


@patch("cite_core.cli.NvimEditor.attach")
def test_nvim_insertion(mock_attach, notes_config):
    """Test that --nvim sends text to Neovim."""
    editor = MagicMock()
    mock_attach.return_value = editor
    result = invoke(notes_config, ["--nvim", "--socket", "/tmp/test.sock", "cite", "smith2020"])
    assert result.exit_code == 0
    mock_attach.assert_called_once_with("/tmp/test.sock")
    editor.insert_text_at_cursor.assert_called_once_with("[@smith2020]")


def test_get_socket_path():
    """Test socket path precedence."""
    assert get_socket_path({}, "/tmp/option.sock") == "/tmp/option.sock"
    assert get_socket_path({"socket_path": "/tmp/config.sock"}) == "/tmp/config.sock"
    with patch.dict(os.environ, {"NVIM_SOCKET": "/tmp/env.sock"}):
        assert get_socket_path({}) == "/tmp/env.sock"
    with patch.dict(os.environ, {}, clear=True):
        assert get_socket_path({}) == "/tmp/obsidian.sock"
