"""
Citation commands for the notes directory.

Usage:
  zk-cite refresh                  Load the export and report its size
  zk-cite list                     List citekeys with title and year
  zk-cite open CITEKEY             Open (creating if needed) the literature note
  zk-cite link CITEKEY             Insert a link to the literature note
  zk-cite content CITEKEY          Insert literature note content
  zk-cite cite CITEKEY             Insert a Markdown citation
  zk-cite zotero-link CITEKEY      Insert a Zotero link to the PDF or entry
  zk-cite open-zotero [CITEKEY]    Open a reference in Zotero
  zk-cite watch                    Keep the library loaded and reload on change

With --nvim, text is inserted into the Neovim instance listening on the
socket; otherwise it is printed to stdout.
"""

import os
import time
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import typer

from cite_core.config import load_config, get_config_value, resolve_path
from cite_core.constants import DEFAULT_NVIM_SOCKET, EVENT_LOAD_COMPLETE
from cite_core.editor import Editor, EchoEditor, NvimEditor
from cite_core.errors import CitationError
from cite_core.plugin import CitationPlugin

logger = logging.getLogger(__name__)

app = typer.Typer(help="Literature notes and citations from a BibLaTeX or CSL-JSON export.")


def get_socket_path(config: Dict[str, Any], socket_path: Optional[str] = None) -> str:
    """
    Get socket path with consistent precedence:
    1. Command line option
    2. Config socket_path
    3. NVIM_SOCKET environment variable
    4. Default constant value
    """
    if not socket_path:
        socket_path = get_config_value(config, "socket_path", None)
    if not socket_path:
        socket_path = os.getenv("NVIM_SOCKET", DEFAULT_NVIM_SOCKET)
    return resolve_path(socket_path)


def _display(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)


def _make_editor(ctx: typer.Context) -> Editor:
    options = ctx.obj
    if not options.get("nvim"):
        return EchoEditor()
    socket_path = get_socket_path(options["config"], options.get("socket_path"))
    try:
        return NvimEditor.attach(socket_path)
    except Exception as e:
        typer.echo(f"Error connecting to Neovim at {socket_path}: {e}", err=True)
        raise typer.Exit(1)


@contextmanager
def _loaded_plugin(ctx: typer.Context) -> Iterator[CitationPlugin]:
    """Build a plugin, load the library, and map failures to exit code 1."""
    plugin = CitationPlugin(ctx.obj["config"], editor=_make_editor(ctx), display=_display)
    try:
        library = plugin.load_library().result()
        if library is None:
            raise typer.Exit(1)
        yield plugin
    except CitationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        plugin.unload()


@app.callback()
def callback(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(None, "--config-file", "-c", help="Path to a YAML configuration file."),
    nvim: bool = typer.Option(False, "--nvim", help="Insert text into Neovim instead of printing it."),
    socket_path: Optional[str] = typer.Option(None, "--socket", help="Neovim socket path (overrides config)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Increase verbosity of output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only report errors."),
):
    """Initialize the Typer context with configuration."""
    config = load_config(str(config_file) if config_file else None)
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = getattr(logging, get_config_value(config, "logging.level", "WARNING"), logging.WARNING)
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    ctx.obj = {"config": config, "nvim": nvim, "socket_path": socket_path}


@app.command()
def refresh(ctx: typer.Context) -> None:
    """Load the citation export and report how many entries it holds."""
    with _loaded_plugin(ctx) as plugin:
        typer.echo(f"Loaded {plugin.library.size} entries.")


@app.command(name="list")
def list_entries(ctx: typer.Context) -> None:
    """List citekeys with their title and year."""
    with _loaded_plugin(ctx) as plugin:
        for citekey in sorted(plugin.library.entries):
            entry = plugin.library.entries[citekey]
            typer.echo(f"{citekey}::{entry.title}::{entry.year or ''}")


@app.command(name="open")
def open_note(
    ctx: typer.Context,
    citekey: str = typer.Argument(..., help="Citekey of the reference"),
    new_pane: bool = typer.Option(False, "--new-pane", help="Open the note in a new pane."),
) -> None:
    """Open the literature note for a reference, creating it if needed."""
    with _loaded_plugin(ctx) as plugin:
        plugin.open_literature_note(citekey, new_pane)


@app.command()
def link(ctx: typer.Context, citekey: str = typer.Argument(..., help="Citekey of the reference")) -> None:
    """Insert a link to the literature note, creating the note if needed."""
    with _loaded_plugin(ctx) as plugin:
        plugin.insert_literature_note_link(citekey)


@app.command()
def content(ctx: typer.Context, citekey: str = typer.Argument(..., help="Citekey of the reference")) -> None:
    """Insert literature note content for a reference."""
    with _loaded_plugin(ctx) as plugin:
        plugin.insert_literature_note_content(citekey)


@app.command()
def cite(
    ctx: typer.Context,
    citekey: str = typer.Argument(..., help="Citekey of the reference"),
    alternative: bool = typer.Option(False, "--alternative", "-a", help="Use the alternative citation template."),
) -> None:
    """Insert a Markdown citation."""
    with _loaded_plugin(ctx) as plugin:
        plugin.insert_markdown_citation(citekey, alternative)


@app.command(name="zotero-link")
def zotero_link(
    ctx: typer.Context,
    citekey: str = typer.Argument(..., help="Citekey of the reference"),
    entry: bool = typer.Option(False, "--entry", help="Link to the Zotero entry instead of the PDF."),
) -> None:
    """Insert a Zotero link to the PDF or the entry."""
    with _loaded_plugin(ctx) as plugin:
        plugin.insert_zotero_link(citekey, alternative=entry)


@app.command(name="open-zotero")
def open_zotero(
    ctx: typer.Context,
    citekey: Optional[str] = typer.Argument(None, help="Citekey; defaults to the word under the cursor"),
) -> None:
    """Open a reference's PDF (or entry) in Zotero."""
    with _loaded_plugin(ctx) as plugin:
        if citekey is None:
            citekey = plugin.citekey_at_cursor()
        if citekey is None:
            typer.echo("No matching citation found under the cursor.", err=True)
            raise typer.Exit(1)
        if not plugin.open_in_zotero(citekey):
            raise typer.Exit(1)


@app.command()
def watch(ctx: typer.Context) -> None:
    """Keep the library loaded, reloading whenever the export changes."""
    plugin = CitationPlugin(ctx.obj["config"], editor=_make_editor(ctx), display=_display)

    def report() -> None:
        library = plugin.library
        typer.echo(f"Loaded {library.size if library else 0} entries.")

    plugin.events.on(EVENT_LOAD_COMPLETE, report)
    load = plugin.init()
    if load is None:
        typer.echo("Citation export path is not set.", err=True)
        raise typer.Exit(1)
    load.result()
    if plugin.watcher is None:
        plugin.unload()
        raise typer.Exit(1)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("Stopping.")
    finally:
        plugin.unload()


def main() -> None:
    """Entry point for command-line use."""
    app()


if __name__ == "__main__":
    main()
