"""
Editor integrations.

An Editor receives the text produced by the citation commands. NvimEditor
talks to a running Neovim over its RPC socket; EchoEditor writes to stdout
for shell pipelines.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple, Union

import pynvim
import typer

logger = logging.getLogger(__name__)

# ((start_line, start_col), (end_line, end_col)), 0-based, end column inclusive
SelectionRange = Tuple[Tuple[int, int], Tuple[int, int]]

# Characterwise, linewise and blockwise (CTRL-V) visual modes
VISUAL_MODES = ("v", "V", "\x16")


class Editor(ABC):
    """Where citation text goes."""

    @abstractmethod
    def insert_text_at_cursor(self, text: str) -> None: ...

    @abstractmethod
    def replace_selection(self, text: str) -> None: ...

    @abstractmethod
    def get_current_selection_range(self) -> Optional[SelectionRange]: ...

    @abstractmethod
    def get_cursor_line(self) -> Tuple[str, int]:
        """Return the current line and the 0-based cursor column."""

    @abstractmethod
    def open_file(self, path: Union[str, Path], new_pane: bool = False) -> None: ...


class EchoEditor(Editor):
    """Print inserted text instead of editing a buffer."""

    def insert_text_at_cursor(self, text: str) -> None:
        typer.echo(text, nl=False)

    def replace_selection(self, text: str) -> None:
        typer.echo(text, nl=False)

    def get_current_selection_range(self) -> Optional[SelectionRange]:
        return None

    def get_cursor_line(self) -> Tuple[str, int]:
        return "", 0

    def open_file(self, path: Union[str, Path], new_pane: bool = False) -> None:
        typer.echo(str(path))


class NvimEditor(Editor):
    """Edit the current buffer of a Neovim instance."""

    def __init__(self, nvim):
        self.nvim = nvim

    @classmethod
    def attach(cls, socket_path: str) -> 'NvimEditor':
        """Connect to Neovim listening on socket_path."""
        nvim = pynvim.attach('socket', path=socket_path)
        logger.debug(f"Attached to Neovim at {socket_path}")
        return cls(nvim)

    def _visual_mode(self) -> Optional[str]:
        mode = self.nvim.api.get_mode()["mode"][:1]
        return mode if mode in VISUAL_MODES else None

    def insert_text_at_cursor(self, text: str) -> None:
        # 'c' puts characterwise; after=False inserts at the cursor column
        self.nvim.api.put(text.split("\n"), "c", False, True)

    def replace_selection(self, text: str) -> None:
        """Replace the active visual selection, or insert at the cursor."""
        mode = self._visual_mode()
        selection = self.get_current_selection_range()
        if mode is None or selection is None:
            self.insert_text_at_cursor(text)
            return

        (start_line, start_col), (end_line, end_col) = selection
        line = self.nvim.current.buffer[end_line].encode("utf-8")
        if mode == "V":
            start_col, end = 0, len(line)
        else:
            # end_col is the first byte of the last selected character
            end = min(end_col + 1, len(line))
            while end < len(line) and line[end] & 0xC0 == 0x80:
                end += 1
        self.nvim.api.buf_set_text(0, start_line, start_col, end_line, end, text.split("\n"))
        self.nvim.api.input("<Esc>")

    def get_current_selection_range(self) -> Optional[SelectionRange]:
        """The active visual selection; None outside visual mode."""
        if self._visual_mode() is None:
            return None
        # getpos returns [bufnum, lnum, col, off]; 'v' is the other end of the selection
        anchor = self.nvim.funcs.getpos("v")
        cursor = self.nvim.funcs.getpos(".")
        start, end = sorted([(anchor[1] - 1, anchor[2] - 1), (cursor[1] - 1, cursor[2] - 1)])
        return start, end

    def get_cursor_line(self) -> Tuple[str, int]:
        row, col = self.nvim.current.window.cursor
        return self.nvim.current.buffer[row - 1], col

    def open_file(self, path: Union[str, Path], new_pane: bool = False) -> None:
        escaped = self.nvim.funcs.fnameescape(str(path))
        self.nvim.command(f"{'vsplit' if new_pane else 'edit'} {escaped}")
