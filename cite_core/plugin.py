"""
Citation plugin: library loading and literature notes.

CitationPlugin is the one context object that owns the current settings, the
loaded Library and the parsing worker. Hosts construct it explicitly, call
init() at startup and unload() at shutdown, and pass it to whatever needs it.

Load cycle::

    IDLE -> LOADING -> LOADED | LOAD_FAILED

A trigger that arrives while a load is in flight is dropped; the parse
already running is neither cancelled nor re-run afterwards.
"""

import os
import logging
import threading
from concurrent.futures import Future
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from cite_core.config import CitationsSettings, get_citations_settings, get_notes_dir
from cite_core.commands import CommandExecutor
from cite_core.constants import (
    DISALLOWED_FILENAME_CHARACTERS_RE, CITEKEY_WORD_RE,
    EVENT_LOAD_START, EVENT_LOAD_COMPLETE,
    LOAD_ERROR_MESSAGE, LITERATURE_NOTE_ERROR_MESSAGE
)
from cite_core.editor import Editor, EchoEditor
from cite_core.errors import (
    DatabaseParseError, LibraryNotLoadedError, WatchSetupError, WorkerChannelBlocked
)
from cite_core.events import CitationEvents
from cite_core.models import DatabaseType, Library
from cite_core.notifier import Notifier
from cite_core.templates import TemplateEngine
from cite_core.vault import Vault, normalize_path
from cite_core.watcher import ExportFileWatcher
from cite_core.worker import WorkerChannel

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"


def _resolved(value: Any) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class CitationPlugin:
    """Loads the bibliography and turns citekeys into notes and citations."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        settings: Optional[CitationsSettings] = None,
        vault: Optional[Vault] = None,
        editor: Optional[Editor] = None,
        load_worker: Optional[WorkerChannel] = None,
        display: Optional[Callable[[str], None]] = None
    ):
        """
        Args:
            config: Configuration dictionary (see cite_core.config)
            settings: Citation settings; read from config when omitted
            vault: Notes directory; defaults to config's notes_dir
            editor: Where inserted text goes; defaults to stdout
            load_worker: Parsing channel; defaults to a worker process
            display: Callback showing user-visible notices
        """
        config = config or {}
        self.settings = settings or get_citations_settings(config)
        self.vault = vault or Vault(get_notes_dir(config))
        self.editor = editor or EchoEditor()
        self.load_worker = load_worker or WorkerChannel()
        self.templates = TemplateEngine()
        self.events = CitationEvents()

        self.load_error_notifier = Notifier(LOAD_ERROR_MESSAGE, display)
        self.literature_note_error_notifier = Notifier(LITERATURE_NOTE_ERROR_MESSAGE, display)

        self.library: Optional[Library] = None
        self.load_state = LoadState.IDLE
        self.watcher: Optional[ExportFileWatcher] = None
        self._state_lock = threading.Lock()
        # Bumped by unload(); parses started in an earlier generation are discarded
        self._generation = 0

    # --- Lifecycle ---

    def init(self) -> Optional[Future]:
        """Load the library for the first time and watch the export for changes."""
        if not self.settings.citation_export_path:
            logger.warning("Citation export path is not set. Please update the citations settings.")
            return None

        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None

        load = self.load_library()

        export_path = self.resolve_library_path(self.settings.citation_export_path)
        self.watcher = ExportFileWatcher(
            export_path,
            self.load_library,
            stability_threshold=self.settings.watch_stability_threshold
        )
        try:
            self.watcher.start()
        except WatchSetupError as e:
            logger.error(f"Cannot watch citation export: {e}")
            self.watcher = None
            self.load_error_notifier.show()
        return load

    def unload(self) -> None:
        """Stop watching, shut the worker down and drop the library."""
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        self.load_worker.shutdown(wait=False)
        with self._state_lock:
            self._generation += 1
            self.library = None
            self.load_state = LoadState.IDLE
        logger.debug("Citation plugin unloaded")

    def update_settings(self, settings: CitationsSettings) -> None:
        """Replace the settings; templates pick up the new strings on next use."""
        self.settings = settings

    # --- Library loading ---

    def resolve_library_path(self, raw_path: str) -> str:
        """Resolve the export path, allowing paths relative to the notes directory."""
        expanded = os.path.expanduser(os.path.expandvars(raw_path))
        return os.path.abspath(os.path.join(str(self.vault.root), expanded))

    @property
    def is_library_loading(self) -> bool:
        """True while the library is being parsed on the worker."""
        return self.load_worker.blocked

    def _fail_load(self, message: str, result: Future) -> Future:
        logger.error(message)
        self.load_state = LoadState.LOAD_FAILED
        self.load_error_notifier.show()
        result.set_result(None)
        return result

    def load_library(self) -> Future:
        """
        Start a load cycle.

        Returns:
            Future resolving to the new Library, or None if the cycle failed
            or was dropped because another load is in flight.
        """
        result: Future = Future()
        settings = self.settings

        if not settings.citation_export_path:
            logger.warning("Citation export path is not set. Please update the citations settings.")
            return self._fail_load("Cannot load citations without an export path", result)

        with self._state_lock:
            if self.load_worker.blocked:
                logger.debug("Library is already loading; ignoring reload request")
                result.set_result(None)
                return result
            self.load_state = LoadState.LOADING
            generation = self._generation

        logger.debug("Reloading citation library")
        self.events.trigger(EVENT_LOAD_START)
        self.library = None

        try:
            database_type = DatabaseType(settings.citation_export_format)
        except ValueError:
            return self._fail_load(f"Unrecognized citation export format: {settings.citation_export_format!r}", result)

        file_path = self.resolve_library_path(settings.citation_export_path)
        try:
            buffer = self.vault.read_file(file_path)
            database_raw = buffer.decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return self._fail_load(f"Error reading citation export '{file_path}': {e}", result)

        self.load_error_notifier.hide()

        try:
            parse = self.load_worker.post({
                "databaseRaw": database_raw,
                "databaseType": database_type.value,
            })
        except WorkerChannelBlocked:
            logger.debug("Library is already loading; ignoring reload request")
            result.set_result(None)
            return result
        except DatabaseParseError as e:
            return self._fail_load(f"Error parsing citation export: {e}", result)

        parse.add_done_callback(lambda f: self._on_parsed(f, database_type, result, generation))
        return result

    def _on_parsed(self, parse: Future, database_type: DatabaseType, result: Future, generation: int) -> None:
        try:
            records = parse.result()
            library = Library.from_records(records, database_type)
        except Exception as e:
            if generation == self._generation:
                self._fail_load(f"Error parsing citation export: {e}", result)
            else:
                result.set_result(None)
            return

        with self._state_lock:
            stale = generation != self._generation
            if not stale:
                self.library = library
                self.load_state = LoadState.LOADED
        if stale:
            logger.debug("Plugin was unloaded during the parse; discarding the library")
            result.set_result(None)
            return
        logger.debug(f"Successfully loaded library with {library.size} entries")
        self.events.trigger(EVENT_LOAD_COMPLETE)
        result.set_result(library)

    def _require_library(self) -> Library:
        library = self.library
        if library is None:
            raise LibraryNotLoadedError("The citation library is not loaded")
        return library

    # --- Templates ---

    def _render(self, source: str, citekey: str) -> str:
        variables = self._require_library().get_template_variables_for_citekey(citekey)
        return self.templates.render(source, variables)

    @property
    def literature_note_title_template(self):
        return self.templates.compile(self.settings.literature_note_title_template)

    @property
    def literature_note_content_template(self):
        return self.templates.compile(self.settings.literature_note_content_template)

    @property
    def markdown_citation_template(self):
        return self.templates.compile(self.settings.markdown_citation_template)

    @property
    def alternative_markdown_citation_template(self):
        return self.templates.compile(self.settings.alternative_markdown_citation_template)

    def get_title_for_citekey(self, citekey: str) -> str:
        unsafe_title = self._render(self.settings.literature_note_title_template, citekey)
        return DISALLOWED_FILENAME_CHARACTERS_RE.sub("_", unsafe_title)

    def get_path_for_citekey(self, citekey: str) -> str:
        title = self.get_title_for_citekey(citekey)
        return normalize_path(f"{self.settings.literature_note_folder}/{title}.md")

    def get_initial_content_for_citekey(self, citekey: str) -> str:
        return self._render(self.settings.literature_note_content_template, citekey)

    def get_markdown_citation_for_citekey(self, citekey: str) -> str:
        return self._render(self.settings.markdown_citation_template, citekey)

    def get_alternative_markdown_citation_for_citekey(self, citekey: str) -> str:
        return self._render(self.settings.alternative_markdown_citation_template, citekey)

    def get_entry_zotero_link_for_citekey(self, citekey: str) -> str:
        return f"[{citekey}](zotero://select/items/{citekey})"

    def get_pdf_zotero_link_for_citekey(self, citekey: str) -> str:
        variables = self._require_library().get_template_variables_for_citekey(citekey)
        uri = variables["zoteroPdfURI"] or variables["zoteroSelectURI"]
        return f"[{citekey}:pdf]({uri})"

    # --- Literature notes ---

    def get_or_create_literature_note_file(self, citekey: str) -> str:
        """
        Find the literature note for a citekey, creating it if needed.

        The lookup falls back to a case-insensitive match so that notes
        differing only by case are never duplicated.

        Returns:
            Vault-relative path of the note
        """
        path = self.get_path_for_citekey(citekey)

        existing = self.vault.get_file_by_path(path)
        if existing is not None:
            return existing

        lowered = path.lower()
        matches = [f for f in self.vault.markdown_files() if f.lower() == lowered]
        if matches:
            return matches[0]

        content = self.get_initial_content_for_citekey(citekey)
        try:
            return self.vault.create(path, content)
        except OSError:
            self.literature_note_error_notifier.show()
            raise

    def open_literature_note(self, citekey: str, new_pane: bool = False) -> str:
        path = self.get_or_create_literature_note_file(citekey)
        self.editor.open_file(self.vault.absolute_path(path), new_pane)
        return path

    def insert_literature_note_link(self, citekey: str) -> str:
        path = self.get_or_create_literature_note_file(citekey)
        title = self.get_title_for_citekey(citekey)
        if self.settings.use_markdown_links:
            link_text = f"[{title}]({self.vault.link_text(path)})"
        else:
            link_text = f"[[{title}]]"
        self.editor.replace_selection(link_text)
        return link_text

    def insert_literature_note_content(self, citekey: str) -> str:
        """Format literature note content for a reference and insert it at the cursor."""
        content = self.get_initial_content_for_citekey(citekey)
        self.editor.insert_text_at_cursor(content)
        return content

    def insert_markdown_citation(self, citekey: str, alternative: bool = False) -> str:
        if alternative:
            citation = self.get_alternative_markdown_citation_for_citekey(citekey)
        else:
            citation = self.get_markdown_citation_for_citekey(citekey)
        self.editor.insert_text_at_cursor(citation)
        return citation

    def insert_zotero_link(self, citekey: str, alternative: bool = False) -> str:
        if alternative:
            link = self.get_entry_zotero_link_for_citekey(citekey)
        else:
            link = self.get_pdf_zotero_link_for_citekey(citekey)
        self.editor.insert_text_at_cursor(link)
        return link

    # --- Zotero ---

    def citekey_for_note(self, path: Union[str, Path]) -> Optional[str]:
        """Return the note's base name if it is a citekey in the library."""
        library = self.library
        if library is None:
            return None
        stem = self.vault.basename(str(path))
        return stem if stem in library else None

    def citekey_at_cursor(self, line: Optional[str] = None, column: Optional[int] = None) -> Optional[str]:
        """Return the word under the cursor if it is a citekey in the library."""
        library = self.library
        if library is None:
            return None
        if line is None or column is None:
            line, column = self.editor.get_cursor_line()
        for match in CITEKEY_WORD_RE.finditer(line):
            if match.start() <= column <= match.end():
                word = match.group(0).lstrip("@").rstrip(".:")
                return word if word in library else None
        return None

    def open_in_zotero(self, citekey: str) -> bool:
        """Open the primary PDF of a reference (or the entry itself) in Zotero."""
        variables = self._require_library().get_template_variables_for_citekey(citekey)
        uri = variables["zoteroPdfURI"] or variables["zoteroSelectURI"]
        logger.info(f"Opening {uri}")
        return CommandExecutor.open_uri(uri)
