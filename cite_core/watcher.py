"""
Export file watcher.

Reference managers often write an export in several partial writes. Change
events are fed through a Debouncer so that one burst of writes produces a
single reload once the file has been quiet for the stability threshold.
"""

import os
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from cite_core.constants import DEFAULT_STABILITY_THRESHOLD
from cite_core.errors import WatchSetupError

logger = logging.getLogger(__name__)


class Debouncer:
    """Coalesce bursts of triggers into one callback."""

    def __init__(self, threshold: float, callback: Callable[[], None]):
        self.threshold = threshold
        self.callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        """Start or restart the stability timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.threshold, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self) -> None:
        with self._lock:
            if self._timer is not threading.current_thread():
                # Superseded by a later trigger
                return
            self._timer = None
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Error in debounced callback: {e}")

    def cancel(self) -> None:
        """Drop any pending callback."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class _ExportFileHandler(FileSystemEventHandler):
    """Forward events touching the export file to the debouncer."""

    def __init__(self, path: Path, debouncer: Debouncer):
        self.path = path
        self.debouncer = debouncer

    def _matches(self, raw_path: Union[str, bytes, None]) -> bool:
        if not raw_path:
            return False
        if isinstance(raw_path, bytes):
            raw_path = os.fsdecode(raw_path)
        return os.path.abspath(raw_path) == str(self.path)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("modified", "created", "moved", "closed"):
            return
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", None)):
            logger.debug(f"Export file event: {event.event_type} {event.src_path}")
            self.debouncer.trigger()


class ExportFileWatcher:
    """
    Watch one bibliography export file for changes.

    The observer watches the file's directory because many tools replace the
    export atomically (write a temp file, then rename it over the original).
    """

    def __init__(
        self,
        path: Union[str, Path],
        on_change: Callable[[], None],
        stability_threshold: float = DEFAULT_STABILITY_THRESHOLD
    ):
        self.path = Path(os.path.abspath(path))
        self.debouncer = Debouncer(stability_threshold, on_change)
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """
        Start watching.

        Raises:
            WatchSetupError: if the file does not exist or cannot be watched.
        """
        if self._observer is not None:
            return
        if not self.path.is_file():
            raise WatchSetupError(f"Export file not found: {self.path}")

        observer = Observer()
        try:
            observer.schedule(_ExportFileHandler(self.path, self.debouncer), str(self.path.parent), recursive=False)
            observer.start()
        except OSError as e:
            raise WatchSetupError(f"Cannot watch {self.path}: {e}") from e
        self._observer = observer
        logger.info(f"Watching {self.path} for changes")

    def stop(self) -> None:
        """Stop watching and drop any pending reload."""
        self.debouncer.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Export watcher stopped")
