"""
Off-thread parsing of bibliography databases.

The parse of a whole export runs in a worker process so that large
libraries do not block the caller. A WorkerChannel allows one request in
flight at a time: a second post while the first is outstanding raises
WorkerChannelBlocked instead of queuing.
"""

import io
import json
import logging
import threading
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import List, Dict, Any, Optional, Callable

from pybtex import errors as pybtex_errors
from pybtex.database.input import bibtex
from pybtex.exceptions import PybtexError
from pybtex.scanner import PybtexSyntaxError
from pybtex.richtext import Text

from cite_core.errors import DatabaseParseError, WorkerChannelBlocked
from cite_core.models import DatabaseType

logger = logging.getLogger(__name__)

# Paths and identifiers are not LaTeX markup; Windows paths contain backslashes
VERBATIM_FIELDS = {"file", "url", "doi"}


def _latex_to_text(value: str) -> str:
    """Render BibTeX field markup ({Protected} words, escapes) as plain text."""
    try:
        return Text.from_latex(value).render_as("text")
    except PybtexError:
        return value


def _person_to_dict(person) -> Dict[str, str]:
    first = " ".join(person.first_names + person.middle_names)
    last = " ".join(person.prelast_names + person.last_names + person.lineage_names)
    return {"firstName": _latex_to_text(first), "lastName": _latex_to_text(last)}


def parse_biblatex(database_raw: str) -> List[Dict[str, Any]]:
    """Parse BibLaTeX source into {key, type, fields, creators} records."""
    parser = bibtex.Parser()
    try:
        # Data errors such as a repeated key skip the record; syntax errors are fatal
        with pybtex_errors.capture() as reported:
            parsed = parser.parse_stream(io.StringIO(database_raw))
            records = [_entry_to_record(key, entry) for key, entry in parsed.entries.items()]
    except (OSError, PybtexError) as exc:
        raise DatabaseParseError(f"Failed to parse BibLaTeX database: {exc}") from exc

    for error in reported:
        if isinstance(error, PybtexSyntaxError):
            raise DatabaseParseError(f"Failed to parse BibLaTeX database: {error}")
        logger.debug(f"Skipping BibLaTeX record: {error}")
    return records


def _entry_to_record(key: str, entry) -> Dict[str, Any]:
    fields = {}
    for name, value in entry.fields.items():
        name = name.lower()
        fields[name] = value if name in VERBATIM_FIELDS else _latex_to_text(value)
    creators = {
        role.lower(): [_person_to_dict(p) for p in persons]
        for role, persons in entry.persons.items()
    }
    return {
        "key": key,
        "type": entry.type,
        "fields": fields,
        "creators": creators,
    }


def parse_csl_json(database_raw: str) -> List[Dict[str, Any]]:
    """Parse a CSL-JSON array."""
    try:
        data = json.loads(database_raw)
    except json.JSONDecodeError as exc:
        raise DatabaseParseError(f"Failed to parse CSL-JSON database: {exc}") from exc
    if not isinstance(data, list):
        raise DatabaseParseError(f"CSL-JSON database must be an array, got {type(data).__name__}")
    return data


def parse_database(request: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Worker entry point.

    Args:
        request: {"databaseRaw": str, "databaseType": "biblatex" | "csl-json"}

    Returns:
        Ordered list of raw records whose shape depends on databaseType.
    """
    try:
        database_type = DatabaseType(request["databaseType"])
        database_raw = request["databaseRaw"]
    except (KeyError, ValueError, TypeError) as exc:
        raise DatabaseParseError(f"Malformed parse request: {exc}") from exc

    if database_type is DatabaseType.BIBLATEX:
        return parse_biblatex(database_raw)
    return parse_csl_json(database_raw)


class WorkerChannel:
    """Single-flight request/response pipe to a parsing worker."""

    def __init__(
        self,
        executor: Optional[Executor] = None,
        target: Callable[[Dict[str, Any]], List[Dict[str, Any]]] = parse_database
    ):
        """
        Args:
            executor: Executor to run the target on. Defaults to a lazily
                created single-process pool owned by this channel.
            target: Function run on the worker; must be picklable for
                process pools.
        """
        self._executor = executor
        self._owns_executor = executor is None
        self._target = target
        self._lock = threading.Lock()
        self._busy = False
        self._outstanding: Optional[Future] = None

    @property
    def blocked(self) -> bool:
        """True while a request is in flight."""
        with self._lock:
            return self._busy

    @property
    def outstanding(self) -> Optional[Future]:
        """Future of the request in flight, if any."""
        with self._lock:
            return self._outstanding

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=1)
        return self._executor

    def post(self, request: Dict[str, Any]) -> Future:
        """
        Send a parse request to the worker.

        Returns:
            A future resolving to the parsed records, or failing with
            DatabaseParseError.

        Raises:
            WorkerChannelBlocked: if another request is still in flight.
        """
        with self._lock:
            if self._busy:
                raise WorkerChannelBlocked("A parse request is already in flight")
            self._busy = True
            result: Future = Future()
            self._outstanding = result

        result.set_running_or_notify_cancel()
        try:
            inner = self._get_executor().submit(self._target, request)
        except (BrokenProcessPool, RuntimeError) as exc:
            self._reset_broken_executor()
            self._release()
            raise DatabaseParseError(f"Parsing worker is unavailable: {exc}") from exc

        inner.add_done_callback(lambda f: self._complete(f, result))
        return result

    def _complete(self, inner: Future, result: Future) -> None:
        if inner.cancelled():
            exc: Optional[BaseException] = DatabaseParseError("Parse request was cancelled")
        else:
            exc = inner.exception()
        if isinstance(exc, BrokenProcessPool):
            logger.error(f"Parsing worker crashed: {exc}")
            self._reset_broken_executor()
            exc = DatabaseParseError(f"Parsing worker crashed: {exc}")
        elif exc is not None and not isinstance(exc, DatabaseParseError):
            exc = DatabaseParseError(f"Parsing failed: {exc}")

        # Free the channel before waking anyone waiting on the result
        self._release()
        if exc is not None:
            result.set_exception(exc)
        else:
            result.set_result(inner.result())

    def _release(self) -> None:
        with self._lock:
            self._busy = False
            self._outstanding = None

    def _reset_broken_executor(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def shutdown(self, wait: bool = True) -> None:
        """Shut down an owned executor."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
