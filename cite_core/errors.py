"""Exception types for the citations package."""


class CitationError(Exception):
    """Base class for all citation errors."""


class WorkerChannelBlocked(CitationError):
    """Raised when a parse is posted while another one is still in flight.

    This is not a failure: a library load is already in progress and the
    caller should ignore the request or try again later.
    """


class DatabaseParseError(CitationError):
    """The worker could not parse the bibliography database."""


class MissingCitekeyError(CitationError, ValueError):
    """A raw record has no citekey field for its declared format."""


class UnknownCitekeyError(CitationError, KeyError):
    """The citekey is not present in the library."""

    def __str__(self) -> str:
        return f"Unknown citekey: {self.args[0]}" if self.args else "Unknown citekey"


class LibraryNotLoadedError(CitationError):
    """An operation needs the library but no load cycle has completed."""


class TemplateRenderError(CitationError):
    """A template failed to compile or render."""


class WatchSetupError(CitationError):
    """The export file could not be watched."""
