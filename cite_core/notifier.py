"""User-visible notices."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Notifier:
    """
    A single persistent notice that is shown at most once until hidden.

    The host decides how a notice is displayed by passing ``display``; the
    message is always logged as well.
    """

    def __init__(self, message: str, display: Optional[Callable[[str], None]] = None):
        self.message = message
        self.display = display
        self._visible = False
        self._lock = threading.Lock()

    @property
    def visible(self) -> bool:
        with self._lock:
            return self._visible

    def show(self) -> bool:
        """Show the notice. Returns False if it was already visible."""
        with self._lock:
            if self._visible:
                return False
            self._visible = True
        logger.error(self.message)
        if self.display is not None:
            self.display(self.message)
        return True

    def hide(self) -> None:
        with self._lock:
            self._visible = False
