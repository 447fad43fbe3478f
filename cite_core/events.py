"""Minimal event emitter for library load notifications."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class CitationEvents:
    """Named events with any number of listeners."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def on(self, name: str, callback: Callable[..., Any]) -> Callable[..., Any]:
        self._listeners[name].append(callback)
        return callback

    def off(self, name: str, callback: Callable[..., Any]) -> None:
        listeners = self._listeners.get(name, [])
        if callback in listeners:
            listeners.remove(callback)

    def trigger(self, name: str, *args: Any) -> None:
        for callback in list(self._listeners.get(name, [])):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in '{name}' listener {callback!r}: {e}")
