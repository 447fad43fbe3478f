"""Template compilation for literature notes and citations."""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Mapping

from jinja2 import Environment, Template, TemplateError

from cite_core.constants import TEMPLATE_CACHE_SIZE
from cite_core.errors import TemplateRenderError

logger = logging.getLogger(__name__)


def _finalize(value: Any) -> Any:
    return "" if value is None else value


class TemplateEngine:
    """
    Compile and render user templates.

    Output is inserted into Markdown documents, so nothing is escaped.
    Compiled templates are cached by their source string: changing a setting
    simply produces a different key.
    """

    def __init__(self, cache_size: int = TEMPLATE_CACHE_SIZE):
        self.environment = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            finalize=_finalize,
        )
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, Template]" = OrderedDict()
        self._lock = threading.Lock()

    def compile(self, source: str) -> Template:
        """
        Compile a template, reusing a cached one for the same source.

        Raises:
            TemplateRenderError: if the template is syntactically invalid
        """
        with self._lock:
            template = self._cache.get(source)
            if template is not None:
                self._cache.move_to_end(source)
                return template

        try:
            template = self.environment.from_string(source)
        except TemplateError as e:
            raise TemplateRenderError(f"Invalid template {source!r}: {e}") from e

        with self._lock:
            self._cache[source] = template
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return template

    def render(self, source: str, variables: Mapping[str, Any]) -> str:
        """Compile (or fetch) a template and render it with the given variables."""
        template = self.compile(source)
        try:
            return template.render(**dict(variables))
        except TemplateError as e:
            raise TemplateRenderError(f"Error rendering template {source!r}: {e}") from e

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_info(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._cache), "max_size": self.cache_size}
