import json
import logging
import threading
from pathlib import Path
from string import Template
from typing import Any, Mapping

from gateway.services.errors import InternalError

logger = logging.getLogger(__name__)


class TemplateError(InternalError):
    pass


def _json_escape(value: Any) -> str:
    if value is None:
        value = ""
    return json.dumps(str(value))[1:-1]


class TemplateRenderer:
    """JSON response template loaded from disk.

    Placeholders use ``$name`` syntax; every substituted value is JSON-string
    escaped, so placeholders belong inside quotes in the template.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._template = self._load()

    def _load(self) -> Template:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise TemplateError(f"read template: {e}") from e
        template = Template(content)
        if not template.is_valid():
            raise TemplateError(f"parse template: invalid placeholder in {self.path}")
        return template

    def reload(self) -> None:
        template = self._load()
        with self._lock:
            self._template = template
        logger.info("Reloaded response template from %s", self.path)

    def render(self, context: Mapping[str, Any]) -> str:
        with self._lock:
            template = self._template
        escaped = {key: _json_escape(value) for key, value in context.items()}
        try:
            return template.substitute(escaped)
        except KeyError as e:
            raise TemplateError(f"render template: unknown placeholder {e}") from e
