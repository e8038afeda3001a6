"""Capture JSON-formatted root log output for a test block."""

import json
import logging
from io import StringIO

from payhook_api.utils.logging import JSONFormatter


def parse_json_logs(raw: str) -> list[dict]:
    logs = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            logs.append(json.loads(line))
        except json.JSONDecodeError:
            pass
    return logs


class LogCapture:
    """Swap the root handlers for one JSON StreamHandler."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._root = logging.getLogger()
        self._level = level
        self._saved_level = self._root.level
        self._saved: list[logging.Handler] = []
        self._stream: StringIO | None = None
        self._handler: logging.StreamHandler | None = None

    def __enter__(self) -> "LogCapture":
        self._saved = self._root.handlers[:]
        for h in self._saved:
            self._root.removeHandler(h)
        self._saved_level = self._root.level
        self._root.setLevel(self._level)
        self._stream = StringIO()
        self._handler = logging.StreamHandler(self._stream)
        self._handler.setFormatter(JSONFormatter())
        self._root.addHandler(self._handler)
        return self

    def __exit__(self, *_) -> None:
        if self._handler:
            self._root.removeHandler(self._handler)
        if self._stream:
            self._stream.close()
        self._root.setLevel(self._saved_level)
        for h in self._saved:
            self._root.addHandler(h)

    def raw(self) -> str:
        assert self._stream is not None and not self._stream.closed, \
            "Call raw() inside the `with LogCapture()` block"
        return self._stream.getvalue()

    def logs(self) -> list[dict]:
        return parse_json_logs(self.raw())

    def messages(self) -> list[str]:
        return [entry.get("message") for entry in self.logs()]
