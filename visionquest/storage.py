"""Small key/value persistence for settings and feedback history.

Each key lives in its own JSON file and every write replaces the whole
value, so a reader never sees a half-written sequence.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from loguru import logger


class JsonStore:
    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable value for {}: {}", key, e)
            return default

    def set(self, key: str, value: Any) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryStore:
    """In-process store with the same interface, for tests and ephemeral runs."""

    def __init__(self, initial: dict | None = None):
        self._values = {k: json.loads(json.dumps(v)) for k, v in (initial or {}).items()}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._values:
            return default
        return json.loads(json.dumps(self._values[key]))

    def set(self, key: str, value: Any) -> None:
        self._values[key] = json.loads(json.dumps(value))

    def remove(self, key: str) -> None:
        self._values.pop(key, None)
