"""
fictrac_subject.persistence

Kleine key/value opslag die sessies overleeft (float waarden).

HeadingAverager keeps its circular mean here between sessions. Two
implementations: in memory (tests, dry runs) and a JSON file next to the
session logs.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Protocol

logger = logging.getLogger(__name__)


class PersistentKeyValueStore(Protocol):
    def get_float(self, key: str, default: float = 0.0) -> float: ...

    def set_float(self, key: str, value: float) -> None: ...


class InMemoryStore:
    def __init__(self, initial: Dict[str, float] | None = None):
        self.values: Dict[str, float] = dict(initial or {})

    def get_float(self, key: str, default: float = 0.0) -> float:
        return float(self.values.get(key, default))

    def set_float(self, key: str, value: float) -> None:
        self.values[key] = float(value)


class JsonFileStore:
    """
    Float store backed by one JSON object on disk.

    Loaded once at construction; every ``set_float`` rewrites the file
    through a temp file + rename so a crash never leaves half a file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._values: Dict[str, float] = {}
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
                self._values = {str(k): float(v) for k, v in raw.items()}
            except (OSError, ValueError, AttributeError) as e:
                logger.warning("Ignoring unreadable store %s: %s", self.path, e)
                self._values = {}

    def get_float(self, key: str, default: float = 0.0) -> float:
        return float(self._values.get(key, default))

    def set_float(self, key: str, value: float) -> None:
        self._values[key] = float(value)
        self._save()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
