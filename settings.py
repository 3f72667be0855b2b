from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Value = Union[int, str]


class Settings:
    """Namespaced key/value store for small scalars.

    With a path, every write is flushed to a JSON file holding just this
    namespace. Without one, values live in memory only.
    """

    def __init__(self, namespace: str, path: Optional[Path] = None):
        self.namespace = namespace
        self.path = path
        self._lock = Lock()
        self._write_lock = Lock()
        self._values: Dict[str, Value] = self._read() if path else {}

    @classmethod
    def open(cls, directory: Path, namespace: str) -> "Settings":
        return cls(namespace, Path(directory) / f"{namespace}.json")

    def get_string(self, key: str, default: str = "") -> str:
        with self._lock:
            value = self._values.get(key)
        return value if isinstance(value, str) else default

    def set_string(self, key: str, value: str) -> None:
        self._set(key, str(value))

    def get_int(self, key: str, default: int = 0) -> int:
        with self._lock:
            value = self._values.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            return default
        return value

    def set_int(self, key: str, value: int) -> None:
        self._set(key, int(value))

    def erase_key(self, key: str) -> None:
        with self._write_lock:
            with self._lock:
                if key not in self._values:
                    return
                del self._values[key]
                snapshot = dict(self._values)
            self._write(snapshot)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._values)

    def _set(self, key: str, value: Value) -> None:
        # _write_lock keeps file writes in the same order as the updates
        with self._write_lock:
            with self._lock:
                self._values[key] = value
                snapshot = dict(self._values)
            self._write(snapshot)

    def _read(self) -> Dict[str, Value]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except Exception as exc:  # pragma: no cover - corrupted file
            logger.error("Failed to load settings %s from %s: %s", self.namespace, self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.error("Settings file %s does not hold an object, ignoring it", self.path)
            return {}
        return {k: v for k, v in payload.items() if isinstance(v, (int, str))}

    def _write(self, values: Dict[str, Value]) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(values, f, ensure_ascii=False, indent=2)
