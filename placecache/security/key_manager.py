"""Centralised API key access.

Every provider credential is read through ``KeyManager`` rather than
``os.getenv`` so that values can be scrubbed from logs and error messages.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Optional

from placecache.security.redact import redact_sensitive
from placecache.shared.exceptions import KeyMissingError

GEOAPIFY_KEY_NAME = "GEOAPIFY_API_KEY"


class _KeyEntry:
    __slots__ = ("value", "loaded_at", "source")

    def __init__(self, value: str, source: str):
        self.value = value
        self.loaded_at = time.time()
        self.source = source


class KeyManager:
    def __init__(self):
        self._keys: dict[str, _KeyEntry] = {}
        self._lock = threading.Lock()

    def get(self, name: str, *, required: bool = False) -> Optional[str]:
        with self._lock:
            entry = self._keys.get(name)
            if entry is None:
                raw = os.getenv(name, "").strip()
                if raw:
                    entry = _KeyEntry(value=raw, source="env")
                    self._keys[name] = entry
                elif required:
                    raise KeyMissingError(name)
                else:
                    return None
            return entry.value

    def get_geoapify_key(self, *, required: bool = True) -> str:
        return self.get(GEOAPIFY_KEY_NAME, required=required) or ""

    def scrub_text(self, text: str) -> str:
        """Erase every loaded key value from ``text``."""
        result = str(text) if text is not None else ""
        for name, entry in list(self._keys.items()):
            if entry.value and entry.value in result:
                result = result.replace(entry.value, f"[{name}:***REDACTED***]")
        return redact_sensitive(result)

    def reload(self, name: str) -> None:
        """Re-read a key from the environment, e.g. after rotation."""
        raw = os.getenv(name, "").strip()
        with self._lock:
            if raw:
                self._keys[name] = _KeyEntry(value=raw, source="env")
            else:
                self._keys.pop(name, None)


_manager: Optional[KeyManager] = None
_manager_lock = threading.Lock()


def get_key_manager() -> KeyManager:
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = KeyManager()
        return _manager
