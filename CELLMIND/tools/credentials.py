"""API key storage for CellMind."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from CELLMIND.interfaces.collaborators import CredentialStore

API_KEY_PROPERTY = "CELLMINDAI_API_KEY"


def _validated(key: str) -> str:
    if not key or not key.strip():
        raise ValueError("API key cannot be empty")
    return key.strip()


class MemoryCredentialStore(CredentialStore):
    """Process-local store, mainly for tests and one-off runs."""

    def __init__(self, key: Optional[str] = None) -> None:
        self._key = key

    def get(self) -> Optional[str]:
        return self._key

    def set(self, key: str) -> None:
        self._key = _validated(key)

    def clear(self) -> None:
        self._key = None


class FileCredentialStore(CredentialStore):
    """Keeps the key in a small JSON file readable only by the current user."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._cached: Optional[str] = None

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Credential file {self.path} is not valid JSON") from exc

    def get(self) -> Optional[str]:
        if self._cached:
            return self._cached
        saved = self._read().get(API_KEY_PROPERTY)
        if saved:
            self._cached = saved
        return self._cached

    def set(self, key: str) -> None:
        key = _validated(key)
        payload = self._read()
        payload[API_KEY_PROPERTY] = key
        self._write(payload)
        self._cached = key

    def clear(self) -> None:
        self._cached = None
        payload = self._read()
        if API_KEY_PROPERTY not in payload:
            return
        del payload[API_KEY_PROPERTY]
        self._write(payload)

    def _write(self, payload: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # created owner-only; an older file keeps its mode under O_CREAT, so tighten it before writing
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.chmod(self.path, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(payload, indent=2))
