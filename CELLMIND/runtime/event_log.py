"""JSONL event log for chain runs."""
from __future__ import annotations

import json
import threading
import uuid
from pathlib import Path
from typing import Any, Dict


class EventLog:
    """Appends one JSON object per event to a file. A None path disables logging."""

    def __init__(self, log_path: Path | None = None) -> None:
        self.log_path = log_path
        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def new_run_id() -> str:
        return str(uuid.uuid4())

    def log(self, event: str, uid: str | None = None, payload: Dict[str, Any] | None = None) -> None:
        if not self.log_path:
            return
        entry = {
            "event": event,
            "uid": uid,
            "payload": payload or {},
        }
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")


class CancellationToken:
    """Thread-safe flag a caller can set to stop a chain before its next step."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __call__(self) -> bool:
        return self._event.is_set()
