"""Operational logging for kidrewards."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import EVENT_LOG_PATH


class StructuredLogger:
    """Write JSON lines log entries for ranking and bonus events."""

    def __init__(self, *, path: Path | str | None = None, clock=None) -> None:
        self.path = Path(path) if path else None
        self._clock = clock
        self._entries: list[dict] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "StructuredLogger":
        return cls(path=EVENT_LOG_PATH)

    def log(self, event_type: str, **fields: object) -> dict:
        moment = self._clock.now() if self._clock else datetime.now()
        entry = {"timestamp": moment.isoformat(), "event": event_type, **fields}
        with self._lock:
            self._entries.append(entry)
            if self.path:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50, *, event: Optional[str] = None) -> tuple[dict, ...]:
        with self._lock:
            entries = list(self._entries)
        if event is not None:
            entries = [entry for entry in entries if entry["event"] == event]
        return tuple(entries[-limit:])


__all__ = ["StructuredLogger"]
