# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/observers/jsonfile.py
from __future__ import annotations
import json
import threading
from pathlib import Path
from .events import BaseEvent


class JsonFileObserver:
    """Appends one JSON object per event. Safe to share between workers."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def notify(self, event: BaseEvent) -> None:
        line = json.dumps({"type": event.__class__.__name__, **event.dict()})
        with self._lock:
            with self.path.open("a") as f:
                f.write(line + "\n")
