# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import List, Optional
from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("metalprov")


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers = observers if observers is not None else []

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception:
                # observers must not break a reconcile
                log.warning(
                    "observer %s failed on %s",
                    ob.__class__.__name__,
                    event.__class__.__name__,
                    exc_info=True,
                )
