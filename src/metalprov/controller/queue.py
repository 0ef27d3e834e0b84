# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/controller/queue.py
"""
Work queue of object keys shared by the watch threads and the workers.

Guarantees:
  - a key is queued at most once, however many events arrive for it
  - a key is never handed to two workers at the same time; an add() while it
    is being processed is remembered and the key is queued again on done()
  - delayed keys (add_after) are promoted by get(), no timer threads
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Hashable, List, Optional, Set, Tuple


class WorkQueue:
    def __init__(
        self,
        backoff_base: float = 0.5,
        backoff_max: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._clock = clock

        self._cond = threading.Condition()
        self._queue: Deque[Hashable] = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._failures: Dict[Hashable, int] = {}
        self._shutdown = False

    # -----------------------------------------------------------------
    # Adding
    # -----------------------------------------------------------------

    def _add_locked(self, item: Hashable) -> None:
        if self._shutdown or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add(self, item: Hashable) -> None:
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutdown:
                return
            heapq.heappush(self._waiting, (self._clock() + delay, next(self._seq), item))
            self._cond.notify_all()

    def backoff(self, item: Hashable) -> float:
        """Delay for the next retry of *item*, without recording a failure."""
        failures = self._failures.get(item, 0) + 1
        return min(self.backoff_base * (2 ** (failures - 1)), self.backoff_max)

    def add_rate_limited(self, item: Hashable) -> float:
        """Requeue after an exponential backoff. Returns the delay used."""
        with self._cond:
            delay = self.backoff(item)
            self._failures[item] = self._failures.get(item, 0) + 1
        self.add_after(item, delay)
        return delay

    def num_requeues(self, item: Hashable) -> int:
        with self._cond:
            return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        with self._cond:
            self._failures.pop(item, None)

    # -----------------------------------------------------------------
    # Consuming
    # -----------------------------------------------------------------

    def _promote_locked(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, item = heapq.heappop(self._waiting)
            self._add_locked(item)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """
        Next key to process, or None on shutdown or when *timeout* expires.
        Every key returned must be handed back with done().
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                self._promote_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._dirty.discard(item)
                    self._processing.add(item)
                    return item
                if self._shutdown:
                    return None

                now = self._clock()
                wait = None
                if self._waiting:
                    wait = max(self._waiting[0][0] - now, 0.0)
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, item: Hashable) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty and not self._shutdown:
                self._queue.append(item)
                self._cond.notify()

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        return self._shutdown

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
