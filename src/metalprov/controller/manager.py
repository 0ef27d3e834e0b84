# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/controller/manager.py
"""
Runs a reconciler against the object store.

  watch threads (one per watched kind)  ->  WorkQueue  ->  worker pool

Watch threads map every event to TinkerbellMachine keys and enqueue them.
Workers pull keys, call reconcile() and requeue according to the outcome.
A periodic resync enqueues every TinkerbellMachine so that a missed event
is never fatal.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from ..config.models import ControllerConfig
from ..kube.resources import TINKERBELL_MACHINE, ObjectKey, ResourceKind
from ..kube.store import ObjectStore
from ..machine.controller import MachineReconciler, has_filter_label
from .queue import WorkQueue

log = logging.getLogger("metalprov")

WATCH_RETRY_SECONDS = 5.0


class Manager:
    def __init__(
        self,
        store: ObjectStore,
        reconciler: MachineReconciler,
        config: Optional[ControllerConfig] = None,
        queue: Optional[WorkQueue] = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.config = config if config is not None else reconciler.config
        self.queue = queue if queue is not None else WorkQueue(
            backoff_base=self.config.backoff_base_seconds,
            backoff_max=self.config.backoff_max_seconds,
        )
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None

    # -----------------------------------------------------------------
    # Event intake
    # -----------------------------------------------------------------

    def handle_event(
        self,
        kind: ResourceKind,
        mapper: Callable[[Dict[str, Any]], List[ObjectKey]],
        event: Dict[str, Any],
    ) -> List[ObjectKey]:
        """Map one watch event to machine keys and enqueue them."""
        obj = event.get("object") or {}
        if kind == TINKERBELL_MACHINE and not has_filter_label(obj, self.config.watch_filter_value):
            return []

        try:
            keys = mapper(obj)
        except Exception:
            meta = obj.get("metadata") or {}
            log.warning(
                f"mapping {kind.kind} {meta.get('namespace')}/{meta.get('name')} failed",
                exc_info=True,
            )
            return []

        for key in keys:
            log.debug(f"{event.get('type')} {kind.kind} -> enqueue {key}")
            self.queue.add(key)
        return keys

    def resync(self) -> int:
        """Enqueue every TinkerbellMachine. Returns how many were queued."""
        items = self.store.list(TINKERBELL_MACHINE, namespace=self.config.namespace)
        n = 0
        for obj in items:
            if not has_filter_label(obj, self.config.watch_filter_value):
                continue
            meta = obj["metadata"]
            self.queue.add(ObjectKey(meta.get("namespace"), meta["name"]))
            n += 1
        log.debug(f"resync queued {n} TinkerbellMachine(s)")
        return n

    def _watch_loop(self, kind: ResourceKind, mapper) -> None:
        while not self._stop.is_set():
            try:
                for event in self.store.watch(
                    kind,
                    namespace=self.config.namespace,
                    stop=self._stop,
                    timeout_seconds=self.config.watch_timeout_seconds,
                ):
                    self.handle_event(kind, mapper, event)
            except Exception as e:
                log.warning(f"watch on {kind.kind} failed, retrying in {WATCH_RETRY_SECONDS}s: {e}")
                self._stop.wait(WATCH_RETRY_SECONDS)

    def _resync_loop(self) -> None:
        while not self._stop.wait(self.config.resync_seconds):
            try:
                self.resync()
            except Exception as e:
                log.warning(f"resync failed: {e}")

    # -----------------------------------------------------------------
    # Workers
    # -----------------------------------------------------------------

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """
        Reconcile one key. Returns False when the queue is shut down or
        nothing arrived within *timeout*.
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False

        try:
            result = self.reconciler.reconcile(key)
        except Exception as e:
            delay = self.queue.add_rate_limited(key)
            log.error(f"reconcile {key} failed, retrying in {delay:.1f}s: {e}")
            log.debug(f"reconcile {key} traceback", exc_info=True)
        else:
            self.queue.forget(key)
            if result.requeue_after:
                log.debug(f"requeue {key} after {result.requeue_after}s")
                self.queue.add_after(key, result.requeue_after)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while self.process_next():
            pass

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def start(self) -> None:
        for kind, mapper in self.reconciler.watches():
            t = threading.Thread(
                target=self._watch_loop,
                args=(kind, mapper),
                name=f"watch-{kind.plural}",
                daemon=True,
            )
            t.start()
            self._threads.append(t)

        t = threading.Thread(target=self._resync_loop, name="resync", daemon=True)
        t.start()
        self._threads.append(t)

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.workers,
            thread_name_prefix="reconcile",
        )
        for _ in range(self.config.workers):
            self._executor.submit(self._worker)

        log.info(
            f"manager started: workers={self.config.workers} "
            f"namespace={self.config.namespace or '*'} watches={len(self._threads) - 1}"
        )

    def stop(self) -> None:
        log.info("manager stopping")
        self._stop.set()
        self.queue.shutdown()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        for t in self._threads:
            t.join(timeout=1.0)
        self._threads = []

    def run(self) -> None:
        """Start and block until stop() is called or the process is interrupted."""
        self.start()
        try:
            while not self._stop.wait(1.0):
                pass
        finally:
            self.stop()
