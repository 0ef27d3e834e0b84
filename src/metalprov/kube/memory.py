# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/memory.py
"""
An ObjectStore that lives in process memory.

It behaves like the API server where the reconcilers can observe a
difference:
  - every write bumps metadata.resourceVersion
  - a patch carrying a stale resourceVersion fails with ConflictError
  - status is only written through the status subresource
  - delete of an object with finalizers only sets deletionTimestamp; the
    object disappears once the last finalizer is removed
  - watch() streams ADDED / MODIFIED / DELETED events
"""

from __future__ import annotations

import copy
import itertools
import queue
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from . import labels
from .errors import AlreadyExistsError, ConflictError, NotFoundError
from .patch import apply_merge_patch
from .resources import ResourceKind

_Key = Tuple[ResourceKind, Optional[str], str]

# never settable by a client
_SERVER_METADATA = ("uid", "creationTimestamp", "deletionTimestamp", "generation", "resourceVersion")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryObjectStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._objects: Dict[_Key, Dict[str, Any]] = {}
        self._rv = itertools.count(1)
        self._subscribers: List[Tuple[ResourceKind, Optional[str], "queue.Queue"]] = []
        # (verb, kind, "ns/name") for every successful write
        self.writes: List[Tuple[str, str, str]] = []

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _lookup(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]:
        obj = self._objects.get((kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind.kind} {namespace}/{name} not found")
        return obj

    def _bump(self, obj: Dict[str, Any]) -> None:
        obj["metadata"]["resourceVersion"] = str(next(self._rv))

    def _record(self, verb: str, kind: ResourceKind, namespace: Optional[str], name: str) -> None:
        self.writes.append((verb, kind.kind, f"{namespace}/{name}"))

    def _notify(self, kind: ResourceKind, event_type: str, obj: Dict[str, Any]) -> None:
        ns = obj["metadata"].get("namespace")
        for sub_kind, sub_ns, q in list(self._subscribers):
            if sub_kind == kind and (sub_ns is None or sub_ns == ns):
                q.put({"type": event_type, "object": copy.deepcopy(obj)})

    def _remove(self, kind: ResourceKind, obj: Dict[str, Any]) -> None:
        meta = obj["metadata"]
        self._objects.pop((kind, meta.get("namespace"), meta["name"]), None)
        self._notify(kind, "DELETED", obj)

    # -----------------------------------------------------------------
    # Test helpers
    # -----------------------------------------------------------------

    def add(self, obj) -> Dict[str, Any]:
        """
        Insert an object verbatim, status included, as if another actor had
        written it. Accepts a KubeObject model or a (kind, dict) tuple.
        """
        if isinstance(obj, tuple):
            kind, body = obj
        else:
            kind, body = obj.RESOURCE, obj.to_dict()
        body = copy.deepcopy(body)
        with self._lock:
            meta = body.setdefault("metadata", {})
            key = (kind, meta.get("namespace"), meta["name"])
            if key in self._objects:
                raise AlreadyExistsError(f"{kind.kind} {key[1]}/{key[2]} already exists")
            meta.setdefault("uid", str(uuid.uuid4()))
            meta.setdefault("creationTimestamp", _now())
            self._bump(body)
            self._objects[key] = body
            self._notify(kind, "ADDED", body)
            return copy.deepcopy(body)

    def set_status(self, kind: ResourceKind, namespace: Optional[str], name: str, status: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite status unconditionally (an external controller at work)."""
        return self.patch(kind, namespace, name, {"status": status}, subresource="status")

    def exists(self, kind: ResourceKind, namespace: Optional[str], name: str) -> bool:
        with self._lock:
            return (kind, namespace, name) in self._objects

    # -----------------------------------------------------------------
    # ObjectStore
    # -----------------------------------------------------------------

    def get(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._lookup(kind, namespace, name))

    def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        reqs = labels.parse(label_selector)
        with self._lock:
            items = [
                copy.deepcopy(obj)
                for (k, ns, _), obj in self._objects.items()
                if k == kind
                and (namespace is None or ns == namespace)
                and labels.matches(reqs, obj["metadata"].get("labels"))
            ]
        items.sort(key=lambda o: (o["metadata"].get("namespace") or "", o["metadata"]["name"]))
        return items

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        body = copy.deepcopy(body)
        meta = body.setdefault("metadata", {})
        if not meta.get("name"):
            raise ValueError(f"{kind.kind} needs metadata.name")
        for field in _SERVER_METADATA:
            meta.pop(field, None)
        if kind.has_status:
            body.pop("status", None)
        meta["generation"] = 1

        with self._lock:
            key = (kind, meta.get("namespace"), meta["name"])
            if key in self._objects:
                raise AlreadyExistsError(f"{kind.kind} {key[1]}/{key[2]} already exists")
            meta["uid"] = str(uuid.uuid4())
            meta["creationTimestamp"] = _now()
            self._bump(body)
            self._objects[key] = body
            self._record("create", kind, key[1], key[2])
            self._notify(kind, "ADDED", body)
            return copy.deepcopy(body)

    def patch(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Dict[str, Any],
        subresource: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = copy.deepcopy(body)
        meta_patch = body.get("metadata") or {}
        precondition = meta_patch.pop("resourceVersion", None)
        for field in _SERVER_METADATA:
            meta_patch.pop(field, None)

        with self._lock:
            current = self._lookup(kind, namespace, name)
            if precondition is not None and precondition != current["metadata"]["resourceVersion"]:
                raise ConflictError(
                    f"{kind.kind} {namespace}/{name}: resourceVersion {precondition} is stale "
                    f"(now {current['metadata']['resourceVersion']})"
                )

            if subresource == "status":
                body = {"status": body.get("status") or {}}
            elif kind.has_status:
                body.pop("status", None)

            updated = apply_merge_patch(current, body)
            if updated == current:
                return copy.deepcopy(current)

            if "spec" in body and updated.get("spec") != current.get("spec"):
                updated["metadata"]["generation"] = current["metadata"].get("generation", 1) + 1
            self._bump(updated)
            self._objects[(kind, namespace, name)] = updated
            self._record("patch/status" if subresource == "status" else "patch", kind, namespace, name)

            meta = updated["metadata"]
            if meta.get("deletionTimestamp") and not meta.get("finalizers"):
                self._remove(kind, updated)
            else:
                self._notify(kind, "MODIFIED", updated)
            return copy.deepcopy(updated)

    def delete(self, kind: ResourceKind, namespace: Optional[str], name: str) -> None:
        with self._lock:
            obj = self._lookup(kind, namespace, name)
            self._record("delete", kind, namespace, name)
            meta = obj["metadata"]
            if meta.get("finalizers"):
                if not meta.get("deletionTimestamp"):
                    meta["deletionTimestamp"] = _now()
                    self._bump(obj)
                    self._notify(kind, "MODIFIED", obj)
                return
            self._remove(kind, obj)

    def watch(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        stop: Optional[threading.Event] = None,
        timeout_seconds: int = 300,
    ) -> Iterator[Dict[str, Any]]:
        q: "queue.Queue" = queue.Queue()
        with self._lock:
            for obj in self.list(kind, namespace):
                q.put({"type": "ADDED", "object": obj})
            sub = (kind, namespace, q)
            self._subscribers.append(sub)

        deadline = time.monotonic() + timeout_seconds
        try:
            while time.monotonic() < deadline:
                if stop is not None and stop.is_set():
                    return
                try:
                    yield q.get(timeout=0.05)
                except queue.Empty:
                    continue
        finally:
            with self._lock:
                self._subscribers.remove(sub)
