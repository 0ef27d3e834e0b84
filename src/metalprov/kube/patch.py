# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/patch.py
"""
Conditional JSON merge patches (RFC 7386).

A PatchHelper snapshots an object when it is read. On patch() it diffs the
snapshot against the current in-memory object and sends only the changed
fields, always together with metadata.resourceVersion. The API server rejects
the write with 409 if someone else updated the object in between, so two
controller replicas can never silently overwrite each other.
"""

from __future__ import annotations

import copy
from typing import Any, Dict

_MISSING = object()

# Server-owned fields that must never show up in a computed diff.
_IGNORED_METADATA = ("resourceVersion", "managedFields", "generation", "creationTimestamp", "uid")


def merge_patch(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compute the merge patch turning *before* into *after*.
    Removed keys become None; lists are replaced wholesale.
    """
    patch: Dict[str, Any] = {}
    for key in before.keys() - after.keys():
        patch[key] = None

    for key, value in after.items():
        old = before.get(key, _MISSING)
        if old == value:
            continue
        if isinstance(old, dict) and isinstance(value, dict):
            nested = merge_patch(old, value)
            if nested:
                patch[key] = nested
        else:
            patch[key] = copy.deepcopy(value)
    return patch


def apply_merge_patch(target: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Apply *patch* to a copy of *target* and return it."""
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = apply_merge_patch(result[key], value)
        elif isinstance(value, dict):
            result[key] = apply_merge_patch({}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _split(data: Dict[str, Any]) -> tuple[Dict[str, Any], Dict[str, Any]]:
    main = {k: v for k, v in data.items() if k != "status"}
    meta = dict(main.get("metadata") or {})
    for field in _IGNORED_METADATA:
        meta.pop(field, None)
    main["metadata"] = meta
    return main, data.get("status") or {}


class PatchHelper:
    """
    Tracks one object and writes back what changed.

    Spec/metadata go to the main resource, status goes to the status
    subresource when the kind has one.
    """

    def __init__(self, store, obj):
        self._store = store
        self._before = obj.to_dict()

    def reset(self, obj) -> None:
        self._before = obj.to_dict()

    def has_changes(self, obj) -> bool:
        before_main, before_status = _split(self._before)
        after_main, after_status = _split(obj.to_dict())
        return bool(merge_patch(before_main, after_main) or merge_patch(before_status, after_status))

    def patch(self, obj) -> None:
        kind = obj.RESOURCE
        before_main, before_status = _split(self._before)
        after_main, after_status = _split(obj.to_dict())

        main = merge_patch(before_main, after_main)
        status = merge_patch(before_status, after_status)

        if status and not kind.has_status:
            main["status"] = status
            status = {}

        if main:
            main.setdefault("metadata", {})["resourceVersion"] = obj.metadata.resource_version
            result = self._store.patch(kind, obj.namespace, obj.name, main)
            obj.metadata.resource_version = result["metadata"].get("resourceVersion")

        if status:
            body = {
                "metadata": {"resourceVersion": obj.metadata.resource_version},
                "status": status,
            }
            result = self._store.patch(kind, obj.namespace, obj.name, body, subresource="status")
            obj.metadata.resource_version = result["metadata"].get("resourceVersion")

        self._before = obj.to_dict()
