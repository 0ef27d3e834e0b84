# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/errors.py
from __future__ import annotations


class StoreError(RuntimeError):
    """Base class for object store failures. Always retryable."""


class NotFoundError(StoreError):
    pass


class ConflictError(StoreError):
    """The write lost an optimistic-concurrency race (stale resourceVersion)."""


class AlreadyExistsError(ConflictError):
    pass


def is_not_found(err: BaseException) -> bool:
    """
    True when *err* (or anything in its cause chain) is a NotFoundError.
    Helpers wrap store errors with context, so the chain has to be walked.
    """
    seen = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, NotFoundError):
            return True
        seen.add(id(err))
        err = err.__cause__
    return False


def translate_api_exception(exc, what: str) -> StoreError:
    """
    Map a kubernetes.client ApiException onto the store error types.
    """
    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", "") or ""
    body = getattr(exc, "body", "") or ""
    msg = f"{what}: {status} {reason}".strip()

    if status == 404:
        return NotFoundError(msg)
    if status == 409:
        if "AlreadyExists" in str(body) or "AlreadyExists" in reason:
            return AlreadyExistsError(msg)
        return ConflictError(msg)
    return StoreError(msg)
