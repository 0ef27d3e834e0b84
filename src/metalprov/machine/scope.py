# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/scope.py
"""
Everything one reconciliation pass of one TinkerbellMachine needs.

A scope is built fresh for every pass from reads of the object store and
thrown away afterwards; nothing in it survives between passes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Type, TypeVar

from ..api.cluster import Machine, TinkerbellCluster, TinkerbellMachine
from ..api.meta import KubeObject
from ..config.models import ControllerConfig
from ..kube.errors import NotFoundError
from ..kube.patch import PatchHelper
from ..kube.store import ObjectStore
from ..observers.dispatcher import EventBus
from ..observers.events import new_ctx

# Guard token on TinkerbellMachine and on the Hardware it owns.
MACHINE_FINALIZER = "tinkerbellmachine.infrastructure.cluster.x-k8s.io"

T = TypeVar("T", bound=KubeObject)


@dataclass
class MachineScope:
    store: ObjectStore
    machine: TinkerbellMachine
    log: logging.LoggerAdapter
    config: ControllerConfig = field(default_factory=ControllerConfig)
    bus: EventBus = field(default_factory=EventBus)
    run_id: Optional[str] = None

    # filled in once the owning objects are known to be ready
    capi_machine: Optional[Machine] = None
    cluster: Optional[TinkerbellCluster] = None
    bootstrap_data: str = ""

    patch_helper: PatchHelper = field(init=False)

    def __post_init__(self):
        self.patch_helper = PatchHelper(self.store, self.machine)

    # -----------------------------------------------------------------
    # Identity
    # -----------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.machine.name

    @property
    def namespace(self) -> Optional[str]:
        return self.machine.namespace

    @property
    def kubernetes_version(self) -> str:
        if self.capi_machine is None:
            return ""
        return self.capi_machine.spec.version or ""

    @property
    def cluster_name(self) -> str:
        if self.capi_machine is None:
            return ""
        return self.capi_machine.spec.cluster_name

    # -----------------------------------------------------------------
    # Store access, always in the machine's namespace
    # -----------------------------------------------------------------

    def get(self, model: Type[T], name: str) -> T:
        return model.from_dict(self.store.get(model.RESOURCE, self.namespace, name))

    def find(self, model: Type[T], name: str) -> Optional[T]:
        """Like get(), but None when the object does not exist."""
        try:
            return self.get(model, name)
        except NotFoundError:
            return None

    def create(self, obj: T) -> T:
        return obj.from_dict(self.store.create(obj.RESOURCE, obj.to_dict()))

    def delete(self, model: Type[KubeObject], name: str) -> bool:
        """Returns False when there was nothing to delete."""
        try:
            self.store.delete(model.RESOURCE, self.namespace, name)
        except NotFoundError:
            return False
        return True

    # -----------------------------------------------------------------
    # TinkerbellMachine writes
    # -----------------------------------------------------------------

    def patch(self) -> None:
        """Write back whatever changed on the TinkerbellMachine, conditionally."""
        self.patch_helper.patch(self.machine)

    def add_finalizer(self) -> None:
        if self.machine.add_finalizer(MACHINE_FINALIZER):
            self.log.debug("adding finalizer")
            self.patch()

    def clear_error(self) -> None:
        """Drop a failure recorded by an earlier pass."""
        status = self.machine.status
        if status.error_reason is None and status.error_message is None:
            return
        self.log.info(f"clearing previous failure {status.error_reason}")
        status.error_reason = None
        status.error_message = None
        self.patch()

    def remove_finalizer(self) -> None:
        if self.machine.remove_finalizer(MACHINE_FINALIZER):
            self.log.info("removing finalizer")
            self.patch()

    # -----------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------

    def emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**new_ctx(self.run_id, self.namespace, self.name), **fields))
