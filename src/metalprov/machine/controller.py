# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/controller.py
"""
The TinkerbellMachine reconciler.

reconcile() is level triggered: it reads everything it needs, performs at
most one batch of writes and returns. Waiting for something external is
never done in here; the pass simply returns and a watch event or the
requested requeue brings the machine back.

Outcome of a pass:
  ReconcileResult()                   done, or waiting for a watch event
  ReconcileResult(requeue_after=n)    come back in n seconds
  exception                           retry with backoff
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..api.cluster import (
    CLUSTER_NAME_LABEL,
    PAUSED_ANNOTATION,
    WATCH_FILTER_LABEL,
    Cluster,
    Machine,
    TinkerbellCluster,
    TinkerbellMachine,
)
from ..api.core import Secret
from ..config.models import ControllerConfig
from ..kube import labels
from ..kube.errors import NotFoundError, StoreError
from ..kube.resources import (
    BMC_JOB,
    CAPI_CLUSTER,
    CAPI_MACHINE,
    CLUSTER_GROUP,
    INFRA_GROUP,
    IP_ADDRESS_CLAIM,
    TINKERBELL_CLUSTER,
    TINKERBELL_MACHINE,
    WORKFLOW,
    ObjectKey,
    ResourceKind,
)
from ..kube.store import ObjectStore
from ..logging.log import object_logger
from ..observers.dispatcher import EventBus
from ..observers.events import ReconcileFailed
from .errors import MachineVersionEmptyError, TerminalError
from .hardware import ensure_hardware, ensure_user_data, set_addresses
from .ipam import reconcile_ipam
from .provisioning import reconcile_provisioning
from .scope import MachineScope
from .teardown import delete_machine

log = logging.getLogger("metalprov")

BOOTSTRAP_DATA_KEY = "value"

Mapper = Callable[[Dict[str, Any]], List[ObjectKey]]


@dataclass(frozen=True)
class ReconcileResult:
    requeue_after: Optional[float] = None


def _group(api_version: Optional[str]) -> str:
    if not api_version or "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


def is_paused(obj: Dict[str, Any]) -> bool:
    meta = obj.get("metadata") or {}
    if PAUSED_ANNOTATION in (meta.get("annotations") or {}):
        return True
    return bool((obj.get("spec") or {}).get("paused"))


def has_filter_label(obj: Dict[str, Any], value: Optional[str]) -> bool:
    if not value:
        return True
    return ((obj.get("metadata") or {}).get("labels") or {}).get(WATCH_FILTER_LABEL) == value


# ---------------------------------------------------------------------
# Watch event -> TinkerbellMachine keys
# ---------------------------------------------------------------------

def machine_to_tinkerbell_machine(obj: Dict[str, Any]) -> List[ObjectKey]:
    """CAPI Machine -> the TinkerbellMachine in its infrastructureRef."""
    m = Machine.from_dict(obj)
    ref = m.spec.infrastructure_ref
    if ref.kind != TINKERBELL_MACHINE.kind or _group(ref.api_version) != INFRA_GROUP or not ref.name:
        return []
    return [ObjectKey(ref.namespace or m.namespace, ref.name)]


def controlled_by_tinkerbell_machine(obj: Dict[str, Any]) -> List[ObjectKey]:
    """Workflow / BMC Job / IPAddressClaim -> their controlling TinkerbellMachine."""
    meta = obj.get("metadata") or {}
    for ref in meta.get("ownerReferences") or []:
        if (
            ref.get("controller")
            and ref.get("kind") == TINKERBELL_MACHINE.kind
            and _group(ref.get("apiVersion")) == INFRA_GROUP
        ):
            return [ObjectKey(meta.get("namespace"), ref["name"])]
    return []


def cluster_machines_mapper(store: ObjectStore) -> Mapper:
    """
    Cluster or TinkerbellCluster -> every TinkerbellMachine of that cluster,
    found through the cluster-name label Cluster API puts on them.
    """

    def mapper(obj: Dict[str, Any]) -> List[ObjectKey]:
        meta = obj.get("metadata") or {}
        name = (meta.get("labels") or {}).get(CLUSTER_NAME_LABEL)
        if not name and obj.get("kind") == CAPI_CLUSTER.kind:
            name = meta.get("name")
        if not name:
            for ref in meta.get("ownerReferences") or []:
                if ref.get("kind") == CAPI_CLUSTER.kind and _group(ref.get("apiVersion")) == CLUSTER_GROUP:
                    name = ref.get("name")
                    break
        if not name:
            return []

        items = store.list(
            TINKERBELL_MACHINE,
            namespace=meta.get("namespace"),
            label_selector=labels.equality_selector({CLUSTER_NAME_LABEL: name}),
        )
        return [ObjectKey(i["metadata"].get("namespace"), i["metadata"]["name"]) for i in items]

    return mapper


def tinkerbell_machine_key(obj: Dict[str, Any]) -> List[ObjectKey]:
    meta = obj.get("metadata") or {}
    return [ObjectKey(meta.get("namespace"), meta["name"])]


# ---------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------

class MachineReconciler:
    def __init__(
        self,
        store: ObjectStore,
        config: Optional[ControllerConfig] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
    ):
        self.store = store
        self.config = config if config is not None else ControllerConfig()
        self.bus = bus if bus is not None else EventBus()
        self.run_id = run_id

    def watches(self) -> List[Tuple[ResourceKind, Mapper]]:
        cluster_mapper = cluster_machines_mapper(self.store)
        return [
            (TINKERBELL_MACHINE, tinkerbell_machine_key),
            (CAPI_MACHINE, machine_to_tinkerbell_machine),
            (TINKERBELL_CLUSTER, cluster_mapper),
            (CAPI_CLUSTER, cluster_mapper),
            (WORKFLOW, controlled_by_tinkerbell_machine),
            (BMC_JOB, controlled_by_tinkerbell_machine),
            (IP_ADDRESS_CLAIM, controlled_by_tinkerbell_machine),
        ]

    # -----------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        try:
            obj = self.store.get(TINKERBELL_MACHINE, key.namespace, key.name)
        except NotFoundError:
            log.debug(f"TinkerbellMachine {key} not found")
            return ReconcileResult()

        if not has_filter_label(obj, self.config.watch_filter_value):
            log.debug(f"TinkerbellMachine {key} does not carry the watch filter label, skipping")
            return ReconcileResult()

        scope = MachineScope(
            store=self.store,
            machine=TinkerbellMachine.from_dict(obj),
            log=object_logger(TINKERBELL_MACHINE.kind, key),
            config=self.config,
            bus=self.bus,
            run_id=self.run_id,
        )
        scope.log.debug("starting reconcile")

        try:
            return self._reconcile(scope)
        except TerminalError as e:
            self._record_failure(scope, e)
            raise

    def _record_failure(self, scope: MachineScope, err: TerminalError) -> None:
        status = scope.machine.status
        status.error_reason = err.reason
        status.error_message = str(err)
        scope.log.error(f"{err.reason}: {err}")
        scope.emit(ReconcileFailed, reason=err.reason, error=str(err))
        try:
            scope.patch()
        except StoreError as patch_err:
            scope.log.warning(f"could not record failure on status: {patch_err}")

    def _reconcile(self, scope: MachineScope) -> ReconcileResult:
        if scope.machine.deleting:
            delete_machine(scope)
            return ReconcileResult()

        if self._paused(scope):
            scope.log.info("reconciliation is paused")
            return ReconcileResult()

        result = self._reconcile_normal(scope)
        # reached only when nothing failed: a failure from an earlier pass is stale
        scope.clear_error()
        return result

    def _reconcile_normal(self, scope: MachineScope) -> ReconcileResult:
        capi_machine = self._ready_machine(scope)
        if capi_machine is None:
            return ReconcileResult()

        bootstrap_data = self._bootstrap_data(scope, capi_machine)
        if not bootstrap_data:
            return ReconcileResult(requeue_after=self.config.bootstrap_requeue_seconds)

        cluster = self._ready_cluster(scope, capi_machine)
        if cluster is None:
            return ReconcileResult()

        scope.capi_machine = capi_machine
        scope.bootstrap_data = bootstrap_data
        scope.cluster = cluster

        # before anything is created that teardown would have to clean up
        scope.add_finalizer()

        hw = ensure_hardware(scope)

        if not reconcile_ipam(scope, hw):
            scope.log.info("Waiting for IPAM to allocate IP address")
            return ReconcileResult()

        ensure_user_data(scope, hw)
        set_addresses(scope, hw)

        phase = reconcile_provisioning(scope, hw)
        scope.log.debug(f"provisioning phase {phase.value}")
        return ReconcileResult()

    # -----------------------------------------------------------------
    # Upstream inputs
    # -----------------------------------------------------------------

    def _cluster_name(self, scope: MachineScope, capi_machine: Optional[Machine] = None) -> str:
        if capi_machine is not None:
            name = capi_machine.labels.get(CLUSTER_NAME_LABEL) or capi_machine.spec.cluster_name
            if name:
                return name
        return scope.machine.labels.get(CLUSTER_NAME_LABEL, "")

    def _paused(self, scope: MachineScope) -> bool:
        if PAUSED_ANNOTATION in scope.machine.annotations:
            return True
        name = self._cluster_name(scope)
        if not name:
            return False
        cluster = scope.find(Cluster, name)
        return cluster is not None and is_paused(cluster.to_dict())

    def _ready_machine(self, scope: MachineScope) -> Optional[Machine]:
        ref = next(
            (
                r for r in scope.machine.metadata.owner_references or []
                if r.kind == CAPI_MACHINE.kind and _group(r.api_version) == CLUSTER_GROUP
            ),
            None,
        )
        if ref is None:
            scope.log.info("machine is not ready yet: Machine Controller has not yet set OwnerRef")
            return None

        capi_machine = scope.find(Machine, ref.name)
        if capi_machine is None:
            scope.log.info(f"machine is not ready yet: owner Machine {ref.name} not found")
            return None

        if not capi_machine.spec.bootstrap.data_secret_name:
            scope.log.info("machine is not ready yet: bootstrap.dataSecretName is not available yet")
            return None

        if not capi_machine.spec.version:
            raise MachineVersionEmptyError(f"Machine {capi_machine.name} has an empty spec.version")

        return capi_machine

    def _bootstrap_data(self, scope: MachineScope, capi_machine: Machine) -> str:
        name = capi_machine.spec.bootstrap.data_secret_name
        secret = scope.find(Secret, name)
        if secret is None:
            scope.log.info(f"bootstrap data secret {name} not found yet")
            return ""

        data = secret.decoded(BOOTSTRAP_DATA_KEY)
        if data is None:
            scope.log.info(f"bootstrap data secret {name} has no {BOOTSTRAP_DATA_KEY!r} key")
            return ""
        if not data:
            scope.log.info(f"bootstrap data secret {name} is empty")
            return ""
        # compressed cloud-init is valid bootstrap data
        return data.decode("utf-8", errors="replace")

    def _ready_cluster(self, scope: MachineScope, capi_machine: Machine) -> Optional[TinkerbellCluster]:
        name = self._cluster_name(scope, capi_machine)
        cluster = scope.find(Cluster, name) if name else None
        if cluster is None:
            scope.log.info(f"Cluster {name or '-'} not found yet")
            return None

        ref = cluster.spec.infrastructure_ref
        if ref is None or not ref.name:
            scope.log.info(f"Cluster {name} has no infrastructureRef yet")
            return None

        tb_cluster = scope.find(TinkerbellCluster, ref.name)
        if tb_cluster is None or not tb_cluster.status.ready:
            scope.log.info("TinkerbellCluster is not ready yet")
            return None

        return tb_cluster
