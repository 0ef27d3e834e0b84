# tests/conftest.py
from __future__ import annotations

import base64
from typing import Dict, List, Optional, Sequence, Union

import pytest

from metalprov.api.cluster import CLUSTER_NAME_LABEL, Machine, TinkerbellCluster, TinkerbellMachine
from metalprov.api.tinkerbell import Hardware
from metalprov.config.models import ControllerConfig
from metalprov.kube.memory import InMemoryObjectStore
from metalprov.kube.resources import (
    CAPI_CLUSTER,
    CAPI_MACHINE,
    HARDWARE,
    SECRET,
    TINKERBELL_CLUSTER,
    TINKERBELL_MACHINE,
)
from metalprov.logging.log import object_logger
from metalprov.machine.controller import MachineReconciler
from metalprov.machine.scope import MachineScope
from metalprov.observers.dispatcher import EventBus

NS = "default"
CLUSTER = "c1"
INFRA_API = "infrastructure.cluster.x-k8s.io/v1beta1"
CAPI_API = "cluster.x-k8s.io/v1beta1"

BOOTSTRAP = "#cloud-config\nprovider_id: PROVIDER_ID\n"


class RecordingObserver:
    def __init__(self):
        self.events: List = []

    def notify(self, event) -> None:
        self.events.append(event)


class World:
    """
    A cluster's worth of objects in an in-memory store, plus shortcuts to
    build scopes and run the reconciler against them.
    """

    def __init__(self):
        self.store = InMemoryObjectStore()
        self.observer = RecordingObserver()
        self.bus = EventBus([self.observer])
        self.config = ControllerConfig(tinkerbell_ip="10.1.1.1")

    # -----------------------------------------------------------------
    # Builders
    # -----------------------------------------------------------------

    def add_hardware(
        self,
        name: str,
        *,
        labels: Optional[Dict[str, str]] = None,
        ip: Optional[str] = "10.0.0.10",
        bmc: Optional[str] = None,
        disks: Sequence[str] = ("/dev/sda",),
        uefi: bool = False,
        instance_id: Optional[str] = None,
        dhcp: bool = True,
        namespace: str = NS,
    ) -> dict:
        iface: dict = {"netboot": {"allowPXE": True, "allowWorkflow": True}}
        if dhcp:
            iface["dhcp"] = {"mac": "3c:ec:ef:00:00:01", "uefi": uefi}
            if ip:
                iface["dhcp"]["ip"] = {"address": ip, "netmask": "255.255.255.0"}
        spec: dict = {
            "interfaces": [iface],
            "disks": [{"device": d} for d in disks],
            "metadata": {"instance": {"id": instance_id or "3c:ec:ef:00:00:01", "state": ""}},
        }
        if bmc:
            spec["bmcRef"] = {"apiGroup": "bmc.tinkerbell.org", "kind": "Machine", "name": bmc}
        body = {
            "apiVersion": "tinkerbell.org/v1alpha1",
            "kind": "Hardware",
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
            "spec": spec,
        }
        return self.store.add((HARDWARE, body))

    def add_machine(
        self,
        name: str = "m1",
        *,
        spec: Optional[dict] = None,
        owner: bool = True,
        annotations: Optional[Dict[str, str]] = None,
        namespace: str = NS,
    ) -> dict:
        meta: dict = {"name": name, "namespace": namespace, "labels": {CLUSTER_NAME_LABEL: CLUSTER}}
        if owner:
            meta["ownerReferences"] = [
                {"apiVersion": CAPI_API, "kind": "Machine", "name": name, "uid": f"uid-{name}", "controller": True}
            ]
        if annotations:
            meta["annotations"] = dict(annotations)
        body = {"apiVersion": INFRA_API, "kind": "TinkerbellMachine", "metadata": meta, "spec": dict(spec or {})}
        return self.store.add((TINKERBELL_MACHINE, body))

    def add_capi_machine(
        self,
        name: str = "m1",
        *,
        version: Optional[str] = "v1.29.0",
        secret: Optional[str] = "default",
        namespace: str = NS,
    ) -> dict:
        spec: dict = {
            "clusterName": CLUSTER,
            "bootstrap": {},
            "infrastructureRef": {"apiVersion": INFRA_API, "kind": "TinkerbellMachine", "name": name, "namespace": namespace},
        }
        if secret:
            spec["bootstrap"]["dataSecretName"] = f"{name}-bootstrap" if secret == "default" else secret
        if version:
            spec["version"] = version
        body = {
            "apiVersion": CAPI_API,
            "kind": "Machine",
            "metadata": {"name": name, "namespace": namespace, "labels": {CLUSTER_NAME_LABEL: CLUSTER}},
            "spec": spec,
        }
        return self.store.add((CAPI_MACHINE, body))

    def add_secret(self, name: str, value: Optional[Union[str, bytes]] = BOOTSTRAP, namespace: str = NS) -> dict:
        data = {}
        if value is not None:
            raw = value if isinstance(value, bytes) else value.encode()
            data["value"] = base64.b64encode(raw).decode()
        body = {"apiVersion": "v1", "kind": "Secret", "metadata": {"name": name, "namespace": namespace}, "data": data}
        return self.store.add((SECRET, body))

    def add_cluster(self, *, paused: bool = False, ready: bool = True, namespace: str = NS) -> None:
        self.store.add((CAPI_CLUSTER, {
            "apiVersion": CAPI_API,
            "kind": "Cluster",
            "metadata": {"name": CLUSTER, "namespace": namespace},
            "spec": {
                "paused": paused,
                "infrastructureRef": {"apiVersion": INFRA_API, "kind": "TinkerbellCluster", "name": CLUSTER},
            },
        }))
        self.store.add((TINKERBELL_CLUSTER, {
            "apiVersion": INFRA_API,
            "kind": "TinkerbellCluster",
            "metadata": {"name": CLUSTER, "namespace": namespace, "labels": {CLUSTER_NAME_LABEL: CLUSTER}},
            "spec": {
                "imageLookupFormat": "{{.BaseRegistry}}/{{.OSDistro}}-{{.OSVersion}}:{{.KubernetesVersion}}.gz",
                "imageLookupBaseRegistry": "ghcr.io/tinkerbell/cluster-api-provider-tinkerbell",
                "imageLookupOSDistro": "Ubuntu",
                "imageLookupOSVersion": "20.04",
            },
            "status": {"ready": ready},
        }))

    def add_ready_machine(self, name: str = "m1", *, spec: Optional[dict] = None) -> dict:
        """TinkerbellMachine with its CAPI Machine and bootstrap secret."""
        self.add_capi_machine(name)
        self.add_secret(f"{name}-bootstrap")
        return self.add_machine(name, spec=spec)

    # -----------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------

    def machine(self, name: str = "m1", namespace: str = NS) -> TinkerbellMachine:
        return TinkerbellMachine.from_dict(self.store.get(TINKERBELL_MACHINE, namespace, name))

    def hardware(self, name: str, namespace: str = NS) -> Hardware:
        return Hardware.from_dict(self.store.get(HARDWARE, namespace, name))

    def scope(self, name: str = "m1", namespace: str = NS) -> MachineScope:
        machine = self.machine(name, namespace)
        scope = MachineScope(
            store=self.store,
            machine=machine,
            log=object_logger("TinkerbellMachine", machine.key),
            config=self.config,
            bus=self.bus,
            run_id="test-run",
        )
        if self.store.exists(CAPI_MACHINE, namespace, name):
            scope.capi_machine = Machine.from_dict(self.store.get(CAPI_MACHINE, namespace, name))
        if self.store.exists(TINKERBELL_CLUSTER, namespace, CLUSTER):
            scope.cluster = TinkerbellCluster.from_dict(self.store.get(TINKERBELL_CLUSTER, namespace, CLUSTER))
        scope.bootstrap_data = BOOTSTRAP
        return scope

    def reconciler(self) -> MachineReconciler:
        return MachineReconciler(self.store, self.config, bus=self.bus, run_id="test-run")

    def events(self, event_cls) -> list:
        return [e for e in self.observer.events if isinstance(e, event_cls)]


@pytest.fixture
def world() -> World:
    return World()


@pytest.fixture
def store(world) -> InMemoryObjectStore:
    return world.store
