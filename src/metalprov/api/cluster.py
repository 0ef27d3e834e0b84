# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/cluster.py
"""
Cluster API side of the world: the infrastructure machine this engine owns
(TinkerbellMachine), its cluster-level counterpart, and the generic CAPI
Machine/Cluster objects that own them.
"""

from __future__ import annotations

from typing import ClassVar, List, Optional

from pydantic import Field

from ..kube.resources import (
    CAPI_CLUSTER,
    CAPI_MACHINE,
    TINKERBELL_CLUSTER,
    TINKERBELL_MACHINE,
    ResourceKind,
)
from .meta import KubeModel, KubeObject, LabelSelector, TypedLocalObjectReference

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
PAUSED_ANNOTATION = "cluster.x-k8s.io/paused"
WATCH_FILTER_LABEL = "cluster.x-k8s.io/watch-filter"

BOOT_MODE_NETBOOT = "netboot"
BOOT_MODE_ISO = "iso"


# ---------------------------------------------------------------------
# TinkerbellMachine
# ---------------------------------------------------------------------

class HardwareAffinityTerm(KubeModel):
    label_selector: LabelSelector = Field(default_factory=LabelSelector)


class WeightedHardwareAffinityTerm(KubeModel):
    weight: int = 0
    hardware_affinity_term: HardwareAffinityTerm = Field(default_factory=HardwareAffinityTerm)


class HardwareAffinity(KubeModel):
    required: List[HardwareAffinityTerm] = Field(default_factory=list)
    preferred: List[WeightedHardwareAffinityTerm] = Field(default_factory=list)


class BootOptions(KubeModel):
    boot_mode: Optional[str] = None
    iso_url: Optional[str] = Field(default=None, alias="isoURL")


class ImageLookup(KubeModel):
    image_lookup_format: Optional[str] = None
    image_lookup_base_registry: Optional[str] = None
    image_lookup_os_distro: Optional[str] = Field(default=None, alias="imageLookupOSDistro")
    image_lookup_os_version: Optional[str] = Field(default=None, alias="imageLookupOSVersion")


class TinkerbellMachineSpec(ImageLookup):
    hardware_name: Optional[str] = None
    provider_id: Optional[str] = Field(default=None, alias="providerID")
    hardware_affinity: Optional[HardwareAffinity] = None
    boot_options: Optional[BootOptions] = None
    template_override: Optional[str] = None
    ipam_pool_ref: Optional[TypedLocalObjectReference] = None


class NodeAddress(KubeModel):
    type: str
    address: str


class TinkerbellMachineStatus(KubeModel):
    ready: Optional[bool] = None
    addresses: Optional[List[NodeAddress]] = None
    error_reason: Optional[str] = None
    error_message: Optional[str] = None


class TinkerbellMachine(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = TINKERBELL_MACHINE

    spec: TinkerbellMachineSpec = Field(default_factory=TinkerbellMachineSpec)
    status: TinkerbellMachineStatus = Field(default_factory=TinkerbellMachineStatus)

    @property
    def boot_mode(self) -> Optional[str]:
        if self.spec.boot_options is None:
            return None
        return self.spec.boot_options.boot_mode or None


# ---------------------------------------------------------------------
# TinkerbellCluster
# ---------------------------------------------------------------------

class TinkerbellClusterStatus(KubeModel):
    ready: Optional[bool] = None


class TinkerbellCluster(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = TINKERBELL_CLUSTER

    spec: ImageLookup = Field(default_factory=ImageLookup)
    status: TinkerbellClusterStatus = Field(default_factory=TinkerbellClusterStatus)


# ---------------------------------------------------------------------
# Cluster API core objects (read-only for this engine)
# ---------------------------------------------------------------------

class ObjectReference(KubeModel):
    api_version: Optional[str] = None
    kind: Optional[str] = None
    name: str = ""
    namespace: Optional[str] = None


class Bootstrap(KubeModel):
    data_secret_name: Optional[str] = None


class MachineSpec(KubeModel):
    cluster_name: str = ""
    bootstrap: Bootstrap = Field(default_factory=Bootstrap)
    infrastructure_ref: ObjectReference = Field(default_factory=ObjectReference)
    version: Optional[str] = None


class Machine(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = CAPI_MACHINE

    spec: MachineSpec = Field(default_factory=MachineSpec)


class ClusterSpec(KubeModel):
    paused: Optional[bool] = None
    infrastructure_ref: Optional[ObjectReference] = None


class Cluster(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = CAPI_CLUSTER

    spec: ClusterSpec = Field(default_factory=ClusterSpec)
