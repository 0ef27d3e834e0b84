# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/resources.py
from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional


@dataclass(frozen=True)
class ResourceKind:
    """
    Addressing information for one API resource type.

    group == "" means the core API group (Secrets).
    """
    group: str
    version: str
    plural: str
    kind: str
    has_status: bool = False

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return f"{self.kind}.{self.group or 'core'}"


class ObjectKey(NamedTuple):
    namespace: Optional[str]
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


INFRA_GROUP = "infrastructure.cluster.x-k8s.io"
CLUSTER_GROUP = "cluster.x-k8s.io"
TINKERBELL_GROUP = "tinkerbell.org"
BMC_GROUP = "bmc.tinkerbell.org"
IPAM_GROUP = "ipam.cluster.x-k8s.io"

TINKERBELL_MACHINE = ResourceKind(INFRA_GROUP, "v1beta1", "tinkerbellmachines", "TinkerbellMachine", has_status=True)
TINKERBELL_CLUSTER = ResourceKind(INFRA_GROUP, "v1beta1", "tinkerbellclusters", "TinkerbellCluster", has_status=True)

CAPI_MACHINE = ResourceKind(CLUSTER_GROUP, "v1beta1", "machines", "Machine", has_status=True)
CAPI_CLUSTER = ResourceKind(CLUSTER_GROUP, "v1beta1", "clusters", "Cluster", has_status=True)

HARDWARE = ResourceKind(TINKERBELL_GROUP, "v1alpha1", "hardware", "Hardware", has_status=True)
TEMPLATE = ResourceKind(TINKERBELL_GROUP, "v1alpha1", "templates", "Template", has_status=True)
WORKFLOW = ResourceKind(TINKERBELL_GROUP, "v1alpha1", "workflows", "Workflow", has_status=True)

BMC_JOB = ResourceKind(BMC_GROUP, "v1alpha1", "jobs", "Job", has_status=True)

IP_ADDRESS_CLAIM = ResourceKind(IPAM_GROUP, "v1beta1", "ipaddressclaims", "IPAddressClaim", has_status=True)
IP_ADDRESS = ResourceKind(IPAM_GROUP, "v1beta1", "ipaddresses", "IPAddress")

SECRET = ResourceKind("", "v1", "secrets", "Secret")
