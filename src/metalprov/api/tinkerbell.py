# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/tinkerbell.py
from __future__ import annotations

from enum import Enum
from typing import ClassVar, Dict, List, Optional

from pydantic import ConfigDict, Field

from ..kube.resources import HARDWARE, TEMPLATE, WORKFLOW, ResourceKind
from .meta import KubeModel, KubeObject, TypedLocalObjectReference


# ---------------------------------------------------------------------
# Hardware
# ---------------------------------------------------------------------

class IP(KubeModel):
    address: Optional[str] = None
    netmask: Optional[str] = None
    gateway: Optional[str] = None
    family: Optional[int] = None


class DHCP(KubeModel):
    # the DHCP record is snake_case on the wire
    model_config = ConfigDict(alias_generator=None)

    mac: Optional[str] = None
    hostname: Optional[str] = None
    lease_time: Optional[int] = None
    name_servers: Optional[List[str]] = None
    time_servers: Optional[List[str]] = None
    arch: Optional[str] = None
    uefi: Optional[bool] = None
    iface_name: Optional[str] = None
    ip: Optional[IP] = None


class Netboot(KubeModel):
    allow_pxe: Optional[bool] = Field(default=None, alias="allowPXE")
    allow_workflow: Optional[bool] = None


class Interface(KubeModel):
    dhcp: Optional[DHCP] = None
    netboot: Optional[Netboot] = None


class Disk(KubeModel):
    device: str = ""


class Instance(KubeModel):
    id: str = ""
    state: Optional[str] = None


class HardwareMetadata(KubeModel):
    state: Optional[str] = None
    instance: Optional[Instance] = None


class HardwareSpec(KubeModel):
    interfaces: Optional[List[Interface]] = None
    disks: Optional[List[Disk]] = None
    metadata: Optional[HardwareMetadata] = None
    bmc_ref: Optional[TypedLocalObjectReference] = None
    user_data: Optional[str] = None


class Hardware(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = HARDWARE

    spec: HardwareSpec = Field(default_factory=HardwareSpec)

    @property
    def instance_id(self) -> str:
        md = self.spec.metadata
        if md is None or md.instance is None:
            return ""
        return md.instance.id

    @property
    def primary_interface(self) -> Optional[Interface]:
        if not self.spec.interfaces:
            return None
        return self.spec.interfaces[0]


# ---------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------

class TemplateSpec(KubeModel):
    data: Optional[str] = None


class Template(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = TEMPLATE

    spec: TemplateSpec = Field(default_factory=TemplateSpec)


# ---------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------

class WorkflowState(str, Enum):
    PENDING = "STATE_PENDING"
    RUNNING = "STATE_RUNNING"
    SUCCESS = "STATE_SUCCESS"
    FAILED = "STATE_FAILED"
    TIMEOUT = "STATE_TIMEOUT"

    @property
    def terminal(self) -> bool:
        return self in (WorkflowState.SUCCESS, WorkflowState.FAILED, WorkflowState.TIMEOUT)

    @classmethod
    def parse(cls, value: Optional[str]) -> "WorkflowState":
        # the executor has not written a state yet
        if not value:
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            # states newer executors report are all non-terminal
            return cls.RUNNING


class WorkflowBootOptions(KubeModel):
    toggle_allow_netboot: Optional[bool] = None
    boot_mode: Optional[str] = None
    iso_url: Optional[str] = Field(default=None, alias="isoURL")


class WorkflowSpec(KubeModel):
    template_ref: str = ""
    hardware_ref: str = ""
    hardware_map: Dict[str, str] = Field(default_factory=dict)
    boot_options: Optional[WorkflowBootOptions] = None


class WorkflowStatus(KubeModel):
    state: Optional[str] = None


class Workflow(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = WORKFLOW

    spec: WorkflowSpec = Field(default_factory=WorkflowSpec)
    status: WorkflowStatus = Field(default_factory=WorkflowStatus)

    @property
    def state(self) -> WorkflowState:
        return WorkflowState.parse(self.status.state)
