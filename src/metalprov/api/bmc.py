# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/bmc.py
from __future__ import annotations

from typing import ClassVar, List, Optional

from pydantic import Field

from ..kube.resources import BMC_JOB, ResourceKind
from .meta import KubeModel, KubeObject

POWER_HARD_OFF = "off"
POWER_ON = "on"
BOOT_DEVICE_PXE = "pxe"

JOB_COMPLETED = "Completed"
JOB_FAILED = "Failed"
CONDITION_TRUE = "True"


class MachineRef(KubeModel):
    name: str
    namespace: Optional[str] = None


class OneTimeBootDeviceAction(KubeModel):
    device: List[str] = Field(default_factory=list)
    efi_boot: Optional[bool] = None


class Action(KubeModel):
    power_action: Optional[str] = None
    one_time_boot_device_action: Optional[OneTimeBootDeviceAction] = None


class JobSpec(KubeModel):
    machine_ref: MachineRef
    tasks: List[Action] = Field(default_factory=list)


class JobCondition(KubeModel):
    type: str
    status: str
    message: Optional[str] = None


class JobStatus(KubeModel):
    conditions: Optional[List[JobCondition]] = None


class Job(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = BMC_JOB

    spec: JobSpec
    status: JobStatus = Field(default_factory=JobStatus)

    def has_condition(self, kind: str, status: str = CONDITION_TRUE) -> bool:
        return any(
            c.type == kind and c.status == status
            for c in self.status.conditions or []
        )

    @property
    def completed(self) -> bool:
        return self.has_condition(JOB_COMPLETED)

    @property
    def failed(self) -> bool:
        return self.has_condition(JOB_FAILED)


def power_action(action: str) -> Action:
    return Action(power_action=action)


def pxe_boot_action(efi_boot: bool) -> Action:
    return Action(
        one_time_boot_device_action=OneTimeBootDeviceAction(
            device=[BOOT_DEVICE_PXE],
            efi_boot=efi_boot,
        )
    )
