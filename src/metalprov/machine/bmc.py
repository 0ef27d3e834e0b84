# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/bmc.py
"""
Power jobs for the out-of-band controller.

Both jobs follow the same pattern: find the deterministically named Job,
create it when it is missing, report its state when it is not. The caller
decides what "not completed yet" means for its pass.
"""

from __future__ import annotations

from enum import Enum
from typing import List

from ..api.bmc import (
    POWER_HARD_OFF,
    POWER_ON,
    Action,
    Job,
    JobSpec,
    MachineRef,
    power_action,
    pxe_boot_action,
)
from ..api.tinkerbell import Hardware
from ..observers.events import BMCJobCreated
from .errors import BMCJobFailedError
from .scope import MachineScope

PROVISION_SUFFIX = "provision"
POWEROFF_SUFFIX = "poweroff"


class JobStatus(str, Enum):
    CREATED = "created"        # created by this call
    RUNNING = "running"        # exists, neither completed nor failed
    COMPLETED = "completed"


def job_name(scope: MachineScope, suffix: str) -> str:
    return f"{scope.name}-{suffix}"


def provision_tasks(hw: Hardware) -> List[Action]:
    """power off, next boot from the network, power on"""
    efi_boot = False
    iface = hw.primary_interface
    if iface is not None and iface.dhcp is not None:
        efi_boot = bool(iface.dhcp.uefi)
    return [
        power_action(POWER_HARD_OFF),
        pxe_boot_action(efi_boot),
        power_action(POWER_ON),
    ]


def poweroff_tasks(hw: Hardware) -> List[Action]:
    return [power_action(POWER_HARD_OFF)]


def ensure_job(scope: MachineScope, hw: Hardware, suffix: str, tasks: List[Action]) -> JobStatus:
    """
    Raises BMCJobFailedError when the job reports Failed=True; the failed
    job is left in place for the operator to inspect.
    """
    name = job_name(scope, suffix)
    job = scope.find(Job, name)

    if job is None:
        job = Job.new(
            name,
            scope.namespace,
            spec=JobSpec(
                machine_ref=MachineRef(name=hw.spec.bmc_ref.name, namespace=scope.namespace),
                tasks=tasks,
            ),
        )
        job.metadata.owner_references = [scope.machine.owner_reference(controller=True)]
        scope.create(job)
        scope.log.info(f"Created BMC Job {name} ({suffix})")
        scope.emit(BMCJobCreated, job=name, purpose=suffix)
        return JobStatus.CREATED

    if job.failed:
        raise BMCJobFailedError(f"bmc job {scope.namespace}/{name} failed")
    if job.completed:
        return JobStatus.COMPLETED

    scope.log.debug(f"BMC Job {name} is not completed yet")
    return JobStatus.RUNNING


def ensure_provision_job(scope: MachineScope, hw: Hardware) -> JobStatus:
    return ensure_job(scope, hw, PROVISION_SUFFIX, provision_tasks(hw))


def ensure_poweroff_job(scope: MachineScope, hw: Hardware) -> JobStatus:
    return ensure_job(scope, hw, POWEROFF_SUFFIX, poweroff_tasks(hw))
