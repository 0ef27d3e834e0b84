# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/provisioning.py
"""
Provisioning state machine.

There is no stored state: every pass derives the phase from the Hardware's
provisioned annotation, the power job and the Workflow status, acts on it
at most once and returns. Whatever the process did before a crash, the next
pass reads the same objects and lands in the same phase.
"""

from __future__ import annotations

from enum import Enum

from ..api.tinkerbell import Hardware, WorkflowState
from ..observers.events import MachineReady
from .bmc import JobStatus, ensure_provision_job
from .errors import WorkflowFailedError
from .hardware import is_provisioned, mark_provisioned
from .scope import MachineScope
from .template import ensure_template
from .workflow import create_workflow, get_workflow


class ProvisioningPhase(str, Enum):
    PROVISIONED = "Provisioned"           # Hardware already carries the provisioned annotation
    POWER_CYCLING = "PowerCycling"        # waiting for the provision BMC job
    WORKFLOW_CREATED = "WorkflowCreated"  # Template/Workflow created this pass
    IN_PROGRESS = "InProgress"            # Workflow pending or running
    SUCCEEDED = "Succeeded"               # Workflow succeeded this pass


def needs_power_cycle(scope: MachineScope, hw: Hardware) -> bool:
    """
    With a boot mode set, the Workflow's boot options drive the BMC instead
    of a separate provision job.
    """
    return hw.spec.bmc_ref is not None and not scope.machine.boot_mode


def mark_ready(scope: MachineScope, hw: Hardware) -> None:
    status = scope.machine.status
    if status.ready:
        return
    scope.log.info("Marking TinkerbellMachine as Ready")
    status.ready = True
    status.error_reason = None
    status.error_message = None
    scope.patch()
    scope.emit(MachineReady, hardware=hw.name, provider_id=scope.machine.spec.provider_id or "")


def reconcile_provisioning(scope: MachineScope, hw: Hardware) -> ProvisioningPhase:
    if is_provisioned(hw):
        mark_ready(scope, hw)
        return ProvisioningPhase.PROVISIONED

    wf = get_workflow(scope)
    if wf is None:
        if needs_power_cycle(scope, hw):
            if ensure_provision_job(scope, hw) is not JobStatus.COMPLETED:
                return ProvisioningPhase.POWER_CYCLING

        ensure_template(scope, hw)
        create_workflow(scope, hw)
        return ProvisioningPhase.WORKFLOW_CREATED

    state = wf.state
    if state in (WorkflowState.FAILED, WorkflowState.TIMEOUT):
        raise WorkflowFailedError(f"workflow {wf.namespace}/{wf.name} finished in {state.value}")

    if state is not WorkflowState.SUCCESS:
        scope.log.debug(f"Workflow {wf.name} is {state.value}")
        return ProvisioningPhase.IN_PROGRESS

    mark_provisioned(scope, hw)
    mark_ready(scope, hw)
    return ProvisioningPhase.SUCCEEDED
