# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/teardown.py
"""
Deletion of a TinkerbellMachine.

Order matters and must not change: dependents first (Workflow, Template),
then the host is powered off, then the Hardware is released, and only then
does the machine lose its own finalizer. A host is therefore never handed
to another machine while it may still be running the old one's OS.
"""

from __future__ import annotations

from typing import Optional

from ..api.tinkerbell import Hardware
from ..observers.events import TeardownCompleted
from .bmc import JobStatus, ensure_poweroff_job
from .hardware import assigned_hardware, release_hardware
from .ipam import delete_claim
from .scope import MachineScope
from .template import remove_template
from .workflow import remove_workflow


def find_hardware(scope: MachineScope) -> Optional[Hardware]:
    """
    The recorded Hardware, or the one carrying this machine's owner labels
    when the choice never made it onto the machine.
    """
    name = scope.machine.spec.hardware_name
    if name:
        return scope.find(Hardware, name)
    return assigned_hardware(scope)


def remove_dependencies(scope: MachineScope) -> None:
    remove_template(scope)
    remove_workflow(scope)


def delete_machine(scope: MachineScope) -> bool:
    """
    Returns True once the machine's finalizer has been removed, False while
    waiting for the power-off job. Raises BMCJobFailedError when that job
    failed; the finalizer then stays and deletion stalls visibly.
    """
    hw = find_hardware(scope)
    scope.log.info(f"Removing machine (hardware={hw.name if hw else '-'})")

    remove_dependencies(scope)

    if hw is None:
        scope.log.info("Hardware not found, only template, workflow, address claim and finalizer will be removed")
    else:
        if hw.spec.bmc_ref is None:
            scope.log.info(f"Hardware {hw.name} has no BMC reference, skipping power off")
        elif ensure_poweroff_job(scope, hw) is not JobStatus.COMPLETED:
            return False

        release_hardware(scope, hw)

    delete_claim(scope)
    scope.remove_finalizer()
    scope.emit(TeardownCompleted, hardware=hw.name if hw else None)
    return True
