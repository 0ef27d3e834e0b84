# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/workflow.py
from __future__ import annotations

import posixpath
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from ..api.cluster import BOOT_MODE_ISO, BOOT_MODE_NETBOOT
from ..api.tinkerbell import Hardware, Workflow, WorkflowBootOptions, WorkflowSpec
from ..observers.events import WorkflowCreated
from .errors import ISOBootURLRequiredError
from .scope import MachineScope


def per_host_iso_url(iso_url: str, instance_id: str) -> str:
    """
    http://host/iso/hook.iso + aa:bb:cc -> http://host/iso/aa-bb-cc/hook.iso

    The ISO server keys its per-host images on the instance ID with the
    colons turned into dashes.
    """
    parts = urlsplit(iso_url)
    directory, filename = posixpath.split(parts.path)
    path = posixpath.join(directory or "/", instance_id.replace(":", "-"), filename)
    return urlunsplit(parts._replace(path=path))


def boot_options(scope: MachineScope, hw: Hardware) -> WorkflowBootOptions:
    opts = WorkflowBootOptions(toggle_allow_netboot=True)

    # boot mode only means something when there is a BMC to act on it
    if hw.spec.bmc_ref is None:
        return opts

    mode = scope.machine.boot_mode
    if mode == BOOT_MODE_NETBOOT:
        opts.boot_mode = BOOT_MODE_NETBOOT
    elif mode == BOOT_MODE_ISO:
        iso_url = scope.machine.spec.boot_options.iso_url
        if not iso_url:
            raise ISOBootURLRequiredError("iso boot mode requires an isoURL")
        opts.iso_url = per_host_iso_url(iso_url, hw.instance_id)
        opts.boot_mode = BOOT_MODE_ISO
    return opts


def get_workflow(scope: MachineScope) -> Optional[Workflow]:
    return scope.find(Workflow, scope.name)


def create_workflow(scope: MachineScope, hw: Hardware) -> Workflow:
    wf = Workflow.new(
        scope.name,
        scope.namespace,
        spec=WorkflowSpec(
            template_ref=scope.name,
            hardware_ref=hw.name,
            hardware_map={"device_1": hw.instance_id},
            boot_options=boot_options(scope, hw),
        ),
    )
    wf.metadata.owner_references = [scope.machine.owner_reference(controller=True)]

    created = scope.create(wf)
    scope.log.info(f"Created Workflow {wf.name} for Hardware {hw.name}")
    scope.emit(WorkflowCreated, workflow=wf.name, hardware=hw.name, boot_mode=wf.spec.boot_options.boot_mode)
    return created


def remove_workflow(scope: MachineScope) -> None:
    if scope.delete(Workflow, scope.name):
        scope.log.info(f"Removing Workflow {scope.name}")
    else:
        scope.log.debug(f"Workflow {scope.name} already removed")
