# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/hardware.py
"""
Exclusive Hardware ownership.

A Hardware belongs to a TinkerbellMachine when it carries the two owner
labels naming that machine. Ownership is always looked up through those
labels, never remembered, so a pass that crashed after labelling the
Hardware but before recording the choice on the machine picks up the very
same Hardware next time.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..api.cluster import NodeAddress
from ..api.tinkerbell import Hardware
from ..kube import labels
from ..kube.patch import PatchHelper
from ..kube.resources import HARDWARE
from ..observers.events import HardwareReleased, HardwareSelected
from .affinity import OWNER_NAME_LABEL, OWNER_NAMESPACE_LABEL, select_hardware
from .errors import (
    HardwareMissingDHCPError,
    HardwareMissingInterfacesError,
    HardwareMissingIPError,
)
from .scope import MACHINE_FINALIZER, MachineScope

PROVISIONED_ANNOTATION = "v1alpha1.tinkerbell.org/provisioned"
PROVIDER_ID_PLACEHOLDER = "PROVIDER_ID"

ADDRESS_INTERNAL_IP = "InternalIP"


def provider_id(hw: Hardware) -> str:
    return f"tinkerbell://{hw.namespace}/{hw.name}"


def owner_labels(scope: MachineScope) -> Dict[str, str]:
    return {
        OWNER_NAME_LABEL: scope.name,
        OWNER_NAMESPACE_LABEL: scope.namespace or "",
    }


def is_provisioned(hw: Hardware) -> bool:
    return hw.annotations.get(PROVISIONED_ANNOTATION) == "true"


def hardware_ip(hw: Hardware) -> str:
    """Address of the first interface's DHCP record."""
    if not hw.spec.interfaces:
        raise HardwareMissingInterfacesError(f"hardware {hw.name} has no interfaces defined")
    dhcp = hw.spec.interfaces[0].dhcp
    if dhcp is None:
        raise HardwareMissingDHCPError(f"hardware {hw.name}: first interface has no DHCP address defined")
    if dhcp.ip is None or not dhcp.ip.address:
        raise HardwareMissingIPError(f"hardware {hw.name}: first interface has no DHCP IP address defined")
    return dhcp.ip.address


# ---------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------

def assigned_hardware(scope: MachineScope) -> Optional[Hardware]:
    """The Hardware already labelled for this machine, if any."""
    items = scope.store.list(
        HARDWARE,
        namespace=scope.namespace,
        label_selector=labels.equality_selector(owner_labels(scope)),
    )
    if not items:
        return None
    if len(items) > 1:
        names = sorted(i["metadata"]["name"] for i in items)
        scope.log.warning(f"more than one Hardware is labelled for this machine: {names}")
    return Hardware.from_dict(min(items, key=lambda i: i["metadata"]["name"]))


def hardware_for_machine(scope: MachineScope) -> Tuple[Hardware, bool]:
    """
    Returns (hardware, recovered). recovered is True when the Hardware was
    found through the owner labels rather than selected now.
    """
    hw = assigned_hardware(scope)
    if hw is not None:
        return hw, True

    # Candidates come from the machine's own namespace only; Hardware in
    # other namespaces is never bound to this machine.
    unowned = labels.to_string([labels.requirement(OWNER_NAME_LABEL, labels.DOES_NOT_EXIST)])
    items = scope.store.list(HARDWARE, namespace=scope.namespace, label_selector=unowned)
    candidates = [Hardware.from_dict(i) for i in items]

    return select_hardware(candidates, scope.machine.spec.hardware_affinity), False


# ---------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------

def take_ownership(scope: MachineScope, hw: Hardware) -> None:
    """
    Label the Hardware for this machine and add the guard token.

    The patch carries the resourceVersion the Hardware was listed at, so of
    two machines racing for the same Hardware only one can win; the loser
    gets ConflictError and selects again on its next pass.
    """
    helper = PatchHelper(scope.store, hw)
    for key, value in owner_labels(scope).items():
        hw.set_label(key, value)
    hw.add_finalizer(MACHINE_FINALIZER)

    if helper.has_changes(hw):
        helper.patch(hw)


def ensure_hardware(scope: MachineScope) -> Hardware:
    """
    Find or select this machine's Hardware, own it and record it on the
    machine (spec.hardwareName, spec.providerID).
    """
    hw, recovered = hardware_for_machine(scope)
    take_ownership(scope, hw)

    spec = scope.machine.spec
    if spec.hardware_name != hw.name:
        scope.log.info(f"Selected Hardware {hw.name}")
        scope.emit(HardwareSelected, hardware=hw.name, recovered=recovered)

    spec.hardware_name = hw.name
    spec.provider_id = provider_id(hw)
    scope.patch()

    return hw


def ensure_user_data(scope: MachineScope, hw: Hardware) -> None:
    """Copy the bootstrap data onto the Hardware with the provider ID filled in."""
    user_data = scope.bootstrap_data.replace(PROVIDER_ID_PLACEHOLDER, scope.machine.spec.provider_id or "")
    if hw.spec.user_data == user_data:
        return

    helper = PatchHelper(scope.store, hw)
    hw.spec.user_data = user_data
    helper.patch(hw)


def set_addresses(scope: MachineScope, hw: Hardware) -> None:
    scope.machine.status.addresses = [NodeAddress(type=ADDRESS_INTERNAL_IP, address=hardware_ip(hw))]
    scope.patch()


def set_netboot(hw: Hardware, allow_pxe: bool) -> None:
    for iface in hw.spec.interfaces or []:
        if iface.netboot is not None:
            iface.netboot.allow_pxe = allow_pxe


def set_instance_state(hw: Hardware, state: Optional[str]) -> None:
    md = hw.spec.metadata
    if md is not None and md.instance is not None:
        md.instance.state = state


def mark_provisioned(scope: MachineScope, hw: Hardware) -> None:
    """
    One conditional patch: provisioned annotation, netboot off so the host
    boots from disk from now on, instance state "provisioned".
    """
    helper = PatchHelper(scope.store, hw)
    hw.set_annotation(PROVISIONED_ANNOTATION, "true")
    set_netboot(hw, False)
    set_instance_state(hw, "provisioned")
    if helper.has_changes(hw):
        helper.patch(hw)


def release_hardware(scope: MachineScope, hw: Hardware) -> None:
    """
    Make the Hardware available to other machines again. The guard token goes
    last, together with the labels, in a single patch.
    """
    helper = PatchHelper(scope.store, hw)
    hw.drop_label(OWNER_NAME_LABEL)
    hw.drop_label(OWNER_NAMESPACE_LABEL)
    hw.drop_annotation(PROVISIONED_ANNOTATION)
    hw.remove_finalizer(MACHINE_FINALIZER)
    set_netboot(hw, True)
    set_instance_state(hw, None)

    if helper.has_changes(hw):
        helper.patch(hw)
        scope.log.info(f"Released Hardware {hw.name}")
        scope.emit(HardwareReleased, hardware=hw.name)
