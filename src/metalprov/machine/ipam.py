# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/ipam.py
"""
IP address management for the Hardware's first interface.

Only active when the machine names a pool (spec.ipamPoolRef). An address
already present on the interface always wins over IPAM.
"""

from __future__ import annotations

from typing import Optional

from ..api.cluster import CLUSTER_NAME_LABEL
from ..api.ipam import IPAddress, IPAddressClaim, IPAddressClaimSpec
from ..api.tinkerbell import IP, Hardware
from ..kube.errors import NotFoundError
from ..kube.patch import PatchHelper
from ..observers.events import AddressClaimCreated, HardwareAddressAssigned
from .errors import HardwareMissingDHCPError, HardwareMissingInterfacesError, InvalidPrefixError
from .scope import MachineScope

IPAM_CLAIM_FINALIZER = "tinkerbellmachine.infrastructure.cluster.x-k8s.io/ipam-claim"


def prefix_to_netmask(prefix: int) -> str:
    """24 -> "255.255.255.0". Returns "" for a prefix outside [0, 32]."""
    if prefix < 0 or prefix > 32:
        return ""
    mask = (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF
    return ".".join(str((mask >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def claim_name(scope: MachineScope, index: int = 0) -> str:
    return f"{scope.name}-{index}"


def configured_address(hw: Hardware) -> str:
    iface = hw.primary_interface
    if iface is None or iface.dhcp is None or iface.dhcp.ip is None:
        return ""
    return iface.dhcp.ip.address or ""


def ensure_claim(scope: MachineScope) -> Optional[IPAddressClaim]:
    """
    The claim for interface 0, created when missing.
    Returns None when the claim was created by this call.
    """
    name = claim_name(scope)
    claim = scope.find(IPAddressClaim, name)
    if claim is not None:
        return claim

    pool_ref = scope.machine.spec.ipam_pool_ref
    claim = IPAddressClaim.new(name, scope.namespace, spec=IPAddressClaimSpec(pool_ref=pool_ref))
    claim.set_label(CLUSTER_NAME_LABEL, scope.cluster_name)
    claim.add_finalizer(IPAM_CLAIM_FINALIZER)
    claim.metadata.owner_references = [scope.machine.owner_reference(controller=True)]
    scope.create(claim)

    scope.log.info(f"Created IPAddressClaim {name}")
    scope.emit(AddressClaimCreated, claim=name, pool=pool_ref.name)
    return None


def apply_address(scope: MachineScope, hw: Hardware, address: IPAddress) -> None:
    """Write address, netmask and gateway onto the first interface."""
    if not hw.spec.interfaces:
        raise HardwareMissingInterfacesError(f"hardware {hw.name} has no interfaces")
    dhcp = hw.spec.interfaces[0].dhcp
    if dhcp is None:
        raise HardwareMissingDHCPError(f"hardware {hw.name}: first interface has no DHCP configuration")

    prefix = address.spec.prefix
    netmask = None
    if prefix > 0:
        netmask = prefix_to_netmask(prefix)
        if not netmask:
            raise InvalidPrefixError(f"IPAddress {address.name} has invalid prefix {prefix}")

    helper = PatchHelper(scope.store, hw)
    if dhcp.ip is None:
        dhcp.ip = IP()
    dhcp.ip.address = address.spec.address
    if netmask:
        dhcp.ip.netmask = netmask
    if address.spec.gateway:
        dhcp.ip.gateway = address.spec.gateway
    helper.patch(hw)

    scope.log.info(
        f"Updated Hardware {hw.name} with IPAM address {address.spec.address}/{prefix} "
        f"gateway={address.spec.gateway or '-'}"
    )
    scope.emit(
        HardwareAddressAssigned,
        hardware=hw.name,
        address=address.spec.address,
        prefix=prefix,
        gateway=address.spec.gateway,
    )


def reconcile_ipam(scope: MachineScope, hw: Hardware) -> bool:
    """
    Returns True when the Hardware has its address and provisioning can go
    on, False while the claim waits for the IPAM provider.
    """
    if scope.machine.spec.ipam_pool_ref is None:
        return True

    current = configured_address(hw)
    if current:
        scope.log.debug(f"Hardware {hw.name} already has IP {current} configured, skipping IPAM")
        return True

    claim = ensure_claim(scope)
    if claim is None:
        return False

    if not claim.address_name:
        scope.log.info(f"Waiting for IPAddressClaim {claim.name} to be fulfilled")
        return False

    address = scope.get(IPAddress, claim.address_name)
    apply_address(scope, hw, address)
    return True


def delete_claim(scope: MachineScope) -> None:
    """Strip the claim's guard token, then delete it. Missing claims are fine."""
    name = claim_name(scope)
    claim = scope.find(IPAddressClaim, name)
    if claim is None:
        return

    helper = PatchHelper(scope.store, claim)
    if claim.remove_finalizer(IPAM_CLAIM_FINALIZER):
        try:
            helper.patch(claim)
        except NotFoundError:
            return

    if scope.delete(IPAddressClaim, name):
        scope.log.info(f"Deleted IPAddressClaim {name}")
