# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/ipam.py
from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import Field

from ..kube.resources import IP_ADDRESS, IP_ADDRESS_CLAIM, ResourceKind
from .meta import KubeModel, KubeObject, LocalObjectReference, TypedLocalObjectReference


class IPAddressClaimSpec(KubeModel):
    pool_ref: TypedLocalObjectReference


class IPAddressClaimStatus(KubeModel):
    address_ref: Optional[LocalObjectReference] = None


class IPAddressClaim(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = IP_ADDRESS_CLAIM

    spec: IPAddressClaimSpec
    status: IPAddressClaimStatus = Field(default_factory=IPAddressClaimStatus)

    @property
    def address_name(self) -> str:
        ref = self.status.address_ref
        return ref.name if ref else ""


class IPAddressSpec(KubeModel):
    address: str = ""
    prefix: int = 0
    gateway: Optional[str] = None
    claim_ref: Optional[LocalObjectReference] = None
    pool_ref: Optional[TypedLocalObjectReference] = None


class IPAddress(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = IP_ADDRESS

    spec: IPAddressSpec = Field(default_factory=IPAddressSpec)
