# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str                  # ISO timestamp
    run_id: str              # correlates all events of one controller process
    namespace: Optional[str]  # TinkerbellMachine namespace
    machine: str             # TinkerbellMachine name

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(run_id: Optional[str], namespace: Optional[str], machine: str) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "namespace": namespace,
        "machine": machine,
    }


# ---------------------------------------------------------------------
# Hardware ownership
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class HardwareSelected(BaseEvent):
    hardware: str
    recovered: bool          # True when found through the owner labels

@dataclass(frozen=True)
class HardwareReleased(BaseEvent):
    hardware: str


# ---------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class TemplateCreated(BaseEvent):
    template: str
    overridden: bool

@dataclass(frozen=True)
class WorkflowCreated(BaseEvent):
    workflow: str
    hardware: str
    boot_mode: Optional[str] = None

@dataclass(frozen=True)
class BMCJobCreated(BaseEvent):
    job: str
    purpose: str             # "provision" | "poweroff"

@dataclass(frozen=True)
class MachineReady(BaseEvent):
    hardware: str
    provider_id: str


# ---------------------------------------------------------------------
# IPAM
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class AddressClaimCreated(BaseEvent):
    claim: str
    pool: str

@dataclass(frozen=True)
class HardwareAddressAssigned(BaseEvent):
    hardware: str
    address: str
    prefix: int
    gateway: Optional[str] = None


# ---------------------------------------------------------------------
# Failures & teardown
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ReconcileFailed(BaseEvent):
    reason: str
    error: str

@dataclass(frozen=True)
class TeardownCompleted(BaseEvent):
    hardware: Optional[str] = None
