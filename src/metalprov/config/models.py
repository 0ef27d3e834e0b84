# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/config/models.py

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class ControllerConfig(BaseModel):
    """Settings for one metalprov controller process."""

    # Cluster access
    kubeconfig: Optional[str] = None
    kube_context: Optional[str] = None
    namespace: Optional[str] = None             # None = watch every namespace

    # Workers and queue
    workers: int = Field(default=4, ge=1)
    resync_seconds: float = Field(default=600.0, gt=0)
    backoff_base_seconds: float = Field(default=0.5, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)
    watch_timeout_seconds: int = Field(default=300, gt=0)

    # Only reconcile objects carrying cluster.x-k8s.io/watch-filter=<value>
    watch_filter_value: Optional[str] = None

    # Provisioning
    tinkerbell_ip: str = "192.168.1.1"          # metadata service host used by the default template
    bootstrap_requeue_seconds: float = 30.0

    # Logging and events
    log_dir: Optional[Path] = None
    verbose: bool = False
    event_log_path: Optional[Path] = None       # JSON lines; disabled when unset

    @property
    def metadata_url(self) -> str:
        return f"http://{self.tinkerbell_ip}:50061"
