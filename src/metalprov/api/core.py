# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/core.py
from __future__ import annotations

import base64
from typing import ClassVar, Dict, Optional

from ..kube.resources import SECRET, ResourceKind
from .meta import KubeObject


class Secret(KubeObject):
    RESOURCE: ClassVar[ResourceKind] = SECRET

    data: Optional[Dict[str, str]] = None

    def decoded(self, key: str) -> Optional[bytes]:
        """base64-decoded value of data[key], None when the key is absent."""
        if not self.data or key not in self.data:
            return None
        return base64.b64decode(self.data[key])
