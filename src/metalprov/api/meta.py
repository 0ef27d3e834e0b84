# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/api/meta.py
"""
Typed views over Kubernetes objects.

The models keep unknown fields (extra="allow") so that reading an object,
changing one field and diffing it back never drops data written by other
controllers.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..kube.resources import ObjectKey, ResourceKind


class KubeModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class OwnerReference(KubeModel):
    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: Optional[bool] = None
    block_owner_deletion: Optional[bool] = None


class ObjectMeta(KubeModel):
    name: str = ""
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    generation: Optional[int] = None
    creation_timestamp: Optional[str] = None
    deletion_timestamp: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    annotations: Optional[Dict[str, str]] = None
    finalizers: Optional[List[str]] = None
    owner_references: Optional[List[OwnerReference]] = None


class LabelSelectorRequirement(KubeModel):
    key: str
    operator: str
    values: Optional[List[str]] = None


class LabelSelector(KubeModel):
    match_labels: Optional[Dict[str, str]] = None
    match_expressions: Optional[List[LabelSelectorRequirement]] = None


class TypedLocalObjectReference(KubeModel):
    api_group: Optional[str] = None
    kind: str = ""
    name: str = ""


class LocalObjectReference(KubeModel):
    name: str = ""


class KubeObject(KubeModel):
    RESOURCE: ClassVar[ResourceKind]

    api_version: str = ""
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    # ------------------------------------------------------------------
    # (de)serialisation
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        data["apiVersion"] = self.api_version or self.RESOURCE.api_version
        data["kind"] = self.kind or self.RESOURCE.kind
        return data

    @classmethod
    def new(cls, name: str, namespace: Optional[str], **fields):
        return cls(
            api_version=cls.RESOURCE.api_version,
            kind=cls.RESOURCE.kind,
            metadata=ObjectMeta(name=name, namespace=namespace),
            **fields,
        )

    # ------------------------------------------------------------------
    # identity
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    @property
    def deleting(self) -> bool:
        return bool(self.metadata.deletion_timestamp)

    def owner_reference(self, controller: bool = False) -> OwnerReference:
        return OwnerReference(
            api_version=self.api_version or self.RESOURCE.api_version,
            kind=self.kind or self.RESOURCE.kind,
            name=self.metadata.name,
            uid=self.metadata.uid or "",
            controller=True if controller else None,
        )

    def controller_owner(self) -> Optional[OwnerReference]:
        for ref in self.metadata.owner_references or []:
            if ref.controller:
                return ref
        return None

    # ------------------------------------------------------------------
    # labels / annotations / finalizers
    # ------------------------------------------------------------------

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.labels or {}

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.annotations or {}

    def set_label(self, key: str, value: str) -> None:
        if self.metadata.labels is None:
            self.metadata.labels = {}
        self.metadata.labels[key] = value

    def drop_label(self, key: str) -> None:
        if self.metadata.labels:
            self.metadata.labels.pop(key, None)

    def set_annotation(self, key: str, value: str) -> None:
        if self.metadata.annotations is None:
            self.metadata.annotations = {}
        self.metadata.annotations[key] = value

    def drop_annotation(self, key: str) -> None:
        if self.metadata.annotations:
            self.metadata.annotations.pop(key, None)

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in (self.metadata.finalizers or [])

    def add_finalizer(self, finalizer: str) -> bool:
        """Returns True when the finalizer was not present before."""
        if self.has_finalizer(finalizer):
            return False
        self.metadata.finalizers = [*(self.metadata.finalizers or []), finalizer]
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        if not self.has_finalizer(finalizer):
            return False
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != finalizer]
        return True
