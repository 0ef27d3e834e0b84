# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/store.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Protocol

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ..config.errors import ConfigurationError
from .errors import StoreError, translate_api_exception
from .resources import ResourceKind

log = logging.getLogger("metalprov")


class ObjectStore(Protocol):
    """
    The declarative object store as seen by the reconcilers.
    Objects travel as plain JSON dicts; api.* models wrap them.
    """

    def get(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]: ...

    def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]: ...

    def patch(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Dict[str, Any],
        subresource: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    def delete(self, kind: ResourceKind, namespace: Optional[str], name: str) -> None: ...

    def watch(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        stop: Optional[threading.Event] = None,
        timeout_seconds: int = 300,
    ) -> Iterator[Dict[str, Any]]: ...


def load_api_client(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> client.ApiClient:
    """
    In-cluster config when running as a pod, kubeconfig otherwise.
    """
    try:
        if kubeconfig or context:
            config.load_kube_config(config_file=kubeconfig, context=context)
        else:
            try:
                config.load_incluster_config()
            except ConfigException:
                config.load_kube_config()
    except (ConfigException, FileNotFoundError) as e:
        raise ConfigurationError(f"loading kubernetes configuration: {e}") from e
    return client.ApiClient()


class KubeObjectStore:
    """
    ObjectStore backed by a real API server.

    Custom resources go through CustomObjectsApi, Secrets through CoreV1Api.
    Patches are sent as JSON merge patches; callers include
    metadata.resourceVersion to make them conditional.
    """

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.custom = client.CustomObjectsApi(api_client)
        self.core = client.CoreV1Api(api_client)

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _secret(self, namespace: str, name: str) -> Dict[str, Any]:
        obj = self.core.read_namespaced_secret(name=name, namespace=namespace)
        return self.api_client.sanitize_for_serialization(obj)

    def _list_fn(self, kind: ResourceKind, namespace: Optional[str]):
        if namespace:
            return self.custom.list_namespaced_custom_object, {
                "group": kind.group,
                "version": kind.version,
                "namespace": namespace,
                "plural": kind.plural,
            }
        return self.custom.list_cluster_custom_object, {
            "group": kind.group,
            "version": kind.version,
            "plural": kind.plural,
        }

    # -----------------------------------------------------------------
    # ObjectStore
    # -----------------------------------------------------------------

    def get(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]:
        try:
            if not kind.group:
                return self._secret(namespace, name)
            return self.custom.get_namespaced_custom_object(
                kind.group, kind.version, namespace, kind.plural, name
            )
        except ApiException as e:
            raise translate_api_exception(e, f"getting {kind.kind} {namespace}/{name}") from e

    def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not kind.group:
            raise StoreError(f"listing {kind.kind} is not supported")
        fn, kwargs = self._list_fn(kind, namespace)
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            result = fn(**kwargs)
        except ApiException as e:
            raise translate_api_exception(e, f"listing {kind.kind}") from e
        return list(result.get("items") or [])

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        meta = body.get("metadata") or {}
        try:
            return self.custom.create_namespaced_custom_object(
                kind.group, kind.version, meta.get("namespace"), kind.plural, body
            )
        except ApiException as e:
            raise translate_api_exception(e, f"creating {kind.kind} {meta.get('namespace')}/{meta.get('name')}") from e

    def patch(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Dict[str, Any],
        subresource: Optional[str] = None,
    ) -> Dict[str, Any]:
        fn = self.custom.patch_namespaced_custom_object
        if subresource == "status":
            fn = self.custom.patch_namespaced_custom_object_status
        try:
            # a dict body is sent as application/merge-patch+json
            return fn(kind.group, kind.version, namespace, kind.plural, name, body)
        except ApiException as e:
            raise translate_api_exception(e, f"patching {kind.kind} {namespace}/{name}") from e

    def delete(self, kind: ResourceKind, namespace: Optional[str], name: str) -> None:
        try:
            self.custom.delete_namespaced_custom_object(
                kind.group, kind.version, namespace, kind.plural, name
            )
        except ApiException as e:
            raise translate_api_exception(e, f"deleting {kind.kind} {namespace}/{name}") from e

    def watch(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        stop: Optional[threading.Event] = None,
        timeout_seconds: int = 300,
    ) -> Iterator[Dict[str, Any]]:
        """
        Yield {"type": ADDED|MODIFIED|DELETED, "object": {...}} until the
        server closes the stream, *stop* is set, or an error occurs.
        The caller is expected to reconnect.
        """
        fn, kwargs = self._list_fn(kind, namespace)
        w = watch.Watch()
        try:
            for event in w.stream(fn, timeout_seconds=timeout_seconds, **kwargs):
                if stop is not None and stop.is_set():
                    break
                if event.get("type") == "ERROR":
                    log.debug("watch %s returned error event: %s", kind, event.get("raw_object"))
                    break
                yield {"type": event["type"], "object": event["object"]}
        except ApiException as e:
            raise translate_api_exception(e, f"watching {kind.kind}") from e
        finally:
            w.stop()
