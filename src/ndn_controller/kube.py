"""Kubernetes-backed implementations of the object store and event recorder."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ndn_operator.errors import StoreError
from ndn_operator.recorder import Event, EventRecorder
from ndn_operator.resources import DAEMONSET, GROUP, POD, ResourceKind
from ndn_operator.store import ObjectStore

from .config import KubernetesConfig

LOG = logging.getLogger(__name__)

APPLY_PATCH = "application/apply-patch+yaml"
MERGE_PATCH = "application/merge-patch+json"
REPORTING_CONTROLLER = "ndn-operator"


def build_api_client(cfg: KubernetesConfig) -> client.ApiClient:
    """Create an API client from a kubeconfig or the in-cluster environment."""

    if cfg.kubeconfig is None and os.environ.get("KUBERNETES_SERVICE_HOST"):
        config.load_incluster_config()
        return client.ApiClient()
    return config.new_client_from_config(
        config_file=str(cfg.kubeconfig) if cfg.kubeconfig else None,
        context=cfg.context,
    )


def _store_error(action: str, kind: ResourceKind, name: str, exc: ApiException) -> StoreError:
    return StoreError(f"{action} {kind} {name} failed: {exc.status} {exc.reason}", exc.status)


class KubernetesObjectStore(ObjectStore):
    """Object store backed by the Kubernetes API server."""

    def __init__(self, api_client: client.ApiClient, pod_name: str, pod_namespace: str) -> None:
        self._client = api_client
        self._custom = client.CustomObjectsApi(api_client)
        self._apps = client.AppsV1Api(api_client)
        self._core = client.CoreV1Api(api_client)
        self._pod_name = pod_name
        self._pod_namespace = pod_namespace

    def _plain(self, obj: Any) -> Dict[str, Any]:
        return self._client.sanitize_for_serialization(obj)

    @staticmethod
    def _custom_kind(kind: ResourceKind) -> bool:
        return kind.group == GROUP

    def _call(self, action: str, kind: ResourceKind, name: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except ApiException as exc:
            raise _store_error(action, kind, name, exc) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Optional[Dict[str, Any]]:
        try:
            if self._custom_kind(kind):
                if namespace is None:
                    return self._custom.get_cluster_custom_object(
                        kind.group, kind.version, kind.plural, name
                    )
                return self._custom.get_namespaced_custom_object(
                    kind.group, kind.version, namespace, kind.plural, name
                )
            if kind == DAEMONSET:
                return self._plain(self._apps.read_namespaced_daemon_set(name, namespace))
            if kind == POD:
                return self._plain(self._core.read_namespaced_pod(name, namespace))
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise _store_error("get", kind, name, exc) from exc
        raise ValueError(f"unsupported kind '{kind}'")

    def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        label_selector: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        kwargs = {"label_selector": label_selector} if label_selector else {}
        if self._custom_kind(kind):
            if namespace is None:
                result = self._call(
                    "list", kind, "*", self._custom.list_cluster_custom_object,
                    kind.group, kind.version, kind.plural, **kwargs,
                )
            else:
                result = self._call(
                    "list", kind, "*", self._custom.list_namespaced_custom_object,
                    kind.group, kind.version, namespace, kind.plural, **kwargs,
                )
            return list(result.get("items", []))
        if kind == DAEMONSET:
            if namespace is None:
                result = self._call(
                    "list", kind, "*", self._apps.list_daemon_set_for_all_namespaces, **kwargs
                )
            else:
                result = self._call(
                    "list", kind, "*", self._apps.list_namespaced_daemon_set, namespace, **kwargs
                )
            return [self._plain(item) for item in result.items]
        raise ValueError(f"unsupported kind '{kind}'")

    def self_pod(self) -> Dict[str, Any]:
        pod = self._call(
            "get", POD, self._pod_name, self._core.read_namespaced_pod,
            self._pod_name, self._pod_namespace,
        )
        return self._plain(pod)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def apply(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
        field_manager: str,
    ) -> Dict[str, Any]:
        if kind == DAEMONSET:
            result = self._call(
                "apply", kind, name, self._apps.patch_namespaced_daemon_set,
                name, namespace, dict(body),
                field_manager=field_manager, _content_type=APPLY_PATCH,
            )
            return self._plain(result)
        if self._custom_kind(kind):
            return self._call(
                "apply", kind, name, self._custom.patch_namespaced_custom_object,
                kind.group, kind.version, namespace, kind.plural, name, dict(body),
                field_manager=field_manager, _content_type=APPLY_PATCH,
            )
        raise ValueError(f"unsupported kind '{kind}'")

    def patch_status(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
        field_manager: str,
    ) -> Dict[str, Any]:
        if not self._custom_kind(kind):
            raise ValueError(f"unsupported kind '{kind}'")
        return self._call(
            "patch status of", kind, name, self._custom.patch_namespaced_custom_object_status,
            kind.group, kind.version, namespace, kind.plural, name, dict(body),
            field_manager=field_manager, _content_type=MERGE_PATCH,
        )

    def patch_metadata(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
    ) -> Dict[str, Any]:
        if not self._custom_kind(kind):
            raise ValueError(f"unsupported kind '{kind}'")
        return self._call(
            "patch", kind, name, self._custom.patch_namespaced_custom_object,
            kind.group, kind.version, namespace, kind.plural, name, dict(body),
            _content_type=MERGE_PATCH,
        )


class KubernetesEventRecorder(EventRecorder):
    """Publish ``events.k8s.io/v1`` events on behalf of the controller."""

    def __init__(self, api_client: client.ApiClient, instance: str) -> None:
        self._events = client.EventsV1Api(api_client)
        self._instance = instance

    def publish(self, event: Event, reference: Mapping[str, Any]) -> None:
        namespace = reference.get("namespace") or "default"
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        body: Dict[str, Any] = {
            "apiVersion": "events.k8s.io/v1",
            "kind": "Event",
            "metadata": {"generateName": f"{reference.get('name', 'unknown')}.", "namespace": namespace},
            "eventTime": now,
            "reportingController": REPORTING_CONTROLLER,
            "reportingInstance": self._instance,
            "type": event.type.value,
            "reason": event.reason,
            "action": event.action,
            "regarding": dict(reference),
        }
        if event.note is not None:
            # The API server rejects notes longer than 1kB.
            body["note"] = event.note[:1024]
        try:
            self._events.create_namespaced_event(namespace, body)
        except ApiException as exc:
            error = StoreError(f"publish event {event.reason} failed: {exc.status} {exc.reason}", exc.status)
            raise error from exc
        LOG.debug("Published %s event for %s", event.reason, reference.get("name"))
