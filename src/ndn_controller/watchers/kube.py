"""Kubernetes list+watch thread publishing object change events."""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from ndn_operator.resources import DAEMONSET, GROUP, ResourceKind

from ..events import ObjectChanged, ObjectKey
from ..registry import ControllerRegistry

LOG = logging.getLogger(__name__)

KeyMapper = Callable[[Dict[str, Any]], Iterable[ObjectKey]]


def identity_keys(kind: ResourceKind) -> KeyMapper:
    """Map an object to its own key."""

    def mapper(obj: Dict[str, Any]) -> Iterable[ObjectKey]:
        meta = obj.get("metadata") or {}
        name = meta.get("name")
        if not name:
            return []
        return [ObjectKey(kind, meta.get("namespace"), name)]

    return mapper


def owner_keys(owner: ResourceKind) -> KeyMapper:
    """Map an object to the keys of its controlling owners of kind ``owner``."""

    def mapper(obj: Dict[str, Any]) -> Iterable[ObjectKey]:
        meta = obj.get("metadata") or {}
        keys = []
        for ref in meta.get("ownerReferences") or []:
            if (
                ref.get("kind") == owner.kind
                and ref.get("apiVersion") == owner.api_version
                and ref.get("controller")
            ):
                keys.append(ObjectKey(owner, meta.get("namespace"), ref["name"]))
        return keys

    return mapper


def list_call(
    api_client: client.ApiClient, kind: ResourceKind, namespace: Optional[str]
) -> Tuple[Callable[..., Any], List[Any]]:
    """Return the list function and positional args watching ``kind`` needs."""

    if kind.group == GROUP:
        custom = client.CustomObjectsApi(api_client)
        if namespace:
            return custom.list_namespaced_custom_object, [kind.group, kind.version, namespace, kind.plural]
        return custom.list_cluster_custom_object, [kind.group, kind.version, kind.plural]
    if kind == DAEMONSET:
        apps = client.AppsV1Api(api_client)
        if namespace:
            return apps.list_namespaced_daemon_set, [namespace]
        return apps.list_daemon_set_for_all_namespaces, []
    raise ValueError(f"cannot watch kind '{kind}'")


class ResourceWatcher(Thread):
    """List a kind once, then follow its watch stream.

    Every object seen is mapped to one or more keys which are published to
    the registry.  The watch resumes from the last seen resource version and
    only falls back to a full list when the stream reports ``410 Gone`` or
    fails.
    """

    def __init__(
        self,
        registry: ControllerRegistry,
        api_client: client.ApiClient,
        kind: ResourceKind,
        stop_event: Event,
        *,
        namespace: Optional[str] = None,
        mapper: Optional[KeyMapper] = None,
        interval: float = 5.0,
        timeout_seconds: int = 60,
    ) -> None:
        super().__init__(daemon=True, name=f"watch-{kind.plural}")
        self._registry = registry
        self._kind = kind
        self._namespace = namespace or None
        self._mapper = mapper or identity_keys(kind)
        self._stop_event = stop_event
        self._interval = interval
        self._timeout = timeout_seconds
        self._client = api_client
        self._list, self._args = list_call(api_client, kind, self._namespace)

    def run(self) -> None:
        resource_version: Optional[str] = None
        while not self._stop_event.is_set():
            try:
                if resource_version is None:
                    resource_version = self.resync()
                resource_version = self.follow(resource_version)
            except ApiException as exc:
                resource_version = None
                if exc.status == 410:
                    LOG.info("watch on %s expired, relisting", self._kind.plural)
                    continue
                LOG.warning("watch on %s failed: %s %s", self._kind.plural, exc.status, exc.reason)
                self._stop_event.wait(self._interval)
            except Exception:  # pragma: no cover - logged below
                resource_version = None
                LOG.exception("%s watcher encountered an error", self._kind.plural)
                self._stop_event.wait(self._interval)

    def publish(self, obj: Dict[str, Any]) -> None:
        for key in self._mapper(obj):
            self._registry.handle(ObjectChanged(key))

    def resync(self) -> Optional[str]:
        """List every object, publish it and return the list's resource version."""

        result = self._list(*self._args)
        if isinstance(result, dict):
            items = result.get("items", [])
            resource_version = (result.get("metadata") or {}).get("resourceVersion")
        else:
            sanitize = self._client.sanitize_for_serialization
            items = [sanitize(item) for item in result.items]
            resource_version = result.metadata.resource_version
        LOG.debug("listed %d %s", len(items), self._kind.plural)
        for item in items:
            self.publish(item)
        return resource_version

    def follow(self, resource_version: Optional[str]) -> Optional[str]:
        """Stream changes until the server closes the watch."""

        stream = watch.Watch()
        kwargs: Dict[str, Any] = {"timeout_seconds": self._timeout}
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            for event in stream.stream(self._list, *self._args, **kwargs):
                if self._stop_event.is_set():
                    break
                raw = event.get("raw_object") or {}
                if event.get("type") == "ERROR":
                    raise ApiException(status=raw.get("code"), reason=raw.get("message"))
                resource_version = (raw.get("metadata") or {}).get("resourceVersion", resource_version)
                LOG.debug("%s event for %s", event.get("type"), self._kind.plural)
                self.publish(raw)
        finally:
            stream.stop()
        return resource_version
