import copy
import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

from ndn_operator import Context
from ndn_operator.errors import StoreError
from ndn_operator.recorder import Event, EventRecorder
from ndn_operator.resources import API_VERSION, NETWORK_LABEL_KEY, ROUTER, ResourceKind
from ndn_operator.store import ObjectStore

Key = Tuple[ResourceKind, Optional[str], str]


def merge_patch(target: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_patch(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class InMemoryStore(ObjectStore):
    """Object store fake with resourceVersion checks and finalizer-gated deletes."""

    def __init__(self, pod: Optional[Dict[str, Any]] = None) -> None:
        self.objects: Dict[Key, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.failing: set = set()
        self.pod = pod or {
            "metadata": {"name": "ndn-operator-0", "namespace": "ndn-system"},
            "spec": {
                "serviceAccountName": "ndn-operator",
                "containers": [{"name": "operator", "image": "ghcr.io/named-data/ndn-operator:v1"}],
            },
        }
        self._versions = itertools.count(1)
        self._uids = itertools.count(1)

    # helpers -----------------------------------------------------------
    def add(self, kind: ResourceKind, document: Dict[str, Any]) -> Dict[str, Any]:
        doc = copy.deepcopy(document)
        meta = doc.setdefault("metadata", {})
        meta.setdefault("uid", f"uid-{next(self._uids)}")
        meta["resourceVersion"] = str(next(self._versions))
        self.objects[(kind, meta.get("namespace"), meta["name"])] = doc
        return copy.deepcopy(doc)

    def delete(self, kind: ResourceKind, namespace: Optional[str], name: str) -> None:
        doc = self.objects[(kind, namespace, name)]
        if doc["metadata"].get("finalizers"):
            doc["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
            self._bump(doc)
        else:
            del self.objects[(kind, namespace, name)]

    def peek(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]:
        return self.objects[(kind, namespace, name)]

    def _bump(self, doc: Dict[str, Any]) -> None:
        doc["metadata"]["resourceVersion"] = str(next(self._versions))

    def _existing(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Dict[str, Any]:
        try:
            return self.objects[(kind, namespace, name)]
        except KeyError:
            raise StoreError(f"{kind} {name} not found", 404) from None

    def _check_version(self, doc: Dict[str, Any], body: Dict[str, Any]) -> None:
        expected = (body.get("metadata") or {}).get("resourceVersion")
        if expected is not None and expected != doc["metadata"]["resourceVersion"]:
            raise StoreError("the object has been modified", 409)

    # ObjectStore -------------------------------------------------------
    def get(self, kind, namespace, name):
        self.calls.append(("get", str(kind), name))
        doc = self.objects.get((kind, namespace, name))
        return copy.deepcopy(doc) if doc is not None else None

    def list(self, kind, namespace, label_selector=None):
        self.calls.append(("list", str(kind), label_selector or ""))
        wanted = dict(part.split("=", 1) for part in label_selector.split(",")) if label_selector else {}
        found = []
        for (k, ns, _), doc in sorted(self.objects.items(), key=lambda item: item[0][2]):
            if k != kind or (namespace is not None and ns != namespace):
                continue
            labels = doc["metadata"].get("labels") or {}
            if all(labels.get(key) == value for key, value in wanted.items()):
                found.append(copy.deepcopy(doc))
        return found

    def apply(self, kind, namespace, name, body, field_manager):
        self.calls.append(("apply", str(kind), name))
        doc = copy.deepcopy(dict(body))
        existing = self.objects.get((kind, namespace, name))
        meta = doc.setdefault("metadata", {})
        meta["uid"] = existing["metadata"]["uid"] if existing else f"uid-{next(self._uids)}"
        meta["resourceVersion"] = str(next(self._versions))
        self.objects[(kind, namespace, name)] = doc
        return copy.deepcopy(doc)

    def patch_status(self, kind, namespace, name, body, field_manager):
        self.calls.append(("patch_status", str(kind), name))
        if name in self.failing:
            raise StoreError(f"patch {name} failed", 500)
        doc = self._existing(kind, namespace, name)
        self._check_version(doc, body)
        merge_patch(doc.setdefault("status", {}), body.get("status") or {})
        self._bump(doc)
        return copy.deepcopy(doc)

    def patch_metadata(self, kind, namespace, name, body):
        self.calls.append(("patch_metadata", str(kind), name))
        doc = self._existing(kind, namespace, name)
        self._check_version(doc, body)
        patch = {k: v for k, v in (body.get("metadata") or {}).items() if k != "resourceVersion"}
        merge_patch(doc["metadata"], patch)
        self._bump(doc)
        if doc["metadata"].get("deletionTimestamp") and not doc["metadata"].get("finalizers"):
            del self.objects[(kind, namespace, name)]
        return copy.deepcopy(doc)

    def self_pod(self):
        self.calls.append(("self_pod", "Pod", self.pod["metadata"]["name"]))
        return copy.deepcopy(self.pod)


class RecordingRecorder(EventRecorder):
    def __init__(self) -> None:
        self.events: List[Tuple[Event, Dict[str, Any]]] = []

    def publish(self, event, reference):
        self.events.append((event, dict(reference)))

    @property
    def reasons(self) -> List[str]:
        return [event.reason for event, _ in self.events]


def network_doc(name="n1", namespace="default", prefix="/ndn", port=6363, **extra):
    spec = {"prefix": prefix, "udpUnicastPort": port}
    spec.update(extra)
    return {
        "apiVersion": API_VERSION,
        "kind": "Network",
        "metadata": {"name": name, "namespace": namespace, "uid": f"{name}-uid"},
        "spec": spec,
    }


def router_doc(name, network="n1", namespace="default", finalizers=None, status=None, **faces):
    doc = {
        "apiVersion": API_VERSION,
        "kind": "Router",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {NETWORK_LABEL_KEY: network},
        },
        "spec": {"prefix": "/ndn", "node": f"node-{name}", "faces": faces},
    }
    if finalizers is not None:
        doc["metadata"]["finalizers"] = list(finalizers)
    if status is not None:
        doc["status"] = status
    return doc


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def recorder() -> RecordingRecorder:
    return RecordingRecorder()


@pytest.fixture
def ctx(store, recorder) -> Context:
    return Context(store=store, recorder=recorder, partial_retry=5.0)


@pytest.fixture
def add_router(store):
    def _add(name, network="n1", **kwargs):
        return store.add(ROUTER, router_doc(name, network=network, **kwargs))

    return _add
