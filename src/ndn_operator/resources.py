"""Typed views over the Network and Router custom resources.

The classes wrap the camelCase documents returned by the object store.  Each
instance keeps the raw document it was parsed from so that fields we do not
model survive a round trip; ``to_dict`` overlays the modelled fields on top of
that document.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .errors import InvalidResourceError, SerializationError

GROUP = "named-data.net"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"

NETWORK_LABEL_KEY = "network.named-data.net/name"
NETWORK_FINALIZER = "networks.named-data.net/finalizer"
ROUTER_FINALIZER = "routers.named-data.net/finalizer"
PUBLISHED_FACES_ANNOTATION = "routers.named-data.net/published-faces"
PUBLISHED_NETWORK_ANNOTATION = "routers.named-data.net/published-network"
NETWORK_MANAGER_NAME = "network-controller"
ROUTER_MANAGER_NAME = "router-controller"
DEFAULT_UDP_UNICAST_PORT = 6363

CONTAINER_CONFIG_DIR = "/etc/ndnd"
CONTAINER_SOCKET_DIR = "/run/ndnd"
HOST_CONFIG_DIR = "/etc/ndnd"
HOST_SOCKET_DIR = "/run/ndnd"


@dataclass(frozen=True)
class ResourceKind:
    """Coordinates of a resource type in the object store."""

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return self.kind


NETWORK = ResourceKind(GROUP, VERSION, "networks", "Network")
ROUTER = ResourceKind(GROUP, VERSION, "routers", "Router")
DAEMONSET = ResourceKind("apps", "v1", "daemonsets", "DaemonSet")
POD = ResourceKind("", "v1", "pods", "Pod")


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SerializationError(f"{where} must be a mapping, got {type(value).__name__}")
    return dict(value)


def _string_map(value: Any, where: str) -> Dict[str, str]:
    return {str(k): str(v) for k, v in _mapping(value, where).items()}


@dataclass
class Metadata:
    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    owner_references: List[Dict[str, Any]] = field(default_factory=list)
    deletion_timestamp: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Metadata":
        meta = _mapping(data, "metadata")
        name = meta.get("name")
        if not name:
            raise SerializationError("metadata.name is required")
        finalizers = meta.get("finalizers") or []
        owners = meta.get("ownerReferences") or []
        if not isinstance(finalizers, list) or not isinstance(owners, list):
            raise SerializationError("metadata.finalizers and ownerReferences must be lists")
        return cls(
            name=str(name),
            namespace=meta.get("namespace"),
            uid=meta.get("uid"),
            resource_version=meta.get("resourceVersion"),
            labels=_string_map(meta.get("labels"), "metadata.labels"),
            annotations=_string_map(meta.get("annotations"), "metadata.annotations"),
            finalizers=[str(f) for f in finalizers],
            owner_references=[dict(o) for o in owners],
            deletion_timestamp=meta.get("deletionTimestamp"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.namespace is not None:
            out["namespace"] = self.namespace
        if self.uid is not None:
            out["uid"] = self.uid
        if self.resource_version is not None:
            out["resourceVersion"] = self.resource_version
        if self.labels:
            out["labels"] = dict(self.labels)
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        if self.finalizers:
            out["finalizers"] = list(self.finalizers)
        if self.owner_references:
            out["ownerReferences"] = [dict(o) for o in self.owner_references]
        if self.deletion_timestamp is not None:
            out["deletionTimestamp"] = self.deletion_timestamp
        return out


class Resource:
    """Behaviour shared by Network and Router."""

    KIND: ResourceKind

    metadata: Metadata
    _raw: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def object_ref(self) -> Dict[str, Any]:
        ref = {
            "apiVersion": self.KIND.api_version,
            "kind": self.KIND.kind,
            "name": self.name,
        }
        if self.namespace is not None:
            ref["namespace"] = self.namespace
        if self.metadata.uid is not None:
            ref["uid"] = self.metadata.uid
        return ref

    def controller_owner_ref(self) -> Dict[str, Any]:
        if not self.metadata.uid:
            raise InvalidResourceError(f"{self.KIND.kind} {self.name} has no uid")
        return {
            "apiVersion": self.KIND.api_version,
            "kind": self.KIND.kind,
            "name": self.name,
            "uid": self.metadata.uid,
            "controller": True,
        }

    def _document(self, spec: Dict[str, Any], status: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        doc = copy.deepcopy(self._raw)
        doc["apiVersion"] = self.KIND.api_version
        doc["kind"] = self.KIND.kind
        metadata = doc.get("metadata") or {}
        metadata.update(self.metadata.to_dict())
        doc["metadata"] = metadata
        doc["spec"] = {**(doc.get("spec") or {}), **spec}
        if status is not None:
            doc["status"] = {**(doc.get("status") or {}), **status}
        return doc


# ----------------------------------------------------------------------
# Network
# ----------------------------------------------------------------------
@dataclass
class NetworkSpec:
    prefix: str
    udp_unicast_port: int
    node_selector: Optional[Dict[str, str]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "NetworkSpec":
        spec = _mapping(data, "Network spec")
        try:
            prefix = str(spec["prefix"])
            port = int(spec["udpUnicastPort"])
        except KeyError as exc:
            raise SerializationError(f"Network spec missing {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"invalid udpUnicastPort: {exc}") from exc
        selector = spec.get("nodeSelector")
        return cls(
            prefix=prefix,
            udp_unicast_port=port,
            node_selector=None if selector is None else _string_map(selector, "nodeSelector"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"prefix": self.prefix, "udpUnicastPort": self.udp_unicast_port}
        if self.node_selector is not None:
            out["nodeSelector"] = dict(self.node_selector)
        return out


@dataclass
class NetworkStatus:
    workload_created: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "NetworkStatus":
        status = _mapping(data, "Network status")
        created = status.get("workloadCreated")
        return cls(workload_created=None if created is None else bool(created))

    def to_dict(self) -> Dict[str, Any]:
        if self.workload_created is None:
            return {}
        return {"workloadCreated": self.workload_created}


@dataclass
class Network(Resource):
    """Desired state of one forwarding overlay."""

    KIND = NETWORK

    metadata: Metadata
    spec: NetworkSpec
    status: Optional[NetworkStatus] = None
    _raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Network":
        doc = _mapping(data, "Network")
        status = doc.get("status")
        return cls(
            metadata=Metadata.from_dict(doc.get("metadata")),
            spec=NetworkSpec.from_dict(doc.get("spec")),
            status=None if status is None else NetworkStatus.from_dict(status),
            _raw=copy.deepcopy(doc),
        )

    @classmethod
    def from_owner_reference(cls, ref: Mapping[str, Any]) -> "Network":
        """Build a name-only Network from an owner reference."""

        kind = ref.get("kind")
        if kind != NETWORK.kind:
            raise InvalidResourceError(f"Expected kind 'Network', found '{kind}'")
        api_version = ref.get("apiVersion")
        if api_version != API_VERSION:
            raise InvalidResourceError(
                f"Expected apiVersion '{API_VERSION}', found '{api_version}'"
            )
        name = ref.get("name")
        if not name:
            raise InvalidResourceError("OwnerReference name is empty")
        return cls(
            metadata=Metadata(name=str(name), uid=ref.get("uid")),
            spec=NetworkSpec(prefix="", udp_unicast_port=0),
        )

    def to_dict(self) -> Dict[str, Any]:
        status = None if self.status is None else self.status.to_dict()
        return self._document(self.spec.to_dict(), status)

    def socket_file_name(self) -> str:
        return f"{self.name}.sock"

    def container_socket_path(self) -> str:
        return f"{CONTAINER_SOCKET_DIR}/{self.socket_file_name()}"

    def host_socket_path(self) -> str:
        return f"{HOST_SOCKET_DIR}/{self.socket_file_name()}"

    def config_file_name(self) -> str:
        return f"{self.name}.yml"

    def container_config_path(self) -> str:
        return f"{CONTAINER_CONFIG_DIR}/{self.config_file_name()}"

    def host_config_path(self) -> str:
        return f"{HOST_CONFIG_DIR}/{self.config_file_name()}"


# ----------------------------------------------------------------------
# Router
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class RouterFaces:
    """Up to four transport addresses a router can be reached at."""

    udp4: Optional[str] = None
    tcp4: Optional[str] = None
    udp6: Optional[str] = None
    tcp6: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "RouterFaces":
        faces = _mapping(data, "Router faces")
        return cls(**{slot: faces.get(slot) for slot in ("udp4", "tcp4", "udp6", "tcp6")})

    def to_dict(self) -> Dict[str, str]:
        slots = {"udp4": self.udp4, "tcp4": self.tcp4, "udp6": self.udp6, "tcp6": self.tcp6}
        return {slot: value for slot, value in slots.items() if value is not None}

    def effective(self) -> Set[str]:
        """Return the non-empty addresses."""

        return {face for face in (self.udp4, self.tcp4, self.udp6, self.tcp6) if face}


@dataclass
class RouterSpec:
    prefix: str
    node: str
    faces: RouterFaces = field(default_factory=RouterFaces)

    @classmethod
    def from_dict(cls, data: Any) -> "RouterSpec":
        spec = _mapping(data, "Router spec")
        try:
            return cls(
                prefix=str(spec["prefix"]),
                node=str(spec["node"]),
                faces=RouterFaces.from_dict(spec.get("faces")),
            )
        except KeyError as exc:
            raise SerializationError(f"Router spec missing {exc.args[0]!r}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {"prefix": self.prefix, "node": self.node, "faces": self.faces.to_dict()}


@dataclass
class RouterStatus:
    online: bool = False
    neighbors: Set[str] = field(default_factory=set)

    @classmethod
    def from_dict(cls, data: Any) -> "RouterStatus":
        status = _mapping(data, "Router status")
        neighbors = status.get("neighbors") or []
        if not isinstance(neighbors, (list, tuple, set)):
            raise SerializationError("Router status.neighbors must be a list")
        return cls(online=bool(status.get("online", False)), neighbors={str(n) for n in neighbors})

    def to_dict(self) -> Dict[str, Any]:
        return {"online": self.online, "neighbors": sorted(self.neighbors)}


@dataclass
class Router(Resource):
    """One forwarding daemon instance and its computed neighbor set."""

    KIND = ROUTER

    metadata: Metadata
    spec: RouterSpec
    status: Optional[RouterStatus] = None
    _raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Router":
        doc = _mapping(data, "Router")
        status = doc.get("status")
        return cls(
            metadata=Metadata.from_dict(doc.get("metadata")),
            spec=RouterSpec.from_dict(doc.get("spec")),
            status=None if status is None else RouterStatus.from_dict(status),
            _raw=copy.deepcopy(doc),
        )

    def to_dict(self) -> Dict[str, Any]:
        status = None if self.status is None else self.status.to_dict()
        return self._document(self.spec.to_dict(), status)

    @property
    def network_name(self) -> Optional[str]:
        return self.metadata.labels.get(NETWORK_LABEL_KEY)

    @property
    def neighbors(self) -> Set[str]:
        if self.status is None:
            return set()
        return set(self.status.neighbors)

    @property
    def published_network(self) -> Optional[str]:
        """Network the faces in :attr:`published_faces` were last added to."""

        return self.metadata.annotations.get(PUBLISHED_NETWORK_ANNOTATION) or None

    @property
    def published_faces(self) -> Set[str]:
        raw = self.metadata.annotations.get(PUBLISHED_FACES_ANNOTATION)
        if not raw:
            return set()
        try:
            faces = json.loads(raw)
        except ValueError as exc:
            raise SerializationError(f"invalid {PUBLISHED_FACES_ANNOTATION}: {exc}") from exc
        if not isinstance(faces, list):
            raise SerializationError(f"{PUBLISHED_FACES_ANNOTATION} must be a JSON list")
        return {str(face) for face in faces}

    def published_patch(self, network: str, faces: Set[str]) -> Dict[str, Any]:
        return {
            "metadata": {
                "annotations": {
                    PUBLISHED_FACES_ANNOTATION: json.dumps(sorted(faces)),
                    PUBLISHED_NETWORK_ANNOTATION: network,
                }
            }
        }

    def socket_file_name(self) -> str:
        return f"{self.name}.sock"


def build_owned_router(
    source: Network,
    name: str,
    node_name: str,
    ip4: Optional[str] = None,
    ip6: Optional[str] = None,
    udp_unicast_port: int = DEFAULT_UDP_UNICAST_PORT,
) -> Router:
    """Describe the Router a node contributes to ``source``."""

    labels = dict(source.metadata.labels)
    labels[NETWORK_LABEL_KEY] = source.name
    return Router(
        metadata=Metadata(
            name=name,
            namespace=source.namespace,
            labels=labels,
            annotations=dict(source.metadata.annotations),
            owner_references=[source.controller_owner_ref()],
        ),
        spec=RouterSpec(
            prefix=source.spec.prefix,
            node=node_name,
            faces=RouterFaces(
                udp4=f"udp://{ip4}:{udp_unicast_port}" if ip4 else None,
                udp6=f"udp://[{ip6}]:{udp_unicast_port}" if ip6 else None,
            ),
        ),
        status=RouterStatus(online=False, neighbors=set()),
    )
