"""Render the per-node DaemonSet that realises a Network.

The DaemonSet runs three containers on every selected node:

* ``init`` materialises the forwarder configuration into the host config
  directory;
* ``network`` runs the NDN forwarder itself, bound to the host network; and
* ``watch`` is a sidecar reporting local state through the forwarder's
  control socket.

Rendering is a pure function of the Network and the controller's own image
and service account, so applying the result twice is a no-op.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from .resources import (
    CONTAINER_CONFIG_DIR,
    CONTAINER_SOCKET_DIR,
    DAEMONSET,
    HOST_CONFIG_DIR,
    HOST_SOCKET_DIR,
    Network,
)

NDND_IMAGE = "ghcr.io/named-data/ndnd:20250405"
WORKLOAD_LABEL_KEY = "network"
CONFIG_VOLUME = "config"
SOCKET_VOLUME = "run-ndnd"


def controller_identity(pod: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(image, service_account)`` of the controller's own pod."""

    spec = pod.get("spec") or {}
    containers = spec.get("containers") or []
    image = containers[0].get("image") if containers else None
    return image, spec.get("serviceAccountName")


def _env(name: str, value: str) -> Dict[str, Any]:
    return {"name": name, "value": value}


def _field_env(name: str, field_path: str) -> Dict[str, Any]:
    return {"name": name, "valueFrom": {"fieldRef": {"fieldPath": field_path}}}


def _mount(volume: str, path: str, read_only: Optional[bool] = None) -> Dict[str, Any]:
    mount: Dict[str, Any] = {"name": volume, "mountPath": path}
    if read_only is not None:
        mount["readOnly"] = read_only
    return mount


class DaemonSetRenderer:
    """Build ``apps/v1`` DaemonSet documents for Networks."""

    def __init__(self, image: Optional[str], service_account: Optional[str]) -> None:
        self._image = image
        self._service_account = service_account

    def render(self, network: Network) -> Dict[str, Any]:
        labels = {WORKLOAD_LABEL_KEY: network.name}
        metadata: Dict[str, Any] = {
            "name": network.name,
            "labels": dict(labels),
            "ownerReferences": [network.controller_owner_ref()],
        }
        if network.namespace is not None:
            metadata["namespace"] = network.namespace

        return {
            "apiVersion": DAEMONSET.api_version,
            "kind": DAEMONSET.kind,
            "metadata": metadata,
            "spec": {
                "selector": {"matchLabels": dict(labels)},
                "template": {
                    "metadata": {"labels": dict(labels)},
                    "spec": self._render_pod_spec(network),
                },
            },
        }

    # ------------------------------------------------------------------
    # Pod template
    # ------------------------------------------------------------------
    def _render_pod_spec(self, network: Network) -> Dict[str, Any]:
        spec: Dict[str, Any] = {}
        if self._service_account is not None:
            spec["serviceAccountName"] = self._service_account
        spec["hostNetwork"] = True
        spec["dnsPolicy"] = "ClusterFirstWithHostNet"
        if network.spec.node_selector is not None:
            spec["nodeSelector"] = dict(sorted(network.spec.node_selector.items()))
        spec["initContainers"] = [self._render_init_container(network)]
        spec["containers"] = [
            self._render_daemon_container(network),
            self._render_sidecar_container(network),
        ]
        spec["volumes"] = self._render_volumes()
        return spec

    def _identity_env(self, network: Network) -> List[Dict[str, Any]]:
        return [
            _env("NDN_NETWORK_NAME", network.name),
            _field_env("NDN_NETWORK_NAMESPACE", "metadata.namespace"),
            _field_env("NDN_ROUTER_NAME", "spec.nodeName"),
        ]

    def _with_image(self, container: Dict[str, Any]) -> Dict[str, Any]:
        if self._image is not None:
            container["image"] = self._image
        return container

    def _render_init_container(self, network: Network) -> Dict[str, Any]:
        config_path = network.container_config_path()
        env = [
            _env("NDN_NETWORK_NAME", network.name),
            _env("NDN_UDP_UNICAST_PORT", str(network.spec.udp_unicast_port)),
            _field_env("NDN_NETWORK_NAMESPACE", "metadata.namespace"),
            _field_env("NDN_ROUTER_NAME", "spec.nodeName"),
            _field_env("NDN_NODE_NAME", "spec.nodeName"),
            _env("NDN_SOCKET_PATH", network.container_socket_path()),
        ]
        container = self._with_image({"name": "init"})
        container.update(
            {
                "command": ["/init", "--output", config_path],
                "env": env,
                "securityContext": {"privileged": True},
                "volumeMounts": [_mount(CONFIG_VOLUME, CONTAINER_CONFIG_DIR, read_only=False)],
            }
        )
        return container

    def _render_daemon_container(self, network: Network) -> Dict[str, Any]:
        port = network.spec.udp_unicast_port
        return {
            "name": "network",
            "image": NDND_IMAGE,
            "command": ["/ndnd"],
            "args": ["daemon", network.container_config_path()],
            "securityContext": {"privileged": True},
            "ports": [{"containerPort": port, "hostPort": port, "protocol": "UDP"}],
            "env": [_env("NDN_CLIENT_TRANSPORT", f"unix://{network.container_socket_path()}")],
            "volumeMounts": [
                _mount(CONFIG_VOLUME, CONTAINER_CONFIG_DIR, read_only=True),
                _mount(SOCKET_VOLUME, CONTAINER_SOCKET_DIR),
            ],
        }

    def _render_sidecar_container(self, network: Network) -> Dict[str, Any]:
        env = self._identity_env(network)
        env.append(_env("NDN_CLIENT_TRANSPORT", f"unix://{network.container_socket_path()}"))
        container = self._with_image({"name": "watch"})
        container.update(
            {
                "command": ["/sidecar"],
                "env": env,
                "volumeMounts": [_mount(SOCKET_VOLUME, CONTAINER_SOCKET_DIR)],
            }
        )
        return container

    def _render_volumes(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": CONFIG_VOLUME,
                "hostPath": {"path": HOST_CONFIG_DIR, "type": "DirectoryOrCreate"},
            },
            {
                "name": SOCKET_VOLUME,
                "hostPath": {"path": HOST_SOCKET_DIR, "type": "DirectoryOrCreate"},
            },
        ]


def generate(
    network: Network,
    image: Optional[str],
    service_account: Optional[str],
) -> Dict[str, Any]:
    """Return the DaemonSet document owned by ``network``."""

    return DaemonSetRenderer(image, service_account).render(network)
