"""YAML configuration loader for the controller."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .registry import Backoff

SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def _default_pod_name() -> str:
    return os.environ.get("POD_NAME") or socket.gethostname()


def _default_pod_namespace() -> str:
    env = os.environ.get("POD_NAMESPACE")
    if env:
        return env
    if SERVICE_ACCOUNT_NAMESPACE.exists():
        return SERVICE_ACCOUNT_NAMESPACE.read_text().strip()
    return "default"


@dataclass
class ControllerConfig:
    # Empty means every namespace.
    namespace: str = ""
    pod_name: str = field(default_factory=_default_pod_name)
    pod_namespace: str = field(default_factory=_default_pod_namespace)
    workers: int = 4
    partial_retry: float = 10.0
    backoff: Backoff = field(default_factory=Backoff)


@dataclass
class KubernetesConfig:
    kubeconfig: Optional[Path] = None
    context: Optional[str] = None


@dataclass
class OperatorConfig:
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def _parse_backoff(section: dict) -> Backoff:
    backoff = Backoff(
        initial=float(section.get("initial", 1.0)),
        maximum=float(section.get("maximum", 300.0)),
    )
    if backoff.initial <= 0 or backoff.maximum < backoff.initial:
        raise ValueError("backoff requires 0 < initial <= maximum")
    return backoff


def _parse_controller(section: dict) -> ControllerConfig:
    workers = int(section.get("workers", 4))
    if workers < 1:
        raise ValueError("controller 'workers' must be at least 1")
    config = ControllerConfig(
        namespace=str(section.get("namespace") or ""),
        workers=workers,
        partial_retry=float(section.get("partial_retry", 10.0)),
        backoff=_parse_backoff(_section(section, "backoff")),
    )
    if section.get("pod_name"):
        config.pod_name = str(section["pod_name"])
    if section.get("pod_namespace"):
        config.pod_namespace = str(section["pod_namespace"])
    return config


def _parse_kubernetes(section: dict) -> KubernetesConfig:
    kubeconfig = section.get("kubeconfig")
    context = section.get("context")
    return KubernetesConfig(
        kubeconfig=Path(kubeconfig) if kubeconfig else None,
        context=str(context) if context else None,
    )


def load_config(path: Optional[Path]) -> OperatorConfig:
    if path is None:
        return OperatorConfig()

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError("Controller configuration must be a mapping")

    return OperatorConfig(
        controller=_parse_controller(_section(data, "controller")),
        kubernetes=_parse_kubernetes(_section(data, "kubernetes")),
    )
