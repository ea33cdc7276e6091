"""Interface to the object store consumed by the reconcilers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from .resources import ResourceKind


class ObjectStore(ABC):
    """Read and patch resources held by the orchestration platform.

    Every method is a blocking network call and raises
    :class:`~ndn_operator.errors.StoreError` on failure.  Documents are plain
    camelCase dictionaries.
    """

    @abstractmethod
    def get(self, kind: ResourceKind, namespace: Optional[str], name: str) -> Optional[Dict[str, Any]]:
        """Return the object, or ``None`` when it does not exist."""

    @abstractmethod
    def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        label_selector: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return the objects of ``kind`` matching ``label_selector``."""

    @abstractmethod
    def apply(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
        field_manager: str,
    ) -> Dict[str, Any]:
        """Server-side apply ``body`` as ``field_manager``."""

    @abstractmethod
    def patch_status(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
        field_manager: str,
    ) -> Dict[str, Any]:
        """Merge-patch the status subresource."""

    @abstractmethod
    def patch_metadata(
        self,
        kind: ResourceKind,
        namespace: Optional[str],
        name: str,
        body: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Merge-patch the main resource (used for finalizer markers)."""

    @abstractmethod
    def self_pod(self) -> Dict[str, Any]:
        """Return the pod the controller itself runs in."""
