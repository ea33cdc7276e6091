"""Neighbor set maintenance across the Routers of a Network.

When a Router comes online (or goes away) every other Router in the same
Network has its ``status.neighbors`` updated with (or stripped of) the
Router's effective faces.  The update is a read-modify-write against the
sibling as it was listed at the start of the reconcile; the patch carries the
sibling's ``resourceVersion`` so the store rejects it if somebody else wrote
in between.  Rejected or failed siblings are reported back to the caller and
never stop the remaining siblings from being updated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from .resources import ROUTER, Router, RouterStatus
from .store import ObjectStore

LOG = logging.getLogger(__name__)


class Going(Enum):
    ONLINE = "online"
    OFFLINE = "offline"

    @property
    def online(self) -> bool:
        return self is Going.ONLINE


@dataclass
class PropagationResult:
    """Outcome of one :func:`propagate` call."""

    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: Dict[str, Exception] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.updated) + len(self.unchanged) + len(self.failed)

    @property
    def all_failed(self) -> bool:
        return bool(self.failed) and not self.updated and not self.unchanged

    def extend(self, other: "PropagationResult") -> None:
        self.updated.extend(other.updated)
        self.unchanged.extend(other.unchanged)
        self.failed.update(other.failed)


def next_neighbors(current: Iterable[str], faces: Iterable[str], going: Going) -> Set[str]:
    neighbors = set(current)
    if going.online:
        return neighbors | set(faces)
    return neighbors - set(faces)


def status_patch(sibling: Router, status: RouterStatus) -> Dict[str, object]:
    body: Dict[str, object] = {"status": status.to_dict()}
    if sibling.metadata.resource_version is not None:
        body["metadata"] = {"resourceVersion": sibling.metadata.resource_version}
    return body


def propagate(
    store: ObjectStore,
    router: Router,
    siblings: Iterable[Router],
    going: Going,
    field_manager: str,
    *,
    faces: Optional[Iterable[str]] = None,
    withdrawn: Iterable[str] = (),
) -> PropagationResult:
    """Add or remove ``router``'s faces on every sibling's neighbor set.

    ``faces`` overrides the router's current effective faces.  Addresses in
    ``withdrawn`` are dropped from each sibling before ``faces`` are applied.
    """

    result = PropagationResult()
    faces = router.spec.faces.effective() if faces is None else set(faces)
    withdrawn = set(withdrawn)
    if not faces:
        LOG.debug("Router %s has no faces to %s", router.name, going.value)

    for sibling in siblings:
        if sibling.name == router.name:
            continue

        desired = RouterStatus(
            online=going.online,
            neighbors=next_neighbors(sibling.neighbors - withdrawn, faces, going),
        )
        if sibling.status is not None and sibling.status == desired:
            LOG.debug("Router %s already up to date", sibling.name)
            result.unchanged.append(sibling.name)
            continue

        LOG.info("Updating status of router %s...", sibling.name)
        try:
            store.patch_status(
                ROUTER,
                sibling.namespace,
                sibling.name,
                status_patch(sibling, desired),
                field_manager,
            )
        except Exception as exc:
            LOG.warning(
                "Failed to update router %s from %s: %s", sibling.name, router.name, exc
            )
            result.failed[sibling.name] = exc
            continue
        result.updated.append(sibling.name)

    return result
