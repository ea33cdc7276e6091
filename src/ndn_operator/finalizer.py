"""Finalizer-gated reconcile/cleanup dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, TypeVar

from .errors import FinalizerError
from .resources import Resource, ResourceKind
from .store import ObjectStore

LOG = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)


class Phase(Enum):
    RECONCILING = auto()
    CLEANING = auto()


@dataclass(frozen=True)
class Action:
    """What the scheduler should do with the key after a handler returns."""

    requeue_after: Optional[float] = None

    @classmethod
    def await_change(cls) -> "Action":
        return cls()

    @classmethod
    def requeue(cls, seconds: float) -> "Action":
        return cls(requeue_after=seconds)


def phase_of(obj: Resource) -> Phase:
    return Phase.CLEANING if obj.deleting else Phase.RECONCILING


def _finalizer_patch(obj: Resource, finalizers: list) -> dict:
    metadata: dict = {"finalizers": finalizers}
    if obj.metadata.resource_version is not None:
        metadata["resourceVersion"] = obj.metadata.resource_version
    return {"metadata": metadata}


def finalize(
    store: ObjectStore,
    kind: ResourceKind,
    obj: R,
    finalizer: str,
    reconcile: Callable[[R], Action],
    cleanup: Callable[[R], Action],
) -> Action:
    """Run ``reconcile`` or ``cleanup`` for ``obj`` behind ``finalizer``.

    ``cleanup`` only ever runs while the marker is present, and the marker is
    only removed after ``cleanup`` succeeded, so the store cannot erase the
    object before its cleanup has completed at least once.
    """

    present = finalizer in obj.metadata.finalizers
    phase = phase_of(obj)

    if phase is Phase.RECONCILING:
        if not present:
            LOG.debug("Adding finalizer %s to %s %s", finalizer, kind, obj.name)
            try:
                store.patch_metadata(
                    kind,
                    obj.namespace,
                    obj.name,
                    _finalizer_patch(obj, [*obj.metadata.finalizers, finalizer]),
                )
            except Exception as exc:
                raise FinalizerError("add-finalizer", str(exc)) from exc
            # The patch produces a change notification which runs reconcile.
            return Action.await_change()
        try:
            return reconcile(obj)
        except Exception as exc:
            raise FinalizerError("apply", str(exc)) from exc

    if not present:
        LOG.debug("%s %s is being deleted without our finalizer", kind, obj.name)
        return Action.await_change()

    try:
        action = cleanup(obj)
    except Exception as exc:
        raise FinalizerError("cleanup", str(exc)) from exc

    remaining = [f for f in obj.metadata.finalizers if f != finalizer]
    try:
        store.patch_metadata(kind, obj.namespace, obj.name, _finalizer_patch(obj, remaining))
    except Exception as exc:
        raise FinalizerError("remove-finalizer", str(exc)) from exc
    LOG.debug("Removed finalizer %s from %s %s", finalizer, kind, obj.name)
    return action
