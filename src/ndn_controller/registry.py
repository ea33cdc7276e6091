"""Dispatch watch events to the reconciler registered for each kind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Event
from typing import Dict, Optional

from ndn_operator.base import Reconciler
from ndn_operator.resources import ResourceKind
from ndn_operator.store import ObjectStore

from .events import ObjectChanged, ObjectKey
from .queue import WorkQueue

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backoff:
    """Exponential retry delay for keys whose reconcile keeps failing."""

    initial: float = 1.0
    maximum: float = 300.0

    def delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.initial * (2 ** (failures - 1)), self.maximum)


class ControllerRegistry:
    """Queue changed objects and run their reconciler, one key at a time."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        queue: Optional[WorkQueue] = None,
        backoff: Optional[Backoff] = None,
    ) -> None:
        self._store = store
        self._queue = queue or WorkQueue()
        self._backoff = backoff or Backoff()
        self._reconcilers: Dict[ResourceKind, Reconciler] = {}
        self._failures: Dict[ObjectKey, int] = {}

    @property
    def queue(self) -> WorkQueue:
        return self._queue

    def register(self, reconciler: Reconciler) -> None:
        kind = reconciler.kind
        if kind in self._reconcilers:
            raise ValueError(f"reconciler for '{kind}' already registered")
        self._reconcilers[kind] = reconciler

    def unregister(self, kind: ResourceKind) -> None:
        self._reconcilers.pop(kind, None)

    def handle(self, event: ObjectChanged) -> None:
        if not isinstance(event, ObjectChanged):
            raise TypeError(f"Unsupported event type: {type(event)!r}")
        if event.key.kind not in self._reconcilers:
            LOG.debug("no reconciler for %s, ignoring", event.key)
            return
        self._queue.add(event.key)

    def process(self, key: ObjectKey) -> None:
        """Reconcile the latest state of ``key`` and schedule any retry."""

        reconciler = self._reconcilers[key.kind]
        try:
            document = self._store.get(key.kind, key.namespace, key.name)
            if document is None:
                LOG.debug("%s is gone", key)
                self._failures.pop(key, None)
                return
            action = reconciler.handle(document)
        except Exception:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
            delay = self._backoff.delay(failures)
            LOG.exception("reconcile of %s failed (attempt %d), retrying in %.1fs", key, failures, delay)
            self._queue.add_after(key, delay)
            return

        self._failures.pop(key, None)
        if action.requeue_after is not None:
            LOG.debug("requeueing %s in %.1fs", key, action.requeue_after)
            self._queue.add_after(key, action.requeue_after)

    def run_worker(self, stop_event: Event, poll: float = 1.0) -> None:
        while not stop_event.is_set():
            key = self._queue.get(timeout=poll)
            if key is None:
                continue
            try:
                self.process(key)
            finally:
                self._queue.done(key)
