"""Shared state handed to every reconciler."""

from __future__ import annotations

from dataclasses import dataclass

from .recorder import EventRecorder
from .store import ObjectStore


@dataclass
class Context:
    store: ObjectStore
    recorder: EventRecorder
    # Delay before retrying a Router whose propagation partially failed.
    partial_retry: float = 10.0
