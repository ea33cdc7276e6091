"""Event publishing interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class EventType(Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class Event:
    """An audit record attached to a resource."""

    type: EventType
    reason: str
    action: str
    note: Optional[str] = None


class EventRecorder(ABC):
    @abstractmethod
    def publish(self, event: Event, reference: Mapping[str, Any]) -> None:
        """Record ``event`` against the object described by ``reference``."""
