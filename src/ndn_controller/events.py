"""Event primitives passed from the watchers to the controller registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ndn_operator.resources import ResourceKind


@dataclass(frozen=True)
class ObjectKey:
    """Identity of one object; the unit of scheduling."""

    kind: ResourceKind
    namespace: Optional[str]
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind.kind}/{self.namespace}/{self.name}"
        return f"{self.kind.kind}/{self.name}"


@dataclass(frozen=True)
class ObjectChanged:
    """Signals that an object may differ from what was last reconciled.

    Watchers publish this for every added, modified or deleted object; the
    registry always re-reads the latest state before reconciling, so the
    event carries no payload beyond the key.
    """

    key: ObjectKey
