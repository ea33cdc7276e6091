"""Error types raised by the reconcilers and the object store adapters."""

from __future__ import annotations

from typing import Mapping, Optional


class OperatorError(Exception):
    """Base class for every error surfaced to the controller runtime."""


class StoreError(OperatorError):
    """An object store call failed (network or API error)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def conflict(self) -> bool:
        return self.status == 409

    @property
    def not_found(self) -> bool:
        return self.status == 404


class SerializationError(OperatorError):
    """A document could not be parsed into, or rendered from, a resource."""


class InvalidResourceError(OperatorError):
    """A resource is structurally valid but unusable (e.g. missing uid)."""


class FinalizerError(OperatorError):
    """A step of the finalizer chain did not complete.

    ``step`` is one of ``apply``, ``cleanup``, ``add-finalizer`` or
    ``remove-finalizer``; the failing exception is kept as ``__cause__``.
    """

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step} failed: {message}")
        self.step = step


class TopologyError(OperatorError):
    """Neighbor propagation did not reach enough siblings to succeed."""

    def __init__(self, router: str, failures: Mapping[str, Exception]) -> None:
        names = ", ".join(sorted(failures))
        super().__init__(f"router {router}: sibling updates failed ({names})")
        self.router = router
        self.failures = dict(failures)
