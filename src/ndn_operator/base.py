"""Abstract interface for per-kind reconcilers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, Mapping, Type, TypeVar

from .context import Context
from .finalizer import Action, finalize
from .resources import Resource, ResourceKind

R = TypeVar("R", bound=Resource)


class Reconciler(ABC, Generic[R]):
    """Base class for the handlers registered with the controller runtime.

    Subclasses name their resource class and finalizer; :meth:`handle` parses
    the latest document and routes it to :meth:`reconcile` or :meth:`cleanup`
    through the finalizer state machine.
    """

    resource: ClassVar[Type[Resource]]
    finalizer: ClassVar[str]

    def __init__(self, ctx: Context) -> None:
        self._ctx = ctx

    @property
    def kind(self) -> ResourceKind:
        return self.resource.KIND

    def handle(self, document: Mapping[str, Any]) -> Action:
        obj = self.resource.from_dict(document)
        return finalize(
            self._ctx.store, self.kind, obj, self.finalizer, self.reconcile, self.cleanup
        )

    @abstractmethod
    def reconcile(self, obj: R) -> Action:
        """Drive the world towards ``obj``'s desired state."""

    @abstractmethod
    def cleanup(self, obj: R) -> Action:
        """Undo ``obj``'s effects before the store erases it."""
