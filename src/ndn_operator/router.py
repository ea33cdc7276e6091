"""Reconciler for Router resources.

Each Router records the faces it last added to its siblings, and the network
it added them in, as annotations.  A later reconcile uses them to withdraw
addresses that were edited out of ``spec.faces``, or every address when the
network label changed, so sibling neighbor sets never keep stale entries.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from .base import Reconciler
from .errors import TopologyError
from .finalizer import Action
from .recorder import Event, EventType
from .resources import NETWORK_LABEL_KEY, ROUTER, ROUTER_FINALIZER, ROUTER_MANAGER_NAME, Router
from .topology import Going, PropagationResult, propagate

LOG = logging.getLogger(__name__)


class RouterReconciler(Reconciler[Router]):
    """Publish each Router's faces into its siblings' neighbor sets."""

    resource = Router
    finalizer = ROUTER_FINALIZER

    def siblings(self, router: Router, network: Optional[str] = None) -> List[Router]:
        """List the other Routers labelled with ``network``.

        ``network`` defaults to the router's own network label.
        """

        if network is None:
            network = router.network_name
        if not network:
            LOG.warning("Router %s has no %s label", router.name, NETWORK_LABEL_KEY)
            return []
        documents = self._ctx.store.list(
            ROUTER, router.namespace, f"{NETWORK_LABEL_KEY}={network}"
        )
        routers = (Router.from_dict(doc) for doc in documents)
        return [r for r in routers if r.name != router.name]

    def _propagate(
        self,
        router: Router,
        going: Going,
        network: Optional[str],
        faces: Set[str],
        withdrawn: Iterable[str] = (),
    ) -> PropagationResult:
        return propagate(
            self._ctx.store,
            router,
            self.siblings(router, network),
            going,
            ROUTER_MANAGER_NAME,
            faces=faces,
            withdrawn=withdrawn,
        )

    def _settle(self, router: Router, result: PropagationResult, going: Going) -> Action:
        # The finalizer goes away once cleanup returns, so a cleanup that
        # missed any sibling has to fail in order to be retried.
        if result.all_failed or (result.failed and not going.online):
            raise TopologyError(router.name, result.failed)
        if result.failed:
            LOG.warning(
                "Router %s: %d of %d sibling updates failed, retrying in %ss",
                router.name,
                len(result.failed),
                result.attempted,
                self._ctx.partial_retry,
            )
            return Action.requeue(self._ctx.partial_retry)
        return Action.await_change()

    def _moved(self, router: Router) -> bool:
        previous = router.published_network
        return bool(previous) and previous != router.network_name

    def reconcile(self, router: Router) -> Action:
        LOG.info("Reconciling Router %s/%s", router.namespace, router.name)
        network = router.network_name
        faces = router.spec.faces.effective()
        published = router.published_faces

        result = PropagationResult()
        stale: Set[str] = set()
        if self._moved(router):
            LOG.info(
                "Router %s left network %s, withdrawing its faces there",
                router.name,
                router.published_network,
            )
            result.extend(
                self._propagate(router, Going.OFFLINE, router.published_network, published)
            )
        else:
            stale = published - faces
        result.extend(self._propagate(router, Going.ONLINE, network, faces, withdrawn=stale))
        action = self._settle(router, result, Going.ONLINE)

        if (
            action.requeue_after is None
            and network
            and (router.published_network, published) != (network, faces)
        ):
            self._ctx.store.patch_metadata(
                ROUTER, router.namespace, router.name, router.published_patch(network, faces)
            )

        self._ctx.recorder.publish(
            Event(
                type=EventType.NORMAL,
                reason="RouterUpdated",
                note=f"Updated `{router.name}` Router",
                action="Updated",
            ),
            router.object_ref(),
        )
        return action

    def cleanup(self, router: Router) -> Action:
        LOG.info("Cleaning up Router %s/%s", router.namespace, router.name)
        faces = router.spec.faces.effective()
        result = PropagationResult()
        if self._moved(router):
            result.extend(
                self._propagate(
                    router, Going.OFFLINE, router.published_network, router.published_faces
                )
            )
        else:
            faces |= router.published_faces
        result.extend(self._propagate(router, Going.OFFLINE, router.network_name, faces))
        action = self._settle(router, result, Going.OFFLINE)

        self._ctx.recorder.publish(
            Event(
                type=EventType.NORMAL,
                reason="RouterDeleted",
                note=f"Deleted `{router.name}` Router",
                action="Deleted",
            ),
            router.object_ref(),
        )
        return action
