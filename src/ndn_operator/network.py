"""Reconciler for Network resources."""

from __future__ import annotations

import logging

from .base import Reconciler
from .daemonset import controller_identity, generate
from .finalizer import Action
from .recorder import Event, EventType
from .resources import DAEMONSET, NETWORK, NETWORK_FINALIZER, NETWORK_MANAGER_NAME, Network

LOG = logging.getLogger(__name__)


class NetworkReconciler(Reconciler[Network]):
    """Keep each Network's DaemonSet applied and its status current."""

    resource = Network
    finalizer = NETWORK_FINALIZER

    def reconcile(self, network: Network) -> Action:
        store = self._ctx.store
        LOG.info("Reconciling Network %s/%s", network.namespace, network.name)

        image, service_account = controller_identity(store.self_pod())
        body = generate(network, image, service_account)
        ds = store.apply(DAEMONSET, network.namespace, network.name, body, NETWORK_MANAGER_NAME)
        ds_name = (ds.get("metadata") or {}).get("name", network.name)

        self._ctx.recorder.publish(
            Event(
                type=EventType.NORMAL,
                reason="DaemonSetCreated",
                note=f"Created `{ds_name}` DaemonSet for `{network.name}` Network",
                action="Created",
            ),
            network.object_ref(),
        )

        store.patch_status(
            NETWORK,
            network.namespace,
            network.name,
            {"status": {"workloadCreated": True}},
            NETWORK_MANAGER_NAME,
        )
        return Action.await_change()

    def cleanup(self, network: Network) -> Action:
        # The DaemonSet is owned by the Network and garbage collected with it.
        LOG.info("Network %s/%s deletion requested", network.namespace, network.name)
        self._ctx.recorder.publish(
            Event(
                type=EventType.NORMAL,
                reason="DeleteRequested",
                note=f"Delete `{network.name}`",
                action="Deleting",
            ),
            network.object_ref(),
        )
        return Action.await_change()
