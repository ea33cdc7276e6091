"""NDN network operator core.

This package holds the reconciliation logic behind two custom resources:

* ``Network`` describes a logical NDN overlay (prefix, UDP port and node
  placement) and is realised as a per-node DaemonSet running the forwarder;
* ``Router`` describes one forwarder instance, its faces and the set of
  neighbor faces it should connect to.

The reconcilers talk to the cluster exclusively through the
:class:`~ndn_operator.store.ObjectStore` and
:class:`~ndn_operator.recorder.EventRecorder` interfaces so they can be
exercised against in-memory fakes.  The runtime that watches the cluster and
schedules reconciles lives in :mod:`ndn_controller`.
"""

from .context import Context  # noqa: F401
from .finalizer import Action  # noqa: F401
from .network import NetworkReconciler  # noqa: F401
from .router import RouterReconciler  # noqa: F401

__all__ = ["Action", "Context", "NetworkReconciler", "RouterReconciler"]
