"""Entry point for the NDN network operator."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event, Thread

from ndn_operator import Context, NetworkReconciler, RouterReconciler
from ndn_operator.resources import DAEMONSET, NETWORK, ROUTER

from .config import load_config
from .kube import KubernetesEventRecorder, KubernetesObjectStore, build_api_client
from .registry import ControllerRegistry
from .watchers import ResourceWatcher, owner_keys

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the NDN network operator")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the controller configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)
    settings = config.controller

    api_client = build_api_client(config.kubernetes)
    store = KubernetesObjectStore(api_client, settings.pod_name, settings.pod_namespace)
    recorder = KubernetesEventRecorder(api_client, settings.pod_name)
    ctx = Context(store=store, recorder=recorder, partial_retry=settings.partial_retry)

    registry = ControllerRegistry(store, backoff=settings.backoff)
    registry.register(NetworkReconciler(ctx))
    registry.register(RouterReconciler(ctx))

    stop_event = Event()

    watchers = [
        ResourceWatcher(registry, api_client, NETWORK, stop_event, namespace=settings.namespace),
        ResourceWatcher(registry, api_client, ROUTER, stop_event, namespace=settings.namespace),
        # Re-reconcile a Network whenever its DaemonSet drifts.
        ResourceWatcher(
            registry,
            api_client,
            DAEMONSET,
            stop_event,
            namespace=settings.namespace,
            mapper=owner_keys(NETWORK),
        ),
    ]
    for watcher in watchers:
        watcher.start()

    workers = []
    for index in range(settings.workers):
        worker = Thread(
            target=registry.run_worker,
            args=(stop_event,),
            name=f"reconcile-{index}",
            daemon=True,
        )
        worker.start()
        workers.append(worker)

    LOG.info(
        "ndn operator started (namespace=%s, workers=%d)",
        settings.namespace or "<all>",
        settings.workers,
    )

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    registry.queue.shutdown()
    for thread in [*workers, *watchers]:
        thread.join(timeout=5)

    LOG.info("ndn operator stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
