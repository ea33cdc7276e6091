import pytest

from conftest import network_doc

from ndn_operator import NetworkReconciler
from ndn_operator.errors import FinalizerError, StoreError
from ndn_operator.finalizer import Action
from ndn_operator.recorder import EventType
from ndn_operator.resources import DAEMONSET, NETWORK, NETWORK_FINALIZER


@pytest.fixture
def reconciler(ctx):
    return NetworkReconciler(ctx)


def handle(reconciler, store, name="n1"):
    return reconciler.handle(store.get(NETWORK, "default", name))


def test_first_pass_only_adds_finalizer(reconciler, store, recorder):
    store.add(NETWORK, network_doc())

    assert handle(reconciler, store) == Action.await_change()

    assert store.peek(NETWORK, "default", "n1")["metadata"]["finalizers"] == [NETWORK_FINALIZER]
    assert ("apply", "DaemonSet", "n1") not in store.calls
    assert recorder.events == []


def test_reconcile_applies_daemonset(reconciler, store, recorder):
    store.add(NETWORK, network_doc())
    handle(reconciler, store)

    assert handle(reconciler, store) == Action.await_change()

    ds = store.peek(DAEMONSET, "default", "n1")
    pod = ds["spec"]["template"]["spec"]
    daemon = next(c for c in pod["containers"] if c["name"] == "network")
    assert ds["spec"]["selector"] == {"matchLabels": {"network": "n1"}}
    assert daemon["ports"][0]["hostPort"] == 6363
    assert daemon["args"] == ["daemon", "/etc/ndnd/n1.yml"]
    assert pod["serviceAccountName"] == "ndn-operator"
    assert pod["initContainers"][0]["image"] == "ghcr.io/named-data/ndn-operator:v1"

    assert store.peek(NETWORK, "default", "n1")["status"] == {"workloadCreated": True}

    event, ref = recorder.events[0]
    assert event.type is EventType.NORMAL
    assert event.reason == "DaemonSetCreated"
    assert event.action == "Created"
    assert event.note == "Created `n1` DaemonSet for `n1` Network"
    assert ref["kind"] == "Network"
    assert ref["name"] == "n1"


def test_reconcile_is_idempotent(reconciler, store):
    store.add(NETWORK, network_doc())
    handle(reconciler, store)
    handle(reconciler, store)
    first = store.peek(DAEMONSET, "default", "n1")["spec"]

    handle(reconciler, store)

    assert store.peek(DAEMONSET, "default", "n1")["spec"] == first
    assert store.peek(NETWORK, "default", "n1")["status"] == {"workloadCreated": True}


def test_cleanup_records_event_and_releases(reconciler, store, recorder):
    store.add(NETWORK, network_doc())
    handle(reconciler, store)
    handle(reconciler, store)
    store.delete(NETWORK, "default", "n1")

    handle(reconciler, store)

    assert recorder.reasons == ["DaemonSetCreated", "DeleteRequested"]
    event, _ = recorder.events[-1]
    assert event.action == "Deleting"
    assert event.note == "Delete `n1`"
    assert store.get(NETWORK, "default", "n1") is None
    # The DaemonSet is left for owner-reference garbage collection.
    assert store.get(DAEMONSET, "default", "n1") is not None


def test_apply_failure_is_reported(reconciler, store, recorder):
    store.add(NETWORK, network_doc())
    handle(reconciler, store)

    def broken(*args, **kwargs):
        raise StoreError("apply rejected", 422)

    store.apply = broken

    with pytest.raises(FinalizerError) as info:
        handle(reconciler, store)

    assert info.value.step == "apply"
    assert isinstance(info.value.__cause__, StoreError)
    assert recorder.events == []
    assert "status" not in store.peek(NETWORK, "default", "n1")


def test_custom_port_reaches_daemonset(reconciler, store):
    store.add(NETWORK, network_doc(port=7000))
    handle(reconciler, store)
    handle(reconciler, store)

    pod = store.peek(DAEMONSET, "default", "n1")["spec"]["template"]["spec"]
    init = pod["initContainers"][0]
    daemon = next(c for c in pod["containers"] if c["name"] == "network")
    env = {e["name"]: e.get("value") for e in init["env"]}
    assert env["NDN_UDP_UNICAST_PORT"] == "7000"
    assert daemon["ports"][0] == {"containerPort": 7000, "hostPort": 7000, "protocol": "UDP"}
