import pytest

from conftest import network_doc, router_doc

from ndn_operator.errors import InvalidResourceError, SerializationError
from ndn_operator.resources import (
    NETWORK_LABEL_KEY,
    Network,
    Router,
    RouterFaces,
    build_owned_router,
)


def test_faces_all_empty():
    assert RouterFaces().effective() == set()
    assert RouterFaces(udp4="", tcp4="").effective() == set()


def test_faces_ignore_empty_slots():
    faces = RouterFaces(udp4="X", tcp4=None, udp6="Y", tcp6="")

    assert faces.effective() == {"X", "Y"}


def test_network_parses_spec():
    network = Network.from_dict(network_doc(nodeSelector={"ndn": "yes"}))

    assert network.name == "n1"
    assert network.namespace == "default"
    assert network.spec.prefix == "/ndn"
    assert network.spec.udp_unicast_port == 6363
    assert network.spec.node_selector == {"ndn": "yes"}
    assert network.status is None


def test_network_missing_port_is_serialization_error():
    doc = network_doc()
    del doc["spec"]["udpUnicastPort"]

    with pytest.raises(SerializationError):
        Network.from_dict(doc)


def test_router_rejects_non_list_neighbors():
    doc = router_doc("r1", status={"online": True, "neighbors": "udp://x"})

    with pytest.raises(SerializationError):
        Router.from_dict(doc)


def test_router_without_status_has_no_neighbors():
    router = Router.from_dict(router_doc("r1", udp4="udp://10.0.0.1:6363"))

    assert router.status is None
    assert router.neighbors == set()
    assert router.network_name == "n1"
    assert router.socket_file_name() == "r1.sock"


def test_unknown_fields_survive_round_trip():
    doc = router_doc("r1", udp4="udp://10.0.0.1:6363", status={"online": True, "neighbors": ["b", "a"]})
    doc["spec"]["futureField"] = {"keep": "me"}
    doc["metadata"]["generation"] = 7

    out = Router.from_dict(doc).to_dict()

    assert out["spec"]["futureField"] == {"keep": "me"}
    assert out["metadata"]["generation"] == 7
    assert out["status"]["neighbors"] == ["a", "b"]


def test_network_paths():
    network = Network.from_dict(network_doc())

    assert network.container_config_path() == "/etc/ndnd/n1.yml"
    assert network.host_config_path() == "/etc/ndnd/n1.yml"
    assert network.container_socket_path() == "/run/ndnd/n1.sock"
    assert network.host_socket_path() == "/run/ndnd/n1.sock"


def test_controller_owner_ref_requires_uid():
    doc = network_doc()
    del doc["metadata"]["uid"]

    with pytest.raises(InvalidResourceError):
        Network.from_dict(doc).controller_owner_ref()


def test_network_from_owner_reference():
    network = Network.from_owner_reference(
        {"apiVersion": "named-data.net/v1alpha1", "kind": "Network", "name": "n1", "uid": "abc"}
    )

    assert network.name == "n1"
    assert network.metadata.uid == "abc"


@pytest.mark.parametrize(
    "ref",
    [
        {"apiVersion": "named-data.net/v1alpha1", "kind": "Router", "name": "n1"},
        {"apiVersion": "named-data.net/v2", "kind": "Network", "name": "n1"},
        {"apiVersion": "named-data.net/v1alpha1", "kind": "Network", "name": ""},
    ],
)
def test_network_from_owner_reference_rejects(ref):
    with pytest.raises(InvalidResourceError):
        Network.from_owner_reference(ref)


def test_build_owned_router():
    doc = network_doc()
    doc["metadata"]["labels"] = {"team": "ndn"}
    doc["metadata"]["annotations"] = {"note": "x"}
    network = Network.from_dict(doc)

    router = build_owned_router(network, "r1", "node-a", ip4="10.0.0.1", ip6="fd00::1")

    assert router.metadata.labels == {"team": "ndn", NETWORK_LABEL_KEY: "n1"}
    assert router.metadata.annotations == {"note": "x"}
    assert router.metadata.owner_references[0]["name"] == "n1"
    assert router.metadata.owner_references[0]["controller"] is True
    assert router.spec.node == "node-a"
    assert router.spec.faces.effective() == {"udp://10.0.0.1:6363", "udp://[fd00::1]:6363"}
    assert router.status.online is False
    assert router.status.neighbors == set()


def test_build_owned_router_without_addresses():
    network = Network.from_dict(network_doc())

    router = build_owned_router(network, "r1", "node-a")

    assert router.spec.faces.effective() == set()
    assert router.to_dict()["spec"]["faces"] == {}


def test_published_faces_annotation():
    doc = router_doc("r1")
    doc["metadata"]["annotations"] = {
        "routers.named-data.net/published-faces": '["udp://10.0.0.1:6363"]',
        "routers.named-data.net/published-network": "n1",
    }
    router = Router.from_dict(doc)

    assert router.published_faces == {"udp://10.0.0.1:6363"}
    assert router.published_network == "n1"
    assert Router.from_dict(router_doc("r2")).published_faces == set()


@pytest.mark.parametrize("raw", ["not json", '{"udp4": "x"}'])
def test_published_faces_rejects_garbage(raw):
    doc = router_doc("r1")
    doc["metadata"]["annotations"] = {"routers.named-data.net/published-faces": raw}

    with pytest.raises(SerializationError):
        Router.from_dict(doc).published_faces
