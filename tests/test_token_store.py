import pytest

from rolling_upgrade.bench.errors import AssertionFailure
from rolling_upgrade.export.token_store import OLD_CLUSTER_TOKEN_1, PersistedTokenStore
from rolling_upgrade.sut.client import ClusterClient


def test_put_then_get(cluster, client):
    store = PersistedTokenStore(client)
    store.put(OLD_CLUSTER_TOKEN_1, "abc123")

    assert cluster.documents["token_backwards_compatibility_it/doc/old_cluster_token1"] == {"token": "abc123"}
    assert store.get(OLD_CLUSTER_TOKEN_1) == "abc123"


def test_survives_a_new_client(cluster, client):
    # a later phase is a new process with a new client
    PersistedTokenStore(client).put("slot", "abc123")
    with ClusterClient(cluster.hosts(), cluster.username, cluster.password) as later:
        assert PersistedTokenStore(later).get("slot") == "abc123"


def test_missing_slot_points_at_old_phase(client):
    with pytest.raises(AssertionFailure, match="was the old cluster phase run"):
        PersistedTokenStore(client).get(OLD_CLUSTER_TOKEN_1)


def test_empty_record_is_a_failure(cluster, client):
    cluster.documents["token_backwards_compatibility_it/doc/empty"] = {"token": ""}
    with pytest.raises(AssertionFailure, match="holds no token"):
        PersistedTokenStore(client).get("empty")


def test_custom_collection(cluster, client):
    PersistedTokenStore(client, collection="other_index").put("slot", "t")
    assert "other_index/doc/slot" in cluster.documents
