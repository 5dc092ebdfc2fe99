from rolling_upgrade.bench.assert_engine import assert_ok, entity_as_map
from rolling_upgrade.bench.errors import AssertionFailure
from rolling_upgrade.core.logging import get_logger
from rolling_upgrade.sut.client import ClusterClient

logger = get_logger(__name__)

OLD_CLUSTER_TOKEN_1 = "old_cluster_token1"
OLD_CLUSTER_TOKEN_2 = "old_cluster_token2"


class PersistedTokenStore:
    """
    Hands access tokens from one phase's process to a later phase's process
    by indexing them into the cluster under fixed slot ids.

    Slots are written once in the old cluster and only read afterwards.
    Nothing deletes them; the index has to survive every phase.
    """

    def __init__(self, client: ClusterClient, collection: str = "token_backwards_compatibility_it") -> None:
        self.client = client
        self.collection = collection

    def _path(self, slot: str) -> str:
        return f"/{self.collection}/doc/{slot}"

    def put(self, slot: str, access_token: str) -> None:
        response = self.client.request("PUT", self._path(slot), json={"token": access_token})
        assert_ok(response)
        logger.info("token_persisted", slot=slot, collection=self.collection)

    def get(self, slot: str) -> str:
        response = self.client.request("GET", self._path(slot))
        if response.status_code == 404:
            raise AssertionFailure(
                f"no persisted token in slot {slot!r} of {self.collection!r}; was the old cluster phase run?"
            )
        assert_ok(response)
        token = (entity_as_map(response).get("_source") or {}).get("token")
        if not token:
            raise AssertionFailure(f"slot {slot!r} holds no token")
        return token
