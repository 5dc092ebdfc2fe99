from typing import List, Optional

from rolling_upgrade.bench.assert_engine import assert_ok, entity_as_map
from rolling_upgrade.bench.errors import AssertionFailure, NoMatchingNodesError
from rolling_upgrade.bench.types import NodeDescriptor
from rolling_upgrade.bench.versions import same_version
from rolling_upgrade.core.logging import get_logger
from rolling_upgrade.sut.client import ClusterClient, object_path

logger = get_logger(__name__)


def publish_address_to_host(address: str) -> str:
    # nodes may publish "hostname/10.0.0.5:9200"; the part after the slash is dialable
    return address.rsplit("/", 1)[-1]


class VersionFilteredClientFactory:
    """
    Reads cluster membership and builds clients that only talk to nodes on a
    given version. Membership is re-read on every call: during a rolling
    upgrade nodes leave, rejoin and change version between two requests.
    """

    def __init__(self, client: ClusterClient) -> None:
        self.client = client

    def fetch_nodes(self) -> List[NodeDescriptor]:
        response = self.client.request("GET", "/_nodes")
        assert_ok(response)
        nodes = entity_as_map(response).get("nodes") or {}
        out = []
        for node_id, details in nodes.items():
            address = object_path(details, "http.publish_address")
            out.append(NodeDescriptor(
                id=node_id,
                version=str(details.get("version")),
                http_address=publish_address_to_host(address) if address else None,
            ))
        return out

    def master_node_id(self) -> str:
        response = self.client.request("GET", "/_cluster/state")
        assert_ok(response)
        master = entity_as_map(response).get("master_node")
        if not master:
            raise AssertionFailure("cluster state reports no elected master")
        return master

    def is_master_on_version(self, target_version: str) -> bool:
        master_id = self.master_node_id()
        master: Optional[NodeDescriptor] = next((n for n in self.fetch_nodes() if n.id == master_id), None)
        if master is None:
            # master changed between the two calls
            logger.warning("master_not_in_node_list", master=master_id)
            return False
        on_version = same_version(master.version, target_version)
        logger.info("master_version", master=master_id, version=master.version, target=target_version,
                    on_target=on_version)
        return on_version

    def client_for_version(self, target_version: str) -> ClusterClient:
        nodes = self.fetch_nodes()
        hosts = []
        for node in nodes:
            if not same_version(node.version, target_version):
                continue
            if node.http_address is None:
                logger.warning("node_without_http_address", node=node.id, version=node.version)
                continue
            hosts.append(node.http_address)

        if not hosts:
            raise NoMatchingNodesError(target_version, {n.id: n.version for n in nodes})

        logger.info("version_filtered_client", version=target_version, hosts=hosts)
        return self.client.scoped_to(hosts)
