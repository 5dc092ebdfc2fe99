import pytest
import respx

from fake_cluster import FakeCluster
from rolling_upgrade.bench.types import ClusterPhase, ClusterSettings
from rolling_upgrade.sut.client import ClusterClient


@pytest.fixture
def cluster():
    """Three old nodes behind a respx router; tests upgrade them as needed."""
    fake = FakeCluster()
    for i in range(3):
        fake.add_node(f"node-{i}", fake.old_version)
    with respx.mock(assert_all_called=False) as router:
        router.route().mock(side_effect=fake.handle)
        yield fake


@pytest.fixture
def make_settings(cluster):
    def make(phase: ClusterPhase = ClusterPhase.OLD, **overrides) -> ClusterSettings:
        values = dict(
            phase=phase,
            hosts=cluster.hosts(),
            target_version=cluster.target_version,
            username=cluster.username,
            password=cluster.password,
            await_budget=0.5,
            await_interval=0.0,
        )
        values.update(overrides)
        return ClusterSettings(**values)
    return make


@pytest.fixture
def client(cluster):
    with ClusterClient(cluster.hosts(), cluster.username, cluster.password) as c:
        yield c
