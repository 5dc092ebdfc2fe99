"""End-to-end runs of the phase scenarios against the fake cluster.

Each phase gets a fresh client and runner, like the separate test-process
invocations of a real rolling upgrade; only the fake cluster's state
carries over.
"""

import json

import pytest

from rolling_upgrade.bench.errors import NoMatchingNodesError, ScenarioFailure
from rolling_upgrade.bench.plan_runner import SCENARIOS, ScenarioRunner
from rolling_upgrade.bench.types import ClusterPhase, ScenarioOutcome
from rolling_upgrade.export.token_store import OLD_CLUSTER_TOKEN_1, OLD_CLUSTER_TOKEN_2
from rolling_upgrade.sut.client import ClusterClient


@pytest.fixture
def run_phase(cluster, make_settings):
    def run(phase: ClusterPhase, **overrides):
        settings = make_settings(phase, **overrides)
        with ClusterClient(settings.hosts, settings.username, settings.password) as client:
            return ScenarioRunner(settings, client).run_all()
    return run


def outcomes(result):
    return {r.name: r.outcome for r in result.scenarios}


def test_every_phase_has_scenarios():
    covered = set().union(*(phases for _, phases in SCENARIOS))
    assert covered == set(ClusterPhase)


def test_old_cluster_issues_and_persists_two_tokens(cluster, run_phase):
    result = run_phase(ClusterPhase.OLD)

    assert result.ok, result.error
    assert outcomes(result) == {
        "generating_token_in_old_cluster": "passed",
        "token_works_in_mixed_or_upgraded_cluster": "not_applicable",
        "mixed_cluster": "not_applicable",
        "upgraded_cluster": "not_applicable",
    }
    first = cluster.documents[f"token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_1}"]["token"]
    second = cluster.documents[f"token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_2}"]["token"]
    assert first != second
    assert cluster.access_tokens[first] and cluster.access_tokens[second]
    # the old cluster never refreshes or invalidates
    assert not any(r.method == "DELETE" for r in cluster.requests)


def test_full_rolling_upgrade(cluster, run_phase):
    assert run_phase(ClusterPhase.OLD).ok

    cluster.start_mixed()
    mixed = run_phase(ClusterPhase.MIXED)
    assert mixed.ok, mixed.error
    assert outcomes(mixed) == {
        "generating_token_in_old_cluster": "not_applicable",
        "token_works_in_mixed_or_upgraded_cluster": "passed",
        "mixed_cluster": "passed",
        "upgraded_cluster": "not_applicable",
    }
    second = cluster.documents[f"token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_2}"]["token"]
    assert cluster.access_tokens[second] is False
    # refresh grants only ever reached upgraded nodes
    refresh_hosts = {
        f"{r.url.host}:{r.url.port}"
        for r in cluster.requests
        if r.method == "POST" and json.loads(r.content).get("grant_type") == "refresh_token"
    }
    assert refresh_hosts
    assert refresh_hosts <= {"node-0:9200", "node-1:9200"}

    cluster.finish_upgrade()
    upgraded = run_phase(ClusterPhase.UPGRADED)
    assert upgraded.ok, upgraded.error
    assert outcomes(upgraded)["upgraded_cluster"] == "passed"
    assert outcomes(upgraded)["token_works_in_mixed_or_upgraded_cluster"] == "passed"

    # the first old-cluster token is still good after the whole upgrade
    first = cluster.documents[f"token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_1}"]["token"]
    assert cluster.access_tokens[first] is True


def test_mixed_cluster_skipped_while_master_is_old(cluster, run_phase):
    assert run_phase(ClusterPhase.OLD).ok
    cluster.upgrade("node-1")

    result = run_phase(ClusterPhase.MIXED)

    assert result.ok
    assert outcomes(result)["mixed_cluster"] == "not_applicable"
    record = next(r for r in result.scenarios if r.name == "mixed_cluster")
    assert "master must be on the latest version" in record.reason
    assert not any(r.method == "DELETE" for r in cluster.requests)


def test_upgraded_phase_invalidates_even_if_mixed_was_skipped(cluster, run_phase):
    assert run_phase(ClusterPhase.OLD).ok
    cluster.finish_upgrade()

    result = run_phase(ClusterPhase.UPGRADED)

    assert result.ok, result.error
    second = cluster.documents[f"token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_2}"]["token"]
    assert cluster.access_tokens[second] is False


def test_mixed_waits_for_template(cluster, run_phase):
    assert run_phase(ClusterPhase.OLD).ok
    cluster.upgrade("node-0")   # master upgraded, template not rewritten yet

    result = run_phase(ClusterPhase.MIXED)

    assert not result.ok
    assert isinstance(result.error, ScenarioFailure)
    assert result.error.phase == "mixed_cluster"
    assert result.error.scenario == "mixed_cluster"
    assert result.error.step == "await template upgrade"
    assert "[mixed_cluster]" in str(result.error)
    assert result.report["scenarios"][-1]["outcome"] == "failed"


def test_mixed_without_target_nodes_for_issuing(cluster, make_settings):
    # master reports the target version but no node publishes an http address on it
    cluster.add_node("node-3", cluster.target_version, address=None)
    cluster.master = "node-3"
    cluster.upgrade_template()
    settings = make_settings(ClusterPhase.MIXED)
    with ClusterClient(settings.hosts, settings.username, settings.password) as client:
        runner = ScenarioRunner(settings, client)
        client.request("PUT", f"/token_backwards_compatibility_it/doc/{OLD_CLUSTER_TOKEN_2}", json={"token": "x"})
        cluster.access_tokens["x"] = True
        with pytest.raises(NoMatchingNodesError):
            runner.run("mixed_cluster")


def test_later_phase_without_old_phase_fails_clearly(cluster, run_phase):
    cluster.finish_upgrade()
    result = run_phase(ClusterPhase.UPGRADED)

    assert not result.ok
    assert "was the old cluster phase run" in str(result.error)


def test_run_single_scenario(cluster, make_settings, client):
    runner = ScenarioRunner(make_settings(ClusterPhase.OLD), client)
    assert runner.run("generating_token_in_old_cluster") is ScenarioOutcome.PASSED
    assert runner.run("upgraded_cluster") is ScenarioOutcome.NOT_APPLICABLE
    assert runner.applies("token_works_in_mixed_or_upgraded_cluster") is False
    with pytest.raises(ValueError):
        runner.run("no_such_scenario")


def test_report_contents(cluster, run_phase):
    result = run_phase(ClusterPhase.OLD)
    report = result.report

    assert report["ok"] is True
    assert report["phase"] == "old_cluster"
    assert report["target_version"] == "6.3.0"
    assert [s["name"] for s in report["scenarios"]] == [name for name, _ in SCENARIOS]
    assert report["run_id"] == result.run_id


def test_run_all_with_named_scenarios(cluster, make_settings, client):
    result = ScenarioRunner(make_settings(ClusterPhase.OLD), client).run_all(["upgraded_cluster"])

    assert result.ok
    assert outcomes(result) == {"upgraded_cluster": "not_applicable"}
    assert len(result.report["scenarios"]) == 1
