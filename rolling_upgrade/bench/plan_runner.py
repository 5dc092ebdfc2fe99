from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple
import time
import uuid

from rolling_upgrade.bench.errors import AssertionFailure, ScenarioFailure
from rolling_upgrade.bench.types import ClusterPhase, ClusterSettings, ScenarioOutcome, Token
from rolling_upgrade.core.logging import get_logger
from rolling_upgrade.export.token_store import OLD_CLUSTER_TOKEN_1, OLD_CLUSTER_TOKEN_2, PersistedTokenStore
from rolling_upgrade.sut.client import ClusterClient
from rolling_upgrade.sut.template_watcher import TemplateUpgradeWatcher
from rolling_upgrade.sut.token_probe import TokenLifecycleProbe
from rolling_upgrade.sut.version_filter import VersionFilteredClientFactory

logger = get_logger(__name__)


class NotApplicable(Exception):
    """Raised by a scenario body whose precondition does not hold in this run."""


@dataclass
class ScenarioRecord:
    name: str
    outcome: str               # ScenarioOutcome value, or "failed"
    reason: Optional[str] = None
    duration_ms: int = 0


@dataclass
class RunnerResult:
    ok: bool
    run_id: str
    phase: ClusterPhase
    report: Dict[str, Any]
    scenarios: List[ScenarioRecord] = field(default_factory=list)
    error: Optional[BaseException] = None


OLD = frozenset({ClusterPhase.OLD})
MIXED = frozenset({ClusterPhase.MIXED})
UPGRADED = frozenset({ClusterPhase.UPGRADED})

# name -> phases it runs in; order is execution order for run_all()
SCENARIOS: Tuple[Tuple[str, FrozenSet[ClusterPhase]], ...] = (
    ("generating_token_in_old_cluster", OLD),
    ("token_works_in_mixed_or_upgraded_cluster", MIXED | UPGRADED),
    ("mixed_cluster", MIXED),
    ("upgraded_cluster", UPGRADED),
)

_uncovered = set(ClusterPhase) - set().union(*(phases for _, phases in SCENARIOS))
if _uncovered:
    raise RuntimeError(f"no scenario covers phases {sorted(p.suite_name for p in _uncovered)}")


class ScenarioRunner:
    """
    Runs the token compatibility scenarios for the phase this run was started in.

    Every scenario exists in every phase; the ones that do not apply come back
    NOT_APPLICABLE instead of silently passing. A failing step raises
    ScenarioFailure naming phase, scenario and step.
    """

    def __init__(
        self,
        settings: ClusterSettings,
        client: ClusterClient,
        probe: Optional[TokenLifecycleProbe] = None,
        store: Optional[PersistedTokenStore] = None,
        watcher: Optional[TemplateUpgradeWatcher] = None,
        nodes: Optional[VersionFilteredClientFactory] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.probe = probe or TokenLifecycleProbe(client, settings.username, settings.password)
        self.store = store or PersistedTokenStore(client, settings.token_collection)
        self.watcher = watcher or TemplateUpgradeWatcher(
            client,
            template_name=settings.template_name,
            component=settings.template_component,
            budget=settings.await_budget,
            interval=settings.await_interval,
        )
        self.nodes = nodes or VersionFilteredClientFactory(client)
        self._bodies: Dict[str, Callable[[], None]] = {
            "generating_token_in_old_cluster": self._generating_token_in_old_cluster,
            "token_works_in_mixed_or_upgraded_cluster": self._token_works_in_mixed_or_upgraded_cluster,
            "mixed_cluster": self._mixed_cluster,
            "upgraded_cluster": self._upgraded_cluster,
        }
        self._phases = dict(SCENARIOS)
        self._scenario: Optional[str] = None
        self._last_skip_reason: Optional[str] = None

    @property
    def phase(self) -> ClusterPhase:
        return self.settings.phase

    def applies(self, name: str) -> bool:
        if name not in self._phases:
            raise ValueError(f"unknown scenario: {name}")
        return self.phase in self._phases[name]

    def run(self, name: str) -> ScenarioOutcome:
        self._last_skip_reason = None
        if not self.applies(name):
            self._last_skip_reason = f"this scenario does not run against the {self.phase.suite_name}"
            logger.info("scenario_not_applicable", scenario=name, phase=self.phase.suite_name)
            return ScenarioOutcome.NOT_APPLICABLE

        self._scenario = name
        logger.info("scenario_started", scenario=name, phase=self.phase.suite_name)
        try:
            self._bodies[name]()
        except NotApplicable as e:
            self._last_skip_reason = str(e)
            logger.info("scenario_not_applicable", scenario=name, phase=self.phase.suite_name, reason=str(e))
            return ScenarioOutcome.NOT_APPLICABLE
        finally:
            self._scenario = None
        logger.info("scenario_passed", scenario=name, phase=self.phase.suite_name)
        return ScenarioOutcome.PASSED

    def run_all(self, names: Optional[Sequence[str]] = None) -> RunnerResult:
        """Run `names` (default: every scenario, in table order) and stop at the first failure."""
        run_id = str(uuid.uuid4())
        created_at_ms = int(time.time() * 1000)
        records: List[ScenarioRecord] = []
        error: Optional[BaseException] = None

        for name in names or [n for n, _ in SCENARIOS]:
            started = time.monotonic()
            try:
                outcome = self.run(name)
            except Exception as e:
                error = e
                records.append(ScenarioRecord(name, "failed", str(e), _elapsed_ms(started)))
                break
            records.append(ScenarioRecord(name, outcome.value, self._last_skip_reason, _elapsed_ms(started)))

        report: Dict[str, Any] = {
            "ok": error is None,
            "run_id": run_id,
            "created_at_ms": created_at_ms,
            "phase": self.phase.suite_name,
            "target_version": self.settings.target_version,
            "hosts": list(self.settings.hosts),
            "env": self.settings.env,
            "scenarios": [r.__dict__ for r in records],
        }
        return RunnerResult(
            ok=error is None,
            run_id=run_id,
            phase=self.phase,
            report=report,
            scenarios=records,
            error=error,
        )

    @contextmanager
    def _step(self, step: str) -> Iterator[None]:
        log = logger.bind(phase=self.phase.suite_name, scenario=self._scenario, step=step)
        log.debug("step_started")
        try:
            yield
        except ScenarioFailure:
            raise
        except AssertionFailure as e:
            log.error("step_failed", error=str(e))
            raise ScenarioFailure(self.phase.suite_name, self._scenario or "?", step, e) from e
        except NotApplicable:
            raise
        except Exception as e:
            log.error("step_errored", error=f"{type(e).__name__}: {e}")
            raise

    # -- scenarios -------------------------------------------------------

    def _generating_token_in_old_cluster(self) -> None:
        # the old token service may not hand out refresh tokens
        with self._step("issue first token"):
            first = self.probe.issue(expect_refresh_token=False)
        with self._step("verify first token works"):
            self.probe.verify_works(first.access_token)
        with self._step("issue second token"):
            second = self.probe.issue(expect_refresh_token=False)
        with self._step("verify second token works"):
            self.probe.verify_works(second.access_token)
        with self._step(f"persist first token into {OLD_CLUSTER_TOKEN_1}"):
            self.store.put(OLD_CLUSTER_TOKEN_1, first.access_token)
        with self._step(f"persist second token into {OLD_CLUSTER_TOKEN_2}"):
            self.store.put(OLD_CLUSTER_TOKEN_2, second.access_token)

    def _token_works_in_mixed_or_upgraded_cluster(self) -> None:
        with self._step(f"read {OLD_CLUSTER_TOKEN_1}"):
            token = self.store.get(OLD_CLUSTER_TOKEN_1)
        with self._step("verify old cluster token works"):
            self.probe.verify_works(token)

    def _mixed_cluster(self) -> None:
        target = self.settings.target_version
        with self._step("check master version"):
            if not self.nodes.is_master_on_version(target):
                raise NotApplicable("the master must be on the latest version before we can write")
        with self._step("await template upgrade"):
            self.watcher.await_template_upgraded(target)
        with self._step(f"read {OLD_CLUSTER_TOKEN_2}"):
            token = self.store.get(OLD_CLUSTER_TOKEN_2)
        with self._step("verify old cluster token works"):
            self.probe.verify_works(token)
        with self._step("invalidate old cluster token"):
            self.probe.invalidate(token)
        with self._step("verify invalidated token is rejected"):
            self.probe.verify_rejected(token)

        # only upgraded nodes know how to refresh
        with self._step("select nodes on target version"):
            upgraded_client = self.nodes.client_for_version(target)
        with upgraded_client:
            self._issue_and_refresh(self.probe.with_client(upgraded_client))

    def _upgraded_cluster(self) -> None:
        target = self.settings.target_version
        with self._step("await template upgrade"):
            self.watcher.await_template_upgraded(target)
        with self._step(f"read {OLD_CLUSTER_TOKEN_2}"):
            token = self.store.get(OLD_CLUSTER_TOKEN_2)
        # the mixed cluster run may have been skipped, so this may or may not be the first invalidation
        with self._step("invalidate old cluster token again"):
            self.probe.invalidate(token, error_trace=True)
        with self._step("verify invalidated token is rejected"):
            self.probe.verify_rejected(token)
        with self._step(f"read {OLD_CLUSTER_TOKEN_1}"):
            working = self.store.get(OLD_CLUSTER_TOKEN_1)
        with self._step("verify old cluster token still works"):
            self.probe.verify_works(working)
        self._issue_and_refresh(self.probe)

    def _issue_and_refresh(self, issuer: TokenLifecycleProbe) -> Token:
        with self._step("issue token pair"):
            token = issuer.issue(expect_refresh_token=True)
        with self._step("verify new token works"):
            self.probe.verify_works(token.access_token)
        with self._step("refresh token pair"):
            refreshed = issuer.refresh(token)
        with self._step("verify both access tokens work after refresh"):
            self.probe.verify_works(refreshed.access_token)
            self.probe.verify_works(token.access_token)
        return refreshed


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
