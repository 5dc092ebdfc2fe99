from typing import Optional


class UpgradeTestError(Exception):
    pass


class ConfigurationError(UpgradeTestError):
    """Run parameters are missing or unparseable. Fatal before any scenario runs."""

    def __init__(self, message: str, value: Optional[object] = None) -> None:
        self.value = value
        super().__init__(message)


class AssertionFailure(UpgradeTestError, AssertionError):
    """An expected invariant did not hold against the live cluster."""


class ScenarioFailure(AssertionFailure):
    def __init__(self, phase: str, scenario: str, step: str, cause: BaseException) -> None:
        self.phase = phase
        self.scenario = scenario
        self.step = step
        self.cause = cause
        super().__init__(f"[{phase}] scenario '{scenario}' failed at step '{step}': {cause}")


class TransientClusterError(UpgradeTestError):
    """Cluster is mid-transition. Only ever raised inside a polled predicate."""


class NoMatchingNodesError(UpgradeTestError):
    def __init__(self, target_version: str, seen_versions: Optional[dict] = None) -> None:
        self.target_version = target_version
        self.seen_versions = dict(seen_versions or {})
        super().__init__(
            f"No nodes running version {target_version} (node versions: {self.seen_versions or 'none'})"
        )
