from typing import Optional

from rolling_upgrade.bench.errors import ConfigurationError
from rolling_upgrade.bench.types import ClusterPhase

_BY_SUITE_NAME = {phase.suite_name: phase for phase in ClusterPhase}


def resolve_phase(raw: Optional[str]) -> ClusterPhase:
    """
    Map the runner-supplied suite name onto a phase.

    Only the exact tokens "old_cluster", "mixed_cluster" and "upgraded_cluster"
    are accepted. No trimming, no case folding.
    """
    phase = _BY_SUITE_NAME.get(raw) if isinstance(raw, str) else None
    if phase is None:
        raise ConfigurationError(
            f"unknown cluster type: {raw!r} (expected one of {sorted(_BY_SUITE_NAME)})",
            value=raw,
        )
    return phase
