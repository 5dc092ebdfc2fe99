from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ClusterPhase(Enum):
    OLD = "old_cluster"
    MIXED = "mixed_cluster"
    UPGRADED = "upgraded_cluster"

    @property
    def suite_name(self) -> str:
        # also the behave tag marking a scenario as applicable to this phase
        return self.value


class ScenarioOutcome(Enum):
    PASSED = "passed"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class Token:
    access_token: str
    refresh_token: Optional[str] = None  # older token services never return one

    def __repr__(self) -> str:
        return f"Token(access_token={_prefix(self.access_token)}, refresh_token={_prefix(self.refresh_token)})"


@dataclass(frozen=True)
class NodeDescriptor:
    id: str
    version: str
    http_address: Optional[str]   # "host:port", None when the node has no http module


@dataclass(frozen=True)
class TemplateMetadata:
    template_name: str
    observed_version: Optional[str]   # None while the template/mapping is not there yet


@dataclass
class ClusterSettings:
    phase: ClusterPhase
    hosts: List[str]               # "host:port" entries from TESTS_REST_CLUSTER
    target_version: str            # the version nodes are being upgraded to
    username: str
    password: str
    scheme: str = "http"
    timeout: float = 10.0
    verify_tls: bool = True
    await_budget: float = 10.0
    await_interval: float = 0.5
    template_name: str = "security-index-template"
    template_component: str = "security"
    token_collection: str = "token_backwards_compatibility_it"
    log_level: str = "INFO"
    log_json: bool = False
    results_path: Optional[str] = None
    env: Dict[str, Any] = field(default_factory=dict)   # snapshot of relevant env vars, secrets masked


def _prefix(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value[:8] + "..."
