import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from packaging.version import InvalidVersion

from rolling_upgrade.bench.errors import ConfigurationError
from rolling_upgrade.bench.phase import resolve_phase
from rolling_upgrade.bench.types import ClusterSettings
from rolling_upgrade.bench.versions import parse_version
from rolling_upgrade.sut.client import ClusterClient

_BOOL_TRUE = {"true", "1", "yes", "y", "on"}

# env var -> ClusterSettings field (or config-file key)
_ENV_KEYS = {
    "TESTS_REST_SUITE": "phase",
    "TESTS_REST_CLUSTER": "hosts",
    "TESTS_TARGET_VERSION": "target_version",
    "TESTS_USER": "username",
    "TESTS_PASSWORD": "password",
    "TESTS_SCHEME": "scheme",
    "HTTP_TIMEOUT_SECONDS": "timeout",
    "HTTP_VERIFY_TLS": "verify_tls",
    "AWAIT_BUDGET_SECONDS": "await_budget",
    "AWAIT_INTERVAL_SECONDS": "await_interval",
    "LOG_LEVEL": "log_level",
    "LOG_JSON": "log_json",
    "RESULTS_JSON": "results_path",
}

_DEFAULTS: Dict[str, Any] = {
    "username": "test_user",
    "password": "x-pack-test-password",
    "scheme": "http",
    "timeout": 10.0,
    "verify_tls": True,
    "await_budget": 10.0,
    "await_interval": 0.5,
    "log_level": "INFO",
    "log_json": False,
    "results_path": None,
}


class ClusterFactory:
    """
    Builds the per-run configuration from the environment the test runner
    hands us, optionally layered over a YAML file (ROLLING_UPGRADE_CONFIG).
    Environment variables always win over the file.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self.environ = os.environ if environ is None else environ

    def build(self, phase_override: Optional[str] = None) -> ClusterSettings:
        # 1) defaults, then config file, then env
        raw: Dict[str, Any] = dict(_DEFAULTS)
        raw.update(self._load_config_file())
        for env_key, field_name in _ENV_KEYS.items():
            value = self.environ.get(env_key)
            if value is not None and value.strip() != "":
                raw[field_name] = value
        if phase_override:
            raw["phase"] = phase_override

        # 2) required values
        for field_name, env_key in (("phase", "TESTS_REST_SUITE"),
                                    ("hosts", "TESTS_REST_CLUSTER"),
                                    ("target_version", "TESTS_TARGET_VERSION")):
            if not raw.get(field_name):
                raise ConfigurationError(f"{env_key} env missing", value=None)

        try:
            parse_version(raw["target_version"])
        except InvalidVersion as e:
            raise ConfigurationError(
                f"TESTS_TARGET_VERSION is not a version: {raw['target_version']!r}", value=raw["target_version"]
            ) from e

        # 3) phase is resolved exactly once per run, here
        phase = resolve_phase(raw.pop("phase"))

        env_snapshot = {
            "TESTS_REST_SUITE": phase.suite_name,
            "TESTS_REST_CLUSTER": raw["hosts"],
            "TESTS_TARGET_VERSION": str(raw["target_version"]),
            "TESTS_USER": raw["username"],
            "TESTS_PASSWORD": "***" if raw.get("password") else None,
        }

        try:
            return ClusterSettings(
                phase=phase,
                hosts=_split_hosts(raw.pop("hosts")),
                target_version=str(raw.pop("target_version")),
                username=str(raw.pop("username")),
                password=str(raw.pop("password")),
                scheme=str(raw.pop("scheme")),
                timeout=float(raw.pop("timeout")),
                verify_tls=_coerce_bool(raw.pop("verify_tls")),
                await_budget=float(raw.pop("await_budget")),
                await_interval=float(raw.pop("await_interval")),
                log_level=str(raw.pop("log_level")),
                log_json=_coerce_bool(raw.pop("log_json")),
                results_path=raw.pop("results_path"),
                env=env_snapshot,
                **raw,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"invalid configuration: {e}") from e

    def client(self, settings: ClusterSettings) -> ClusterClient:
        return ClusterClient(
            hosts=settings.hosts,
            username=settings.username,
            password=settings.password,
            scheme=settings.scheme,
            timeout=settings.timeout,
            verify_tls=settings.verify_tls,
        )

    def _load_config_file(self) -> Dict[str, Any]:
        path = self.environ.get("ROLLING_UPGRADE_CONFIG")
        if not path:
            return {}
        p = Path(path)
        if not p.exists():
            raise ConfigurationError(f"Config file not found: {p}", value=path)
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must hold a mapping: {p}", value=path)
        return data


def _split_hosts(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return [str(h).strip() for h in value if str(h).strip()]
    return [h.strip() for h in str(value).split(",") if h.strip()]


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOL_TRUE
