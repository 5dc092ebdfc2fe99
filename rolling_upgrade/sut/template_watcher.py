from rolling_upgrade.bench.assert_engine import entity_as_map
from rolling_upgrade.bench.errors import AssertionFailure, TransientClusterError
from rolling_upgrade.bench.poller import DEFAULT_BUDGET_SECONDS, DEFAULT_INTERVAL_SECONDS, await_until
from rolling_upgrade.bench.types import TemplateMetadata
from rolling_upgrade.bench.versions import same_version
from rolling_upgrade.core.logging import get_logger
from rolling_upgrade.sut.client import ClusterClient, object_path

logger = get_logger(__name__)


class TemplateUpgradeWatcher:
    """
    Waits for the master to rewrite an index template during the upgrade.

    The template's first mapping carries `_meta.<component>-version`; once it
    equals the target version, writes to the matching index use the new
    mapping.
    """

    def __init__(
        self,
        client: ClusterClient,
        template_name: str = "security-index-template",
        component: str = "security",
        budget: float = DEFAULT_BUDGET_SECONDS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self.client = client
        self.template_name = template_name
        self.component = component
        self.budget = budget
        self.interval = interval

    def read_template_metadata(self) -> TemplateMetadata:
        response = self.client.request("GET", "/_cluster/state/metadata")
        if response.status_code != 200:
            raise TransientClusterError(f"cluster metadata unavailable ({response.status_code})")
        mappings = object_path(entity_as_map(response), f"metadata.templates.{self.template_name}.mappings")
        if not isinstance(mappings, dict) or not mappings:
            # template not (re)installed yet, or installed without mappings
            return TemplateMetadata(self.template_name, None)

        mapping = next(iter(mappings.values()))
        version = object_path(mapping, f"_meta.{self.component}-version")
        return TemplateMetadata(self.template_name, version)

    def is_template_upgraded(self, target_version: str) -> bool:
        metadata = self.read_template_metadata()
        if metadata.observed_version is None:
            return False
        upgraded = same_version(metadata.observed_version, target_version)
        if not upgraded:
            logger.info(
                "template_not_upgraded_yet",
                template=self.template_name,
                observed=metadata.observed_version,
                target=target_version,
            )
        return upgraded

    def await_template_upgraded(self, target_version: str) -> None:
        upgraded = await_until(
            lambda: self.is_template_upgraded(target_version),
            budget=self.budget,
            interval=self.interval,
            description=f"template {self.template_name} at {target_version}",
        )
        if not upgraded:
            raise AssertionFailure(
                f"template {self.template_name} did not reach version {target_version} within {self.budget}s"
            )
        logger.info("template_upgraded", template=self.template_name, version=target_version)

    def await_template_exists(self) -> bool:
        def exists() -> bool:
            response = self.client.request("HEAD", f"/_template/{self.template_name}")
            return response.status_code == 200

        present = await_until(
            exists,
            budget=self.budget,
            interval=self.interval,
            description=f"template {self.template_name} exists",
        )
        if not present:
            logger.warning("template_missing", template=self.template_name)
        return present
