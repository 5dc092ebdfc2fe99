from rolling_upgrade.bench.types import ClusterPhase
from rolling_upgrade.core.logging import configure_logging, get_logger
from rolling_upgrade.export.token_store import PersistedTokenStore
from rolling_upgrade.sut.factory import ClusterFactory
from rolling_upgrade.sut.template_watcher import TemplateUpgradeWatcher
from rolling_upgrade.sut.token_probe import TokenLifecycleProbe
from rolling_upgrade.sut.version_filter import VersionFilteredClientFactory

logger = get_logger(__name__)

PHASE_TAGS = {phase.suite_name for phase in ClusterPhase}


def before_all(context):
    # ConfigurationError here aborts the whole run: an unknown phase is never a skip
    factory = ClusterFactory()
    context.settings = factory.build()
    configure_logging(json_output=context.settings.log_json, level=context.settings.log_level)

    settings = context.settings
    context.client = factory.client(settings)
    context.probe = TokenLifecycleProbe(context.client, settings.username, settings.password)
    context.store = PersistedTokenStore(context.client, settings.token_collection)
    context.watcher = TemplateUpgradeWatcher(
        context.client,
        template_name=settings.template_name,
        component=settings.template_component,
        budget=settings.await_budget,
        interval=settings.await_interval,
    )
    context.nodes = VersionFilteredClientFactory(context.client)
    logger.info("run_configured", phase=settings.phase.suite_name, target=settings.target_version,
                hosts=settings.hosts)


def before_scenario(context, scenario):
    # Reset per scenario
    context.tokens = {}
    context.upgraded_client = None

    phase = context.settings.phase.suite_name
    wanted = PHASE_TAGS & set(scenario.effective_tags)
    if wanted and phase not in wanted:
        scenario.skip(f"this test should only run against the {' or '.join(sorted(wanted))}")
        return

    context.watcher.await_template_exists()


def after_scenario(context, scenario):
    if context.upgraded_client is not None:
        context.upgraded_client.close()
        context.upgraded_client = None


def after_all(context):
    # tokens, indices and templates are left in place for the next phase
    client = getattr(context, "client", None)
    if client is not None:
        client.close()
