import argparse
import sys

from rolling_upgrade.bench.errors import ConfigurationError
from rolling_upgrade.bench.plan_runner import SCENARIOS, ScenarioRunner
from rolling_upgrade.core.logging import configure_logging, get_logger
from rolling_upgrade.export.result_sink import ResultSink
from rolling_upgrade.sut.factory import ClusterFactory

logger = get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="rolling-upgrade-bwc",
        description="Run the token compatibility checks for one phase of a rolling upgrade.",
    )
    parser.add_argument("--phase", choices=["old_cluster", "mixed_cluster", "upgraded_cluster"],
                        help="overrides TESTS_REST_SUITE")
    parser.add_argument("--scenario", choices=[name for name, _ in SCENARIOS],
                        help="run a single scenario instead of all of them (the report then holds that one record)")
    parser.add_argument("--report", help="write the JSON run report here (overrides RESULTS_JSON)")
    parser.add_argument("--print-report", action="store_true", help="also print the report to stdout")
    args = parser.parse_args(argv)

    factory = ClusterFactory()
    try:
        settings = factory.build(phase_override=args.phase)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(json_output=settings.log_json, level=settings.log_level)

    with factory.client(settings) as client:
        runner = ScenarioRunner(settings, client)
        result = runner.run_all([args.scenario] if args.scenario else None)
        logger.info("run_finished", run_id=result.run_id, phase=settings.phase.suite_name, ok=result.ok)

    ResultSink(console=args.print_report).write(result.report, args.report or settings.results_path)
    for record in result.scenarios:
        print(f"{record.name}: {record.outcome}" + (f" ({record.reason})" if record.reason else ""))
    if not result.ok:
        print(f"❌ {result.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
