"""
Command-line entry point for the ILM conformance suite.

Result records go to stdout as JSON lines; diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ilm_suite.cleanup import CleanupCoordinator
from ilm_suite.common.client_factory import connect
from ilm_suite.common.config import SuiteConfig, load_config
from ilm_suite.common.exceptions import MissingConfigurationError, ServerConnectionError
from ilm_suite.common.naming import VERSIONING_BUCKET_PREFIX
from ilm_suite.common.results import ResultReporter, Status, setup_result_logger
from ilm_suite.probes import (
    is_lifecycle_configuration_implemented,
    is_object_lock_implemented,
    is_versioning_implemented,
)
from ilm_suite.runner import ScenarioContext
from ilm_suite.scenarios import expiry, expiry_versioned, legalhold, restore, transition

VERSIONING = "versioning"
TIERING = "tiering"
OBJECT_LOCK = "object_lock"

SKIP_ALERTS = {
    VERSIONING: "PutBucketVersioning is not implemented. Skipping versioned ILM tests.",
    TIERING: (
        "No remote tier name given. Therefore ILM-Tiering tests will be skipped. "
        "Provide env 'REMOTE_TIER_NAME' with name of the configured remote tier to enable ILM-Tiering tests."
    ),
    OBJECT_LOCK: "Object lock is not implemented. Skipping legal hold tests.",
}


@dataclass(frozen=True)
class Scenario:
    """A named scenario entry point and the capability it depends on."""

    name: str
    run: Callable[[ScenarioContext], object]
    requires: Optional[str] = None
    suite: str = "ilm"


SCENARIOS = (
    Scenario("expiry", expiry.run_expiry),
    Scenario("expire_current_version", expiry_versioned.run_expire_current_version, VERSIONING),
    Scenario("expire_noncurrent_versions", expiry_versioned.run_expire_noncurrent_versions, VERSIONING),
    Scenario("newer_noncurrent_versions", expiry_versioned.run_newer_noncurrent_versions, VERSIONING),
    Scenario("expire_delete_markers", expiry_versioned.run_expire_delete_markers, VERSIONING),
    Scenario("transition", transition.run_transition, TIERING),
    Scenario("expire_transitioned", transition.run_expire_transitioned, TIERING),
    Scenario("restore", restore.run_restore, TIERING),
    Scenario("restore_multipart", restore.run_restore_multipart, TIERING),
    Scenario("locking_legalhold", legalhold.run_locking_legalhold, OBJECT_LOCK, suite=legalhold.SUITE),
    Scenario("locking_legalhold_multipart", legalhold.run_locking_legalhold_multipart, OBJECT_LOCK, suite=legalhold.SUITE),
)
SCENARIO_NAMES = [scenario.name for scenario in SCENARIOS]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments selecting the env file, scenarios and timing bounds."""
    parser = argparse.ArgumentParser(
        description="Validate an S3 server's object lifecycle management against the AWS S3 API contract."
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: $ILM_ENV_FILE, then ./.env).",
    )
    parser.add_argument(
        "--scenario",
        action="append",
        choices=SCENARIO_NAMES,
        metavar="NAME",
        help="Run only this scenario; may be repeated (choices: %(choices)s).",
    )
    parser.add_argument(
        "--max-scanner-wait",
        type=int,
        default=None,
        help="Override MAX_SCANNER_WAIT_SECONDS; also bounds the steady-state checks.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug diagnostics to stderr.")
    return parser.parse_args(argv)


def _apply_overrides(config: SuiteConfig, args: argparse.Namespace) -> SuiteConfig:
    if args.max_scanner_wait and args.max_scanner_wait > 0:
        return dataclasses.replace(
            config,
            max_scanner_wait_seconds=args.max_scanner_wait,
            steady_state_seconds=args.max_scanner_wait,
        )
    return config


def _detect_capabilities(ctx: ScenarioContext, needed: set[str]) -> dict[str, bool]:
    capabilities = {TIERING: ctx.config.tiering_enabled}
    if VERSIONING in needed:
        capabilities[VERSIONING] = is_versioning_implemented(ctx.s3, ctx.names, ctx.cleanup)
    if OBJECT_LOCK in needed:
        capabilities[OBJECT_LOCK] = is_object_lock_implemented(
            ctx.s3, ctx.names, ctx.cleanup, prefix=VERSIONING_BUCKET_PREFIX
        )
    return capabilities


def run_scenarios(ctx: ScenarioContext, selected: Sequence[Scenario]) -> None:
    """Run ``selected`` in order, reporting NA for those whose capability is missing."""
    start_time = time.time()
    if not is_lifecycle_configuration_implemented(ctx.s3, ctx.names, ctx.cleanup):
        ctx.reporter.not_applicable(
            "main", {}, start_time, "PutLifecycleConfiguration is not implemented. Skipping all ILM tests."
        )
        return

    needed = {scenario.requires for scenario in selected if scenario.requires}
    capabilities = _detect_capabilities(ctx, needed)
    for scenario in selected:
        if scenario.requires and not capabilities.get(scenario.requires):
            ctx.reporter.not_applicable(
                scenario.name, {}, time.time(), SKIP_ALERTS[scenario.requires], suite=scenario.suite
            )
            continue
        scenario.run(ctx)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Run the suite and return the process exit code."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    # boto's own debug output drowns the suite's
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    setup_result_logger()
    reporter = ResultReporter()
    start_time = time.time()

    try:
        config = _apply_overrides(load_config(args.env_file), args)
        s3 = connect(config)
    except (MissingConfigurationError, ServerConnectionError) as exc:
        reporter.failure("main", {}, start_time, str(exc), exc.__cause__)
        return 1

    selected = [s for s in SCENARIOS if not args.scenario or s.name in args.scenario]
    with CleanupCoordinator(
        s3, reporter, timeout=config.cleanup_timeout_seconds, retry_delay=config.cleanup_retry_seconds
    ) as cleanup:
        ctx = ScenarioContext(s3=s3, config=config, reporter=reporter, cleanup=cleanup)
        run_scenarios(ctx, selected)
        logging.info("Waiting for bucket cleanup to finish")

    counts = reporter.counts()
    logging.info(
        "Finished: %d passed, %d failed, %d not applicable",
        counts[Status.PASS],
        counts[Status.FAIL],
        counts[Status.NA],
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(run())
