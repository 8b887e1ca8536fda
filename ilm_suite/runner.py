"""
Scenario execution.

A scenario walks SETUP (buckets, rules, objects) -> TRIGGER/POLL (via the
poller) -> ASSERT, and always ends with exactly one REPORT record followed by
the CLEANUP of every bucket it created. The first failed step ends the
scenario; nothing raised inside a scenario escapes to the suite.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ilm_suite.cleanup import CleanupCoordinator
from ilm_suite.common.config import SuiteConfig
from ilm_suite.common.exceptions import ScenarioFailure, ScenarioNotApplicable
from ilm_suite.common.naming import ILM_BUCKET_PREFIX, BucketNameGenerator
from ilm_suite.common.results import ResultReporter, TestResult
from ilm_suite.common.s3_objects import ObjectSnapshot, error_code, read_object, source_mtime
from ilm_suite.common.waiter_utils import Poller, PollPolicy
from ilm_suite.lifecycle_rules import LifecycleRule, lifecycle_configuration

CaseT = TypeVar("CaseT")


@dataclass
class ScenarioContext:  # pylint: disable=too-many-instance-attributes
    """Everything a scenario needs: the client, configuration, reporting and cleanup."""

    s3: Any
    config: SuiteConfig
    reporter: ResultReporter
    cleanup: CleanupCoordinator
    names: BucketNameGenerator = field(default_factory=BucketNameGenerator)
    poller: Poller = field(default_factory=Poller)

    @property
    def tier(self) -> str:
        """Storage class name of the configured remote tier."""
        return self.config.remote_tier_name

    @property
    def poll_policy(self) -> PollPolicy:
        return PollPolicy.from_config(self.config)

    @property
    def steady_policy(self) -> PollPolicy:
        return PollPolicy.steady_from_config(self.config)

    def scenario(
        self,
        function: str,
        args: Optional[dict[str, Any]] = None,
        suite: Optional[str] = None,
        bucket_prefix: str = ILM_BUCKET_PREFIX,
    ) -> "ScenarioRun":
        """Start a scenario; use the result as a context manager."""
        return ScenarioRun(self, function, args or {}, suite, bucket_prefix)


class ScenarioRun:  # pylint: disable=too-many-instance-attributes
    """One execution of a scenario, reported and cleaned up on exit."""

    def __init__(self, ctx: ScenarioContext, function: str, args: dict[str, Any], suite: Optional[str], bucket_prefix: str):
        self.ctx = ctx
        self.s3 = ctx.s3
        self.function = function
        self.args = dict(args)
        self.suite = suite
        self.bucket_prefix = bucket_prefix
        self.start_time = time.time()
        self.buckets: list[str] = []
        self.result: Optional[TestResult] = None

    def __enter__(self) -> "ScenarioRun":
        logging.info("Running %s %s", self.function, self.args)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and not issubclass(exc_type, Exception):
            self._schedule_cleanup()
            return False
        try:
            self.result = self._report(exc)
        finally:
            self._schedule_cleanup()
        return True

    def _report(self, exc: Optional[BaseException]) -> TestResult:
        reporter = self.ctx.reporter
        if exc is None:
            return reporter.success(self.function, self.args, self.start_time, suite=self.suite)
        if isinstance(exc, ScenarioNotApplicable):
            return reporter.not_applicable(self.function, self.args, self.start_time, exc.alert, suite=self.suite)
        if isinstance(exc, ScenarioFailure):
            return reporter.failure(
                self.function, self.args, self.start_time, exc.message, exc.cause, alert=exc.alert, suite=self.suite
            )
        if isinstance(exc, (ClientError, BotoCoreError)):
            return reporter.failure(self.function, self.args, self.start_time, "Unexpected aws error", exc, suite=self.suite)
        logging.exception("Scenario %s crashed", self.function)
        return reporter.failure(self.function, self.args, self.start_time, "Unexpected error", exc, suite=self.suite)

    def _schedule_cleanup(self) -> None:
        for bucket in self.buckets:
            self.ctx.cleanup.schedule(bucket, self.function, self.args, self.start_time)

    # Failure helpers

    @staticmethod
    def fail(message: str, cause: Optional[BaseException] = None) -> None:
        """End the scenario with a FAIL record."""
        raise ScenarioFailure(message, cause)

    @staticmethod
    def not_applicable(alert: str) -> None:
        """End the scenario with an NA record."""
        raise ScenarioNotApplicable(alert)

    def expect(self, condition: bool, message: str) -> None:
        """Fail with ``message`` unless ``condition`` holds."""
        if not condition:
            self.fail(message)

    @staticmethod
    @contextlib.contextmanager
    def expect_success(message: str) -> Iterator[None]:
        """Turn any client error raised inside the block into a FAIL with ``message``."""
        try:
            yield
        except (ClientError, BotoCoreError) as exc:
            raise ScenarioFailure(message, exc) from exc

    @staticmethod
    @contextlib.contextmanager
    def expect_error(message: str) -> Iterator[None]:
        """Fail with ``message`` unless the block raises a client error."""
        try:
            yield
        except ClientError as exc:
            logging.debug("Rejected as expected: %s", exc)
            return
        raise ScenarioFailure(message)

    # Setup steps

    def create_bucket(self, arg_name: str = "bucketName", not_implemented_alert: str = "", **params) -> str:
        """
        Create a uniquely named bucket owned by this scenario.

        When ``not_implemented_alert`` is given a NotImplemented answer ends the
        scenario as not applicable instead of failed.
        """
        bucket = params.pop("Bucket", None) or self.ctx.names.unique(self.bucket_prefix)
        self.args.setdefault(arg_name, bucket)
        try:
            self.s3.create_bucket(Bucket=bucket, **params)
        except ClientError as exc:
            if not_implemented_alert and error_code(exc) == "NotImplemented":
                raise ScenarioNotApplicable(not_implemented_alert) from exc
            raise ScenarioFailure("CreateBucket Failed", exc) from exc
        self.buckets.append(bucket)
        return bucket

    def enable_versioning(self, bucket: str) -> None:
        with self.expect_success("Put VersioningConfiguration failed"):
            self.s3.put_bucket_versioning(Bucket=bucket, VersioningConfiguration={"Status": "Enabled"})

    def apply_lifecycle(self, bucket: str, rules: Sequence[LifecycleRule], message: str = "Put LifecycleConfiguration failed") -> None:
        """Replace the bucket's lifecycle configuration with ``rules``."""
        with self.expect_success(message):
            self.s3.put_bucket_lifecycle_configuration(
                Bucket=bucket, LifecycleConfiguration=lifecycle_configuration(*rules)
            )

    def put_object(
        self,
        bucket: str,
        key: str,
        content: bytes,
        message: str = "PUT expected to succeed but failed",
        mtime: Optional[datetime] = None,
        **params,
    ) -> dict:
        """PUT an object, optionally backdated to ``mtime``."""
        with self.expect_success(message):
            if mtime is None:
                return self.s3.put_object(Bucket=bucket, Key=key, Body=content, **params)
            with source_mtime(self.s3, mtime):
                return self.s3.put_object(Bucket=bucket, Key=key, Body=content, **params)

    def delete_object(self, bucket: str, key: str, message: str = "DELETE expected to succeed but failed", mtime: Optional[datetime] = None, **params) -> dict:
        """DELETE an object (creating a delete marker on versioned buckets), optionally backdated."""
        with self.expect_success(message):
            if mtime is None:
                return self.s3.delete_object(Bucket=bucket, Key=key, **params)
            with source_mtime(self.s3, mtime, operations=("DeleteObject",)):
                return self.s3.delete_object(Bucket=bucket, Key=key, **params)

    def get_object(self, bucket: str, key: str, version_id: Optional[str] = None, message: str = "GET expected to succeed but failed") -> ObjectSnapshot:
        with self.expect_success(message):
            return read_object(self.s3, bucket, key, version_id)

    # Trigger / poll

    def reader(self, bucket: str, key: str, version_id: Optional[str] = None) -> Callable[[], ObjectSnapshot]:
        """Return a read operation for the poller; every call is a fresh GET."""
        return lambda: read_object(self.s3, bucket, key, version_id)

    def wait_for(self, read: Callable[[], Any], condition: Callable[[Any], bool], description: str) -> Any:
        """Poll until ``condition`` holds within the max scanner wait."""
        return self.ctx.poller.until(read, condition, self.ctx.poll_policy, description)

    def hold(self, read: Callable[[], Any], condition: Callable[[Any], bool], description: str) -> Any:
        """Assert ``condition`` on every read for the full steady-state window."""
        return self.ctx.poller.steady(read, condition, self.ctx.steady_policy, description)


def execute_cases(
    ctx: ScenarioContext,
    function: str,
    cases: Iterable[CaseT],
    executor: Callable[[ScenarioRun, CaseT], None],
    **scenario_params,
) -> list[TestResult]:
    """
    Run every case of a table-driven scenario family.

    Each case gets its own scenario run (and result record), with its index
    and ``case.args()`` in the record's argument map.
    """
    results = []
    for index, case in enumerate(cases):
        with ctx.scenario(function, {"testCase": index, **case.args()}, **scenario_params) as run:
            executor(run, case)
        results.append(run.result)
    return results


__all__ = ["ScenarioContext", "ScenarioRun", "execute_cases"]
