"""Restore of objects that were transitioned to the remote tier."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ilm_suite.common.exceptions import ScenarioFailure
from ilm_suite.common.restore_header import RestoreHeaderError, parse_restore_header
from ilm_suite.common.s3_objects import MIN_PART_SIZE, multipart_upload
from ilm_suite.common.waiter_utils import is_absent
from ilm_suite.lifecycle_rules import midnight_utc, transition_by_date
from ilm_suite.runner import ScenarioContext, ScenarioRun
from ilm_suite.scenarios.transition import await_transition

SINGLE_PART_CONTENT = b"my content 1"
MULTIPART_SIZE = 3 * MIN_PART_SIZE
DEFAULT_RESTORE_DAYS = 1

Uploader = Callable[[ScenarioRun, str, str], bytes]


def upload_single_part(run: ScenarioRun, bucket: str, key: str) -> bytes:
    run.put_object(bucket, key, SINGLE_PART_CONTENT)
    return SINGLE_PART_CONTENT


def upload_multipart(run: ScenarioRun, bucket: str, key: str) -> bytes:
    """Upload a 15 MiB object as three 5 MiB parts."""
    pattern = bytes(range(256))
    data = pattern * (MULTIPART_SIZE // len(pattern))
    with run.expect_success("Multipart upload expected to succeed but failed"):
        multipart_upload(run.s3, bucket, key, data, part_size=MIN_PART_SIZE)
    return data


@dataclass(frozen=True)
class RestoreCase:
    """Upload strategy plus the number of days to restore for."""

    function: str
    upload: Uploader
    restore_days: int = DEFAULT_RESTORE_DAYS
    object_name: str = "object"

    def args(self) -> dict:
        return {"objectName": self.object_name, "restoreDays": self.restore_days}


def _restore_completed(snapshot) -> bool:
    if is_absent(snapshot) or not snapshot.restore:
        return False
    try:
        return parse_restore_header(snapshot.restore).completed
    except RestoreHeaderError as exc:
        raise ScenarioFailure(
            "Expected restore header contain ongoing-request status and expiry-date.", exc
        ) from exc


def exec_restore(run: ScenarioRun, case: RestoreCase) -> None:
    bucket = run.create_bucket()
    key = case.object_name
    run.apply_lifecycle(
        bucket,
        [transition_by_date(-2, run.ctx.tier)],
        message="Put LifecycleConfiguration for transitioning failed",
    )
    content = case.upload(run, bucket, key)

    transitioned = await_transition(run, bucket, key, content)
    run.expect(transitioned.restore is None, "Expected restore header to be empty.")

    with run.expect_success("Restore object failed"):
        run.s3.restore_object(Bucket=bucket, Key=key, RestoreRequest={"Days": case.restore_days})

    restored = run.wait_for(run.reader(bucket, key), _restore_completed, "object to be restored")
    completed_at = datetime.now(timezone.utc)

    status = parse_restore_header(restored.restore)
    run.expect(status.expiry is not None, "Expected restore header to carry an expiry-date.")
    expected_expiry = midnight_utc(case.restore_days + 1, completed_at)
    run.expect(
        status.expiry == expected_expiry,
        f"Expected 'expiry-date' to be midnight in {case.restore_days + 1} days "
        f"({expected_expiry.isoformat()}), got {status.expiry.isoformat()}.",
    )
    run.expect(restored.content == content, "Unexpected body content after restore")


def run_restore(ctx: ScenarioContext):
    """Transition, then restore, a single-part object."""
    case = RestoreCase("restore", upload_single_part)
    with ctx.scenario(case.function, case.args()) as run:
        exec_restore(run, case)
    return run.result


def run_restore_multipart(ctx: ScenarioContext):
    """Transition, then restore, a multipart object."""
    case = RestoreCase("restore_multipart", upload_multipart)
    with ctx.scenario(case.function, case.args()) as run:
        exec_restore(run, case)
    return run.result
