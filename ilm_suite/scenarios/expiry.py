"""Expiration rules on unversioned buckets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ilm_suite.common.waiter_utils import is_absent
from ilm_suite.lifecycle_rules import LifecycleRule, expire_by_date
from ilm_suite.runner import ScenarioContext, ScenarioRun, execute_cases

CONTENT = b"my content 1"


@dataclass(frozen=True)
class ExpiryCase:
    """One object under one expiration configuration."""

    rules: Sequence[LifecycleRule]
    object_name: str
    expect_deletion: bool

    def args(self) -> dict:
        return {"objectName": self.object_name, "expDeletion": self.expect_deletion}


def expiry_cases() -> list[ExpiryCase]:
    """Future date keeps the object; a past date deletes it unless the prefix filter excludes the key."""
    future = [expire_by_date(1)]
    past = [expire_by_date(-2)]
    past_prefix = [expire_by_date(-2, prefix="prefix")]
    return [
        ExpiryCase(future, "object", expect_deletion=False),
        ExpiryCase(past, "object", expect_deletion=True),
        ExpiryCase(past_prefix, "object", expect_deletion=False),
        ExpiryCase(past_prefix, "prefix/object", expect_deletion=True),
    ]


def exec_expiry(run: ScenarioRun, case: ExpiryCase) -> None:
    bucket = run.create_bucket()
    run.apply_lifecycle(bucket, case.rules)
    run.put_object(bucket, case.object_name, CONTENT)

    read = run.reader(bucket, case.object_name)
    if case.expect_deletion:
        run.wait_for(read, is_absent, "object to be deleted")
        return
    run.hold(read, lambda snap: not is_absent(snap) and snap.content == CONTENT, "object to be retained unchanged")


def run_expiry(ctx: ScenarioContext):
    """Expiration by date, with and without a prefix filter."""
    return execute_cases(ctx, "expiry", expiry_cases(), exec_expiry)
