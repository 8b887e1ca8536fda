"""Transition to the remote tier, and expiration of transitioned objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from ilm_suite.common.s3_objects import ObjectSnapshot
from ilm_suite.common.waiter_utils import is_absent
from ilm_suite.lifecycle_rules import LifecycleRule, expire_by_date, transition_by_date
from ilm_suite.runner import ScenarioContext, ScenarioRun, execute_cases

CONTENT = b"my content 1"


def on_tier(tier: str) -> Callable[[object], bool]:
    """Condition: the object is readable and reports the tier as its storage class."""

    def _condition(snapshot) -> bool:
        return not is_absent(snapshot) and snapshot.storage_class == tier

    return _condition


def await_transition(run: ScenarioRun, bucket: str, key: str, content: bytes) -> ObjectSnapshot:
    """Wait until ``key`` reports the remote tier and check its content survived the move."""
    snapshot = run.wait_for(run.reader(bucket, key), on_tier(run.ctx.tier), "object to be transitioned")
    run.expect(snapshot.content == content, "Unexpected body content after transition")
    return snapshot


@dataclass(frozen=True)
class TransitionCase:
    """One object under one transition configuration."""

    rules: Sequence[LifecycleRule]
    object_name: str
    expect_transition: bool

    def args(self) -> dict:
        return {"objectName": self.object_name, "expTransition": self.expect_transition}


def transition_cases(tier: str) -> list[TransitionCase]:
    future = [transition_by_date(1, tier)]
    past = [transition_by_date(-2, tier)]
    past_prefix = [transition_by_date(-2, tier, prefix="prefix")]
    return [
        TransitionCase(future, "object", expect_transition=False),
        TransitionCase(past, "object", expect_transition=True),
        TransitionCase(past_prefix, "object", expect_transition=False),
        TransitionCase(past_prefix, "prefix/object", expect_transition=True),
    ]


def exec_transition(run: ScenarioRun, case: TransitionCase) -> None:
    bucket = run.create_bucket()
    run.apply_lifecycle(bucket, case.rules)
    run.put_object(bucket, case.object_name, CONTENT)

    if case.expect_transition:
        await_transition(run, bucket, case.object_name, CONTENT)
        return

    tier = run.ctx.tier
    run.hold(
        run.reader(bucket, case.object_name),
        lambda snap: not is_absent(snap) and snap.storage_class != tier and snap.content == CONTENT,
        "object to stay in its original storage class",
    )


def run_transition(ctx: ScenarioContext):
    """Transition by date, with and without a prefix filter."""
    return execute_cases(ctx, "transition", transition_cases(ctx.tier), exec_transition)


@dataclass(frozen=True)
class ExpireTransitionedCase:
    """An object first moved to the tier, then subjected to ``rules``."""

    rules: Sequence[LifecycleRule]
    object_name: str
    expect_deletion: bool

    def args(self) -> dict:
        return {"objectName": self.object_name, "expDeletion": self.expect_deletion}


def expire_transitioned_cases() -> list[ExpireTransitionedCase]:
    expiry = [expire_by_date(-2)]
    expiry_prefix = [expire_by_date(-2, prefix="prefix")]
    return [
        ExpireTransitionedCase(expiry, "object", expect_deletion=True),
        ExpireTransitionedCase(expiry_prefix, "object", expect_deletion=False),
        ExpireTransitionedCase(expiry_prefix, "prefix/object", expect_deletion=True),
    ]


def exec_expire_transitioned(run: ScenarioRun, case: ExpireTransitionedCase) -> None:
    bucket = run.create_bucket()
    run.apply_lifecycle(
        bucket,
        [transition_by_date(-2, run.ctx.tier)],
        message="Put LifecycleConfiguration for transitioning failed",
    )
    run.put_object(bucket, case.object_name, CONTENT)
    await_transition(run, bucket, case.object_name, CONTENT)

    run.apply_lifecycle(bucket, case.rules, message="Put LifecycleConfiguration for expiry failed")
    read = run.reader(bucket, case.object_name)
    if case.expect_deletion:
        run.wait_for(read, is_absent, "transitioned object to be deleted")
        return
    run.hold(read, lambda snap: not is_absent(snap) and snap.content == CONTENT, "transitioned object to be retained")


def run_expire_transitioned(ctx: ScenarioContext):
    """Expiration of objects already living on the remote tier."""
    return execute_cases(ctx, "expire_transitioned", expire_transitioned_cases(), exec_expire_transitioned)
