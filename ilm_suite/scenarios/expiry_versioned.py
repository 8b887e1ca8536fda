"""
Expiration rules on versioned buckets.

Versions are backdated with the source-mtime header so that day-granular
rules become eligible without waiting for real days to pass.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Optional, Sequence

from botocore.exceptions import ClientError

from ilm_suite.common.s3_objects import VersionListing, list_versions, read_object
from ilm_suite.common.waiter_utils import is_absent
from ilm_suite.lifecycle_rules import (
    expected_noncurrent_deletions,
    expire_by_date,
    expired_marker_cleanup,
    midnight_utc,
    noncurrent_expiration,
)
from ilm_suite.runner import ScenarioContext, ScenarioRun

OBJECT_NAME = "object"


@dataclass(frozen=True)
class VersionSpec:
    """One version to write: its content, age in days and whether it should expire."""

    content: bytes
    age_days: int
    expect_deletion: bool


def noncurrent_version_specs() -> list[VersionSpec]:
    """Six versions, oldest first; the last one is current."""
    ages = [-5, -4, -3, -3, -3, 0]
    deleted = {0, 1}
    return [
        VersionSpec(f"my content {index + 1}".encode(), age, index in deleted)
        for index, age in enumerate(ages)
    ]


def retention_version_specs(newer_noncurrent_versions: int, ages: Sequence[int] = (-6, -5, -4, -3, 0)) -> list[VersionSpec]:
    """Versions whose oldest non-current entries exceed the retention count."""
    removed = expected_noncurrent_deletions(len(ages) - 1, newer_noncurrent_versions)
    return [
        VersionSpec(f"my content {index + 1}".encode(), age, index < removed)
        for index, age in enumerate(ages)
    ]


def _put_versions(run: ScenarioRun, bucket: str, key: str, specs: Sequence[VersionSpec]) -> list[str]:
    version_ids = []
    for index, spec in enumerate(specs):
        response = run.put_object(
            bucket,
            key,
            spec.content,
            message=f"PUT ({index}) expected to succeed but failed",
            mtime=midnight_utc(spec.age_days),
        )
        version_id = response.get("VersionId")
        run.expect(bool(version_id), f"PUT ({index}) did not return a version id")
        version_ids.append(version_id)
    return version_ids


def _trigger(run: ScenarioRun, bucket: str, key: str, version_ids: Sequence[str]) -> None:
    """GET every version once; some servers evaluate lifecycle rules on access."""
    for version_id in version_ids:
        with contextlib.suppress(ClientError):
            read_object(run.s3, bucket, key, version_id)


def _listing_reader(run: ScenarioRun, bucket: str, key: str, version_ids: Sequence[str]):
    def _read() -> VersionListing:
        _trigger(run, bucket, key, version_ids)
        return list_versions(run.s3, bucket)

    return _read


def exec_expire_current_version(run: ScenarioRun) -> None:
    bucket = run.create_bucket()
    run.enable_versioning(bucket)
    contents = [b"my content 1", b"my content 2"]
    version_ids = []
    for index, content in enumerate(contents):
        response = run.put_object(bucket, OBJECT_NAME, content, message=f"PUT ({index}) expected to succeed but failed")
        version_ids.append(response.get("VersionId"))

    run.apply_lifecycle(bucket, [expire_by_date(-2)])
    run.wait_for(run.reader(bucket, OBJECT_NAME), is_absent, "current object version to be deleted")

    for index, (version_id, content) in enumerate(zip(version_ids, contents)):
        snapshot = run.get_object(
            bucket, OBJECT_NAME, version_id, message=f"GetObject ({index}) expected to succeed but failed."
        )
        run.expect(snapshot.content == content, f"GetObject ({index}) unexpected body content")


def run_expire_current_version(ctx: ScenarioContext):
    """Expiring the current version leaves a delete marker and keeps older versions."""
    with ctx.scenario("expire_current_version", {"objectName": OBJECT_NAME}) as run:
        exec_expire_current_version(run)
    return run.result


def _check_noncurrent_expiry(run: ScenarioRun, bucket: str, specs: Sequence[VersionSpec], version_ids: Sequence[str]) -> None:
    expected = {vid for vid, spec in zip(version_ids, specs) if not spec.expect_deletion}
    read = _listing_reader(run, bucket, OBJECT_NAME, version_ids)

    listing = run.wait_for(read, lambda lst: set(lst.version_ids()) == expected, "expired non-current versions to be removed")
    listing = run.hold(read, lambda lst: set(lst.version_ids()) == expected, "remaining versions to be retained")

    run.expect(not listing.delete_markers, "Expected ListObjectVersions to no DeleteMarkers.")
    run.expect(len(listing.versions) == len(expected), f"Expected ListObjectVersions to return ({len(expected)}) versions.")
    current = listing.current(OBJECT_NAME)
    run.expect(current is not None, "Expected current versionId to be not empty.")
    run.expect(current.version_id == version_ids[-1], f"Expected current version to be {version_ids[-1]}.")


def exec_noncurrent_expiry(
    run: ScenarioRun,
    specs: Sequence[VersionSpec],
    noncurrent_days: int,
    newer_noncurrent_versions: Optional[int] = None,
) -> None:
    bucket = run.create_bucket()
    run.enable_versioning(bucket)
    version_ids = _put_versions(run, bucket, OBJECT_NAME, specs)
    run.apply_lifecycle(bucket, [noncurrent_expiration(noncurrent_days, newer_noncurrent_versions)])
    _check_noncurrent_expiry(run, bucket, specs, version_ids)


def run_expire_noncurrent_versions(ctx: ScenarioContext):
    """Non-current versions older than NoncurrentDays are removed."""
    specs = noncurrent_version_specs()
    args = {"objectName": OBJECT_NAME, "noncurrentDays": 2, "versions": len(specs)}
    with ctx.scenario("expire_noncurrent_versions", args) as run:
        exec_noncurrent_expiry(run, specs, noncurrent_days=2)
    return run.result


def run_newer_noncurrent_versions(ctx: ScenarioContext, newer_noncurrent_versions: int = 2):
    """Only the oldest non-current versions beyond the retention count are removed."""
    specs = retention_version_specs(newer_noncurrent_versions)
    args = {
        "objectName": OBJECT_NAME,
        "noncurrentDays": 1,
        "newerNoncurrentVersions": newer_noncurrent_versions,
        "versions": len(specs),
    }
    with ctx.scenario("newer_noncurrent_versions", args) as run:
        exec_noncurrent_expiry(run, specs, noncurrent_days=1, newer_noncurrent_versions=newer_noncurrent_versions)
    return run.result


def exec_expire_delete_markers(run: ScenarioRun) -> None:
    bucket = run.create_bucket()
    run.enable_versioning(bucket)
    specs = [VersionSpec(b"my content 1", -5, True), VersionSpec(b"my content 2", -4, True)]
    version_ids = _put_versions(run, bucket, OBJECT_NAME, specs)
    run.delete_object(bucket, OBJECT_NAME, mtime=midnight_utc(-3))

    run.apply_lifecycle(bucket, [expired_marker_cleanup(noncurrent_days=1)])
    run.wait_for(
        _listing_reader(run, bucket, OBJECT_NAME, version_ids),
        lambda listing: len(listing) == 0,
        "versions and the expired delete marker to be removed",
    )


def run_expire_delete_markers(ctx: ScenarioContext):
    """A delete marker left without non-current versions is removed as well."""
    with ctx.scenario("expire_delete_markers", {"objectName": OBJECT_NAME}) as run:
        exec_expire_delete_markers(run)
    return run.result
