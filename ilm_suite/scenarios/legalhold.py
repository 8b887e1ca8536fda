"""
Object-lock legal holds on versioned buckets.

A held version survives versioned deletes until its hold is turned off;
malformed, unauthenticated and lock-less requests are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ilm_suite.common.client_factory import create_s3_client
from ilm_suite.common.naming import VERSIONING_BUCKET_PREFIX
from ilm_suite.common.s3_objects import MIN_PART_SIZE, multipart_upload
from ilm_suite.runner import ScenarioContext, ScenarioRun

SUITE = "versioning"
NOT_IMPLEMENTED_ALERT = "Versioning is not implemented"
HOLD_ON = "ON"
HOLD_OFF = "OFF"
INVALID_HOLD_STATUS = "test"
CONTENT = b"content"
MULTIPART_SIZE = 6 * MIN_PART_SIZE

# Writes one version carrying the given hold status and returns its version id
Uploader = Callable[[ScenarioRun, str, str, str], str]


@dataclass
class UploadedVersion:
    """A version written by the scenario and the hold it was written with."""

    version_id: str
    legal_hold: Optional[str] = None

    @property
    def delete_marker(self) -> bool:
        return self.legal_hold is None


def upload_single_part(run: ScenarioRun, bucket: str, key: str, legal_hold: str) -> str:
    response = run.put_object(bucket, key, CONTENT, ObjectLockLegalHoldStatus=legal_hold)
    return response["VersionId"]


def upload_multipart(run: ScenarioRun, bucket: str, key: str, legal_hold: str) -> str:
    with run.expect_success("CompleteMultipartUpload is expected to succeed but failed"):
        response = multipart_upload(
            run.s3, bucket, key, bytes(MULTIPART_SIZE), part_size=MIN_PART_SIZE, ObjectLockLegalHoldStatus=legal_hold
        )
    return response["VersionId"]


def _complete_with_missing_part(run: ScenarioRun, bucket: str, key: str, legal_hold: str) -> None:
    """Upload every part but the last, then expect completion to be refused."""
    s3 = run.s3
    with run.expect_success("CreateMultipartupload API failed"):
        upload_id = s3.create_multipart_upload(Bucket=bucket, Key=key, ObjectLockLegalHoldStatus=legal_hold)["UploadId"]
    part = bytes(MIN_PART_SIZE)
    parts = []
    with run.expect_success("UploadPart API failed"):
        for number in range(1, MULTIPART_SIZE // MIN_PART_SIZE):
            result = s3.upload_part(Bucket=bucket, Key=key, UploadId=upload_id, PartNumber=number, Body=part)
            parts.append({"ETag": result["ETag"], "PartNumber": number})
    parts.append({"ETag": parts[-1]["ETag"], "PartNumber": len(parts) + 1})
    with run.expect_error("CompleteMultipartUpload is expected to fail but succeeded"):
        s3.complete_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id, MultipartUpload={"Parts": parts})
    with run.expect_success("AbortMultipartUpload failed"):
        s3.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)


def _check_holds(run: ScenarioRun, bucket: str, key: str, uploads: list[UploadedVersion]) -> None:
    s3 = run.s3
    for version in uploads:
        if version.delete_marker:
            continue
        if version.legal_hold == HOLD_ON:
            with run.expect_error("DELETE expected to fail but succeed instead"):
                s3.delete_object(Bucket=bucket, Key=key, VersionId=version.version_id)
        else:
            run.delete_object(bucket, key, VersionId=version.version_id)

    held = [v for v in uploads if v.legal_hold == HOLD_ON]
    for version in held:
        with run.expect_success("GetObjectLegalHold expected to succeed but failed"):
            s3.get_object_legal_hold(Bucket=bucket, Key=key, VersionId=version.version_id)
    for version in held:
        with run.expect_success("Turning off legalhold failed"):
            s3.put_object_legal_hold(
                Bucket=bucket, Key=key, VersionId=version.version_id, LegalHold={"Status": HOLD_OFF}
            )

    # Deleted versions and delete markers have no hold to read
    for version in uploads:
        if version.legal_hold != HOLD_ON:
            with run.expect_error("GetObjectLegalHold expected to fail but succeeded"):
                s3.get_object_legal_hold(Bucket=bucket, Key=key, VersionId=version.version_id)


def _check_rejections(run: ScenarioRun, bucket: str, key: str, held_count: int) -> None:
    s3 = run.s3
    unauthorized = create_s3_client(run.ctx.config, aws_access_key_id="test", aws_secret_access_key="test")
    with run.expect_error("GetObjectLegalHold with unknown credentials expected to fail but succeeded"):
        unauthorized.get_object_legal_hold(Bucket=bucket, Key=key)

    bucket_without_lock = run.create_bucket(
        Bucket=f"{bucket}-without-lock", arg_name="bucketWithoutLock", ObjectLockEnabledForBucket=False
    )
    with run.expect_error("GetObjectLegalHold on a bucket without object lock expected to fail but succeeded"):
        s3.get_object_legal_hold(Bucket=bucket_without_lock, Key=key)

    for _ in range(held_count):
        with run.expect_error("PutObjectLegalHold with unknown credentials expected to fail but succeeded"):
            unauthorized.put_object_legal_hold(Bucket=bucket, Key=key)
        with run.expect_error("PutObjectLegalHold on a bucket without object lock expected to fail but succeeded"):
            s3.put_object_legal_hold(Bucket=bucket_without_lock, Key=key)

    version_id = upload_single_part(run, bucket, key, INVALID_HOLD_STATUS)
    with run.expect_error("PutObjectLegalHold without a hold status expected to fail but succeeded"):
        s3.put_object_legal_hold(Bucket=bucket, Key=key, VersionId=version_id)


def exec_locking_legalhold(run: ScenarioRun, key: str, upload: Uploader, omit_part: bool = False) -> None:
    bucket = run.create_bucket(ObjectLockEnabledForBucket=True, not_implemented_alert=NOT_IMPLEMENTED_ALERT)

    uploads = [UploadedVersion(upload(run, bucket, key, status), status) for status in (HOLD_ON, HOLD_OFF)]
    # An unversioned delete always succeeds by writing a delete marker
    marker = run.delete_object(bucket, key)
    uploads.append(UploadedVersion(marker["VersionId"]))

    _check_holds(run, bucket, key, uploads)
    _check_rejections(run, bucket, key, held_count=sum(1 for v in uploads if v.legal_hold == HOLD_ON))
    if omit_part:
        _complete_with_missing_part(run, bucket, key, HOLD_ON)


def run_locking_legalhold(ctx: ScenarioContext):
    """Legal holds on single-part versions."""
    key = "testObject"
    with ctx.scenario("locking_legalhold", {"objectName": key}, suite=SUITE, bucket_prefix=VERSIONING_BUCKET_PREFIX) as run:
        exec_locking_legalhold(run, key, upload_single_part)
    return run.result


def run_locking_legalhold_multipart(ctx: ScenarioContext):
    """Legal holds on multipart versions, plus a completion with a missing part."""
    key = "testobject"
    with ctx.scenario(
        "locking_legalhold_multipart", {"objectName": key}, suite=SUITE, bucket_prefix=VERSIONING_BUCKET_PREFIX
    ) as run:
        exec_locking_legalhold(run, key, upload_multipart, omit_part=True)
    return run.result
