"""
Capability probes.

Each probe tries an optional API against a throwaway bucket so dependent
scenarios can be reported as not applicable rather than failed on servers
that lack the feature.
"""

from __future__ import annotations

import logging
import time

from botocore.exceptions import BotoCoreError, ClientError

from ilm_suite.cleanup import CleanupCoordinator
from ilm_suite.common.naming import ILM_BUCKET_PREFIX, BucketNameGenerator
from ilm_suite.common.s3_objects import error_code
from ilm_suite.lifecycle_rules import expire_by_date, lifecycle_configuration

NOT_IMPLEMENTED = "NotImplemented"


def _create_probe_bucket(s3, bucket: str, function: str, **params) -> bool:
    """Create the probe bucket; return whether creation worked."""
    try:
        s3.create_bucket(Bucket=bucket, **params)
    except ClientError as exc:
        logging.warning("%s: CreateBucket failed: %s", function, exc)
        return False
    except BotoCoreError as exc:
        logging.warning("%s: CreateBucket could not reach the server: %s", function, exc)
        return False
    return True


def _schedule_cleanup(cleanup: CleanupCoordinator, bucket: str, function: str) -> None:
    cleanup.schedule(bucket, function, {"bucketName": bucket}, time.time())


def _implemented(function: str, exc: ClientError) -> bool:
    """
    Classify an error raised by the probed call.

    Only an explicit NotImplemented means the capability is missing. Any other
    error is still counted as "implemented", which can hide unrelated
    failures, so it is logged loudly.
    """
    if error_code(exc) == NOT_IMPLEMENTED:
        return False
    logging.warning("%s: probe failed with %s, assuming the API is implemented", function, exc)
    return True


def _unreachable(function: str, exc: BotoCoreError) -> bool:
    """A transport failure leaves the capability unknown; treat it as unavailable."""
    logging.warning("%s: probe could not reach the server: %s", function, exc)
    return False


def is_lifecycle_configuration_implemented(s3, names: BucketNameGenerator, cleanup: CleanupCoordinator) -> bool:
    """Return False when PutBucketLifecycleConfiguration answers NotImplemented."""
    function = "is_lifecycle_configuration_implemented"
    bucket = names.unique(ILM_BUCKET_PREFIX)
    if not _create_probe_bucket(s3, bucket, function):
        return False
    rule = expire_by_date(1, rule_id="checkilmimplemented")
    try:
        s3.put_bucket_lifecycle_configuration(Bucket=bucket, LifecycleConfiguration=lifecycle_configuration(rule))
    except ClientError as exc:
        return _implemented(function, exc)
    except BotoCoreError as exc:
        return _unreachable(function, exc)
    finally:
        _schedule_cleanup(cleanup, bucket, function)
    return True


def is_versioning_implemented(s3, names: BucketNameGenerator, cleanup: CleanupCoordinator) -> bool:
    """Return False when PutBucketVersioning answers NotImplemented."""
    function = "is_versioning_implemented"
    bucket = names.unique(ILM_BUCKET_PREFIX)
    if not _create_probe_bucket(s3, bucket, function):
        return False
    try:
        s3.put_bucket_versioning(Bucket=bucket, VersioningConfiguration={"Status": "Enabled"})
    except ClientError as exc:
        return _implemented(function, exc)
    except BotoCoreError as exc:
        return _unreachable(function, exc)
    finally:
        _schedule_cleanup(cleanup, bucket, function)
    return True


def is_object_lock_implemented(s3, names: BucketNameGenerator, cleanup: CleanupCoordinator, prefix: str = ILM_BUCKET_PREFIX) -> bool:
    """Return False when creating an object-lock enabled bucket answers NotImplemented."""
    function = "is_object_lock_implemented"
    bucket = names.unique(prefix)
    try:
        s3.create_bucket(Bucket=bucket, ObjectLockEnabledForBucket=True)
    except ClientError as exc:
        if error_code(exc) == NOT_IMPLEMENTED:
            return False
        logging.warning("%s: CreateBucket failed: %s", function, exc)
        return False
    except BotoCoreError as exc:
        return _unreachable(function, exc)
    _schedule_cleanup(cleanup, bucket, function)
    return True


__all__ = [
    "is_lifecycle_configuration_implemented",
    "is_versioning_implemented",
    "is_object_lock_implemented",
]
