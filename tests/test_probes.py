"""Tests for capability probes."""

from __future__ import annotations

import logging
import time
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from ilm_suite.common.naming import VERSIONING_BUCKET_PREFIX, BucketNameGenerator
from ilm_suite.probes import (
    is_lifecycle_configuration_implemented,
    is_object_lock_implemented,
    is_versioning_implemented,
)
from tests.assertions import assert_equal
from tests.fake_s3 import FakeS3, client_error


def test_probes_succeed_on_full_server(fake_s3, cleanup):
    s3 = fake_s3
    names = BucketNameGenerator(seed=3)

    assert is_lifecycle_configuration_implemented(s3, names, cleanup)
    assert is_versioning_implemented(s3, names, cleanup)
    assert is_object_lock_implemented(s3, names, cleanup)


def test_probe_buckets_are_cleaned_up(fake_s3, cleanup):
    s3 = fake_s3
    names = BucketNameGenerator(seed=3)

    is_lifecycle_configuration_implemented(s3, names, cleanup)
    is_object_lock_implemented(s3, names, cleanup, prefix=VERSIONING_BUCKET_PREFIX)
    assert_equal(cleanup.wait(), [])

    assert_equal(s3.buckets, {})


def test_not_implemented_answers_are_detected(cleanup):
    """NotImplemented from the probed call marks the capability as missing."""
    s3 = FakeS3(not_implemented=("lifecycle", "versioning", "object_lock"))
    names = BucketNameGenerator(seed=3)

    assert not is_lifecycle_configuration_implemented(s3, names, cleanup)
    assert not is_versioning_implemented(s3, names, cleanup)
    assert not is_object_lock_implemented(s3, names, cleanup)


def test_other_errors_still_count_as_implemented(cleanup, caplog):
    """Only NotImplemented disables the capability; other errors are logged."""
    s3 = MagicMock()
    s3.put_bucket_lifecycle_configuration.side_effect = client_error("MalformedXML", "PutBucketLifecycleConfiguration")

    with caplog.at_level(logging.WARNING):
        assert is_lifecycle_configuration_implemented(s3, BucketNameGenerator(seed=1), cleanup)

    assert "assuming the API is implemented" in caplog.text


def test_failed_probe_bucket_creation_means_unavailable(cleanup):
    s3 = MagicMock()
    s3.create_bucket.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "CreateBucket")

    assert not is_lifecycle_configuration_implemented(s3, BucketNameGenerator(seed=1), cleanup)
    assert not is_versioning_implemented(s3, BucketNameGenerator(seed=1), cleanup)
    assert not is_object_lock_implemented(s3, BucketNameGenerator(seed=1), cleanup)
    s3.put_bucket_lifecycle_configuration.assert_not_called()


def test_probe_bucket_outlives_a_slow_probed_call(fake_s3, cleanup, monkeypatch):
    """The probe bucket is only handed to cleanup once the probed call returned."""
    names = BucketNameGenerator(seed=3)
    scheduled = []
    observed = []
    schedule = cleanup.schedule
    put_bucket_versioning = fake_s3.put_bucket_versioning

    def _record_schedule(bucket, *args):
        scheduled.append(bucket)
        return schedule(bucket, *args)

    def _slow_put_bucket_versioning(**kwargs):
        time.sleep(0.05)
        observed.append((kwargs["Bucket"] in fake_s3.buckets, list(scheduled)))
        return put_bucket_versioning(**kwargs)

    monkeypatch.setattr(cleanup, "schedule", _record_schedule)
    monkeypatch.setattr(fake_s3, "put_bucket_versioning", _slow_put_bucket_versioning)

    assert is_versioning_implemented(fake_s3, names, cleanup)

    assert_equal(observed, [(True, [])])
    assert_equal(len(scheduled), 1)
    assert_equal(cleanup.wait(), [])
    assert_equal(fake_s3.buckets, {})


def test_probe_bucket_is_cleaned_up_when_probed_call_fails(fake_s3, cleanup):
    fake_s3.not_implemented.add("versioning")

    assert not is_versioning_implemented(fake_s3, BucketNameGenerator(seed=3), cleanup)

    assert_equal(cleanup.wait(), [])
    assert_equal(fake_s3.buckets, {})


def test_transport_errors_mean_unavailable(cleanup, caplog):
    """A dropped connection during a probe is logged and reported as unavailable."""
    s3 = MagicMock()
    s3.put_bucket_lifecycle_configuration.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
    s3.put_bucket_versioning.side_effect = ReadTimeoutError(endpoint_url="http://localhost:9000")
    s3.create_bucket.side_effect = [{}, {}, EndpointConnectionError(endpoint_url="http://localhost:9000")]
    names = BucketNameGenerator(seed=1)

    with caplog.at_level(logging.WARNING):
        assert not is_lifecycle_configuration_implemented(s3, names, cleanup)
        assert not is_versioning_implemented(s3, names, cleanup)
        assert not is_object_lock_implemented(s3, names, cleanup)

    assert "could not reach the server" in caplog.text
