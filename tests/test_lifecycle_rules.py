"""Tests for lifecycle rule construction."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ilm_suite.common.exceptions import InvalidLifecycleRuleError
from ilm_suite.lifecycle_rules import (
    DISABLED,
    Expiration,
    LifecycleRule,
    NoncurrentExpiration,
    Transition,
    expected_noncurrent_deletions,
    expire_by_age,
    expire_by_date,
    expired_marker_cleanup,
    lifecycle_configuration,
    midnight_utc,
    noncurrent_expiration,
    transition_by_age,
    transition_by_date,
)
from tests.assertions import assert_equal

NOW = datetime(2024, 3, 10, 15, 42, 7, 123456, tzinfo=timezone.utc)


def test_midnight_utc_truncates_and_offsets():
    """Dates are truncated to midnight UTC before the offset is applied."""
    assert_equal(midnight_utc(0, NOW), datetime(2024, 3, 10, tzinfo=timezone.utc))
    assert_equal(midnight_utc(-2, NOW), datetime(2024, 3, 8, tzinfo=timezone.utc))
    assert_equal(midnight_utc(1, NOW), datetime(2024, 3, 11, tzinfo=timezone.utc))


def test_midnight_utc_treats_naive_as_utc():
    naive = datetime(2024, 1, 1, 23, 59)
    assert_equal(midnight_utc(1, naive), datetime(2024, 1, 2, tzinfo=timezone.utc))


def test_expire_by_date_document():
    """A past expiry rule renders ID, status, empty prefix filter and the date."""
    rule = expire_by_date(-2, now=NOW)
    assert_equal(
        rule.to_document(),
        {
            "ID": "expirydateinpast",
            "Status": "Enabled",
            "Filter": {"Prefix": ""},
            "Expiration": {"Date": datetime(2024, 3, 8, tzinfo=timezone.utc)},
        },
    )


def test_expire_by_date_ids_reflect_intent():
    assert_equal(expire_by_date(1, now=NOW).rule_id, "expirydateinfuture")
    assert_equal(expire_by_date(0, now=NOW).rule_id, "expirydatetoday")
    assert_equal(transition_by_date(0, "WARM", now=NOW).rule_id, "transitiondatetoday")
    assert_equal(expire_by_date(-2, prefix="prefix", now=NOW).rule_id, "expirydateinpastprefix")
    assert_equal(expire_by_date(1, rule_id="custom", now=NOW).rule_id, "custom")


def test_transition_by_date_document():
    rule = transition_by_date(-2, "WARM-TIER", prefix="prefix", now=NOW)
    document = rule.to_document()
    assert_equal(document["Filter"], {"Prefix": "prefix"})
    assert_equal(
        document["Transitions"],
        [{"StorageClass": "WARM-TIER", "Date": datetime(2024, 3, 8, tzinfo=timezone.utc)}],
    )
    assert "Expiration" not in document


def test_age_based_builders():
    assert_equal(expire_by_age(3).to_document()["Expiration"], {"Days": 3})
    assert_equal(
        transition_by_age(0, "COLD").to_document()["Transitions"],
        [{"StorageClass": "COLD", "Days": 0}],
    )


def test_noncurrent_expiration_with_retention_count():
    document = noncurrent_expiration(2, newer_noncurrent_versions=3).to_document()
    assert_equal(document["ID"], "noncurrentexpiry2dayskeep3")
    assert_equal(document["NoncurrentVersionExpiration"], {"NoncurrentDays": 2, "NewerNoncurrentVersions": 3})


def test_expired_marker_cleanup_with_companion_noncurrent_action():
    document = expired_marker_cleanup(noncurrent_days=1).to_document()
    assert_equal(document["Expiration"], {"ExpiredObjectDeleteMarker": True})
    assert_equal(document["NoncurrentVersionExpiration"], {"NoncurrentDays": 1})


def test_expired_marker_cleanup_alone():
    document = expired_marker_cleanup().to_document()
    assert "NoncurrentVersionExpiration" not in document


@pytest.mark.parametrize(
    "factory",
    [
        lambda: Expiration(),
        lambda: Expiration(date=NOW, days=1),
        lambda: Expiration(days=0),
        lambda: Transition(storage_class=""),
        lambda: Transition(storage_class="T"),
        lambda: Transition(storage_class="T", days=-1),
        lambda: NoncurrentExpiration(0),
        lambda: NoncurrentExpiration(1, newer_noncurrent_versions=0),
        lambda: LifecycleRule(rule_id=""),
        lambda: LifecycleRule(rule_id="x"),
        lambda: LifecycleRule(rule_id="x", status="On", expiration=Expiration(days=1)),
    ],
)
def test_invalid_rules_are_rejected(factory):
    """Malformed rule parts raise InvalidLifecycleRuleError on construction."""
    with pytest.raises(InvalidLifecycleRuleError):
        factory()


def test_rules_are_immutable():
    rule = expire_by_age(1)
    with pytest.raises(AttributeError):
        rule.prefix = "other"  # type: ignore[misc]


def test_disabled_rule_renders_status():
    rule = LifecycleRule(rule_id="off", status=DISABLED, expiration=Expiration(days=1))
    assert_equal(rule.to_document()["Status"], "Disabled")


def test_lifecycle_configuration_wraps_rules():
    config = lifecycle_configuration(expire_by_date(-2, now=NOW), transition_by_date(-2, "T", now=NOW))
    assert_equal([rule["ID"] for rule in config["Rules"]], ["expirydateinpast", "transitiondateinpast"])


def test_lifecycle_configuration_requires_rules():
    with pytest.raises(InvalidLifecycleRuleError):
        lifecycle_configuration()


def test_lifecycle_configuration_rejects_duplicate_ids():
    with pytest.raises(InvalidLifecycleRuleError, match="Duplicate rule ID"):
        lifecycle_configuration(expire_by_date(-2, now=NOW), expire_by_date(-3, now=NOW))


@pytest.mark.parametrize(
    ("noncurrent", "retained", "expected"),
    [(5, None, 5), (5, 2, 3), (2, 2, 0), (1, 4, 0), (0, 1, 0)],
)
def test_expected_noncurrent_deletions(noncurrent, retained, expected):
    """Only versions beyond the retention count are removed."""
    assert_equal(expected_noncurrent_deletions(noncurrent, retained), expected)
