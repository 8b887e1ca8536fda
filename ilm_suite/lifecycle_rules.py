"""
Lifecycle rule construction.

Builds the rule documents sent with PutBucketLifecycleConfiguration. Dates
are truncated to midnight UTC before the day offset is applied, matching the
day granularity servers use when evaluating rules: a negative offset makes a
rule immediately eligible, a positive one keeps it dormant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ilm_suite.common.exceptions import InvalidLifecycleRuleError

ENABLED = "Enabled"
DISABLED = "Disabled"


def midnight_utc(days_offset: int = 0, now: Optional[datetime] = None) -> datetime:
    """Return today's midnight (UTC) shifted by ``days_offset`` days."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    current = current.astimezone(timezone.utc)
    return current.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=days_offset)


@dataclass(frozen=True)
class Expiration:
    """Expiration action: one of an absolute date, an age in days, or the delete-marker flag."""

    date: Optional[datetime] = None
    days: Optional[int] = None
    expired_object_delete_marker: bool = False

    def __post_init__(self):
        chosen = [self.date is not None, self.days is not None, self.expired_object_delete_marker]
        if sum(chosen) != 1:
            raise InvalidLifecycleRuleError("Expiration needs exactly one of date, days or expired_object_delete_marker")
        if self.days is not None and self.days < 1:
            raise InvalidLifecycleRuleError(f"Expiration days must be positive, got {self.days}")

    def to_document(self) -> dict:
        if self.date is not None:
            return {"Date": self.date}
        if self.days is not None:
            return {"Days": self.days}
        return {"ExpiredObjectDeleteMarker": True}


@dataclass(frozen=True)
class Transition:
    """Transition action to a remote storage class, by date or by age."""

    storage_class: str
    date: Optional[datetime] = None
    days: Optional[int] = None

    def __post_init__(self):
        if not self.storage_class:
            raise InvalidLifecycleRuleError("Transition needs a target storage class")
        if (self.date is None) == (self.days is None):
            raise InvalidLifecycleRuleError("Transition needs exactly one of date or days")
        if self.days is not None and self.days < 0:
            raise InvalidLifecycleRuleError(f"Transition days must not be negative, got {self.days}")

    def to_document(self) -> dict:
        document: dict = {"StorageClass": self.storage_class}
        if self.date is not None:
            document["Date"] = self.date
        else:
            document["Days"] = self.days
        return document


@dataclass(frozen=True)
class NoncurrentExpiration:
    """Expire versions ``noncurrent_days`` after they stopped being current, keeping the newest N."""

    noncurrent_days: int
    newer_noncurrent_versions: Optional[int] = None

    def __post_init__(self):
        if self.noncurrent_days < 1:
            raise InvalidLifecycleRuleError(f"NoncurrentDays must be positive, got {self.noncurrent_days}")
        if self.newer_noncurrent_versions is not None and self.newer_noncurrent_versions < 1:
            raise InvalidLifecycleRuleError(
                f"NewerNoncurrentVersions must be positive, got {self.newer_noncurrent_versions}"
            )

    def to_document(self) -> dict:
        document: dict = {"NoncurrentDays": self.noncurrent_days}
        if self.newer_noncurrent_versions is not None:
            document["NewerNoncurrentVersions"] = self.newer_noncurrent_versions
        return document


@dataclass(frozen=True)
class LifecycleRule:
    """A single, immutable lifecycle rule."""

    rule_id: str
    prefix: str = ""
    status: str = ENABLED
    expiration: Optional[Expiration] = None
    transition: Optional[Transition] = None
    noncurrent_expiration: Optional[NoncurrentExpiration] = None

    def __post_init__(self):
        if not self.rule_id:
            raise InvalidLifecycleRuleError("Lifecycle rules need an ID")
        if self.status not in (ENABLED, DISABLED):
            raise InvalidLifecycleRuleError(f"Invalid rule status {self.status!r}")
        if self.expiration is None and self.transition is None and self.noncurrent_expiration is None:
            raise InvalidLifecycleRuleError(f"Rule {self.rule_id} has no action")

    def to_document(self) -> dict:
        """Render the rule in the shape boto3 expects."""
        document: dict = {
            "ID": self.rule_id,
            "Status": self.status,
            "Filter": {"Prefix": self.prefix},
        }
        if self.expiration is not None:
            document["Expiration"] = self.expiration.to_document()
        if self.transition is not None:
            document["Transitions"] = [self.transition.to_document()]
        if self.noncurrent_expiration is not None:
            document["NoncurrentVersionExpiration"] = self.noncurrent_expiration.to_document()
        return document


def _describe(intent: str, days_offset: int, prefix: str) -> str:
    if days_offset < 0:
        when = "inpast"
    elif days_offset == 0:
        when = "today"
    else:
        when = "infuture"
    return f"{intent}{when}{'prefix' if prefix else ''}"


def expire_by_date(days_offset: int, prefix: str = "", rule_id: Optional[str] = None, now: Optional[datetime] = None) -> LifecycleRule:
    """Expire objects on midnight UTC ``days_offset`` days from today."""
    return LifecycleRule(
        rule_id=rule_id or _describe("expirydate", days_offset, prefix),
        prefix=prefix,
        expiration=Expiration(date=midnight_utc(days_offset, now)),
    )


def expire_by_age(days: int, prefix: str = "", rule_id: Optional[str] = None) -> LifecycleRule:
    """Expire objects ``days`` days after creation."""
    return LifecycleRule(
        rule_id=rule_id or f"expiryafter{days}days{'prefix' if prefix else ''}",
        prefix=prefix,
        expiration=Expiration(days=days),
    )


def transition_by_date(
    days_offset: int,
    storage_class: str,
    prefix: str = "",
    rule_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LifecycleRule:
    """Transition objects to ``storage_class`` on midnight UTC ``days_offset`` days from today."""
    return LifecycleRule(
        rule_id=rule_id or _describe("transitiondate", days_offset, prefix),
        prefix=prefix,
        transition=Transition(storage_class=storage_class, date=midnight_utc(days_offset, now)),
    )


def transition_by_age(days: int, storage_class: str, prefix: str = "", rule_id: Optional[str] = None) -> LifecycleRule:
    """Transition objects to ``storage_class`` ``days`` days after creation."""
    return LifecycleRule(
        rule_id=rule_id or f"transitionafter{days}days{'prefix' if prefix else ''}",
        prefix=prefix,
        transition=Transition(storage_class=storage_class, days=days),
    )


def noncurrent_expiration(
    noncurrent_days: int,
    newer_noncurrent_versions: Optional[int] = None,
    prefix: str = "",
    rule_id: Optional[str] = None,
) -> LifecycleRule:
    """Expire non-current versions, optionally retaining the newest ``newer_noncurrent_versions``."""
    default_id = f"noncurrentexpiry{noncurrent_days}days"
    if newer_noncurrent_versions is not None:
        default_id += f"keep{newer_noncurrent_versions}"
    return LifecycleRule(
        rule_id=rule_id or default_id,
        prefix=prefix,
        noncurrent_expiration=NoncurrentExpiration(noncurrent_days, newer_noncurrent_versions),
    )


def expired_marker_cleanup(noncurrent_days: Optional[int] = None, prefix: str = "", rule_id: Optional[str] = None) -> LifecycleRule:
    """
    Remove delete markers left without any non-current version.

    With ``noncurrent_days`` the rule also expires the non-current versions,
    which is what eventually leaves a marker alone.
    """
    companion = NoncurrentExpiration(noncurrent_days) if noncurrent_days is not None else None
    return LifecycleRule(
        rule_id=rule_id or "expirydeletemarkers",
        prefix=prefix,
        expiration=Expiration(expired_object_delete_marker=True),
        noncurrent_expiration=companion,
    )


def lifecycle_configuration(*rules: LifecycleRule) -> dict:
    """
    Assemble a full lifecycle configuration.

    The configuration replaces whatever the bucket had before, so every rule
    the scenario needs must be passed here at once.

    Raises:
        InvalidLifecycleRuleError: If no rules are given or rule IDs repeat
    """
    if not rules:
        raise InvalidLifecycleRuleError("A lifecycle configuration needs at least one rule")
    seen: set[str] = set()
    for rule in rules:
        if rule.rule_id in seen:
            raise InvalidLifecycleRuleError(f"Duplicate rule ID {rule.rule_id!r}")
        seen.add(rule.rule_id)
    return {"Rules": [rule.to_document() for rule in rules]}


def expected_noncurrent_deletions(noncurrent_count: int, newer_noncurrent_versions: Optional[int]) -> int:
    """
    Number of oldest non-current versions a retention-count rule removes.

    With N retained versions and V-1 non-current ones, ``max(0, (V-1) - N)``
    versions go away once they are all old enough.
    """
    if newer_noncurrent_versions is None:
        return noncurrent_count
    return max(0, noncurrent_count - newer_noncurrent_versions)


__all__ = [
    "ENABLED",
    "DISABLED",
    "midnight_utc",
    "Expiration",
    "Transition",
    "NoncurrentExpiration",
    "LifecycleRule",
    "expire_by_date",
    "expire_by_age",
    "transition_by_date",
    "transition_by_age",
    "noncurrent_expiration",
    "expired_marker_cleanup",
    "lifecycle_configuration",
    "expected_noncurrent_deletions",
]
