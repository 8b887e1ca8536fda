"""Assertions that report the scenario record behind a mismatch, not just the compared values."""

from __future__ import annotations

from ilm_suite.common.results import Status, TestResult


def assert_equal(actual, expected) -> None:
    assert actual == expected, f"expected {expected!r}, got {actual!r}"


def assert_status(result: TestResult, expected: Status) -> None:
    """Assert a scenario result's status, showing its message on mismatch."""
    assert result is not None, "Scenario produced no result"
    detail = f"{result.function} {result.args}: {result.message} ({result.error!r})"
    assert result.status is expected, f"Expected {expected.value} but got {result.status.value}: {detail}"


def assert_all_status(results, expected: Status) -> None:
    """Assert every result of a table-driven family has ``expected`` status."""
    assert results, "Scenario family produced no results"
    for result in results:
        assert_status(result, expected)
