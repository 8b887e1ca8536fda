"""
Exceptions for the ILM conformance suite.

Scenario-level errors carry the human readable message that ends up in the
result record together with the optional underlying cause.
"""

from __future__ import annotations

from typing import Optional


class MissingConfigurationError(ValueError):
    """Raised when a required configuration value is not set."""

    def __init__(self, names: list[str]):
        super().__init__(f"Missing required configuration: {', '.join(names)}")
        self.names = names


class ServerConnectionError(ConnectionError):
    """Raised when the server under test cannot be reached at startup."""

    def __init__(self, endpoint: str, cause: Exception):
        super().__init__(f"Unable to connect to {endpoint}: {cause}")
        self.endpoint = endpoint
        self.cause = cause


class InvalidLifecycleRuleError(ValueError):
    """Raised when a lifecycle rule cannot be constructed from the given intent."""


class ScenarioFailure(AssertionError):
    """Raised inside a scenario to end it with a FAIL record."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, alert: str = ""):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.alert = alert


class ScenarioNotApplicable(Exception):
    """Raised inside a scenario when the server lacks a required capability."""

    def __init__(self, alert: str):
        super().__init__(alert)
        self.alert = alert


class PollTimeoutError(ScenarioFailure):
    """Raised when the awaited state was never observed within the poll bound."""

    def __init__(self, description: str, attempts: int, elapsed: float):
        super().__init__(
            f"Expected {description} (gave up after {attempts} read(s) in {elapsed:.1f}s)"
        )
        self.attempts = attempts
        self.elapsed = elapsed


class UnexpectedPollError(ScenarioFailure):
    """Raised when a read fails with an error other than the awaited not-found signal."""

    def __init__(self, description: str, cause: BaseException):
        super().__init__(f"Unexpected error while waiting for {description}", cause)


class FlappingStateError(ScenarioFailure):
    """Raised when a confirmed terminal state is not observed again on re-read."""

    def __init__(self, description: str):
        super().__init__(f"Observed {description} but the next read disagreed")


class SteadyStateViolationError(ScenarioFailure):
    """Raised when a state expected to hold for the whole window changes."""

    def __init__(self, description: str, elapsed: float):
        super().__init__(f"Expected {description} but it changed after {elapsed:.1f}s")
        self.elapsed = elapsed


class CleanupFailedError(RuntimeError):
    """Raised when a test bucket could not be removed within the cleanup ceiling."""

    def __init__(self, bucket: str, cause: Optional[BaseException] = None):
        super().__init__(f"Unable to cleanup bucket '{bucket}' after ILM tests")
        self.bucket = bucket
        self.cause = cause


class BucketNotEmptyError(RuntimeError):
    """Raised when a cleanup pass leaves versions or delete markers behind."""

    def __init__(self, bucket: str, remaining: int):
        super().__init__(f"Bucket {bucket} still holds {remaining} version(s) after delete pass")
        self.bucket = bucket
        self.remaining = remaining


__all__ = [
    "MissingConfigurationError",
    "ServerConnectionError",
    "InvalidLifecycleRuleError",
    "ScenarioFailure",
    "ScenarioNotApplicable",
    "PollTimeoutError",
    "UnexpectedPollError",
    "FlappingStateError",
    "SteadyStateViolationError",
    "CleanupFailedError",
    "BucketNotEmptyError",
]
