"""
Polling helpers for asynchronous lifecycle actions.

The server's lifecycle scanner runs on its own schedule, so the suite can
only observe its effects by re-reading. ``Poller.until`` waits for a state to
appear (returning as soon as it does), ``Poller.steady`` asserts that a state
holds for a whole window. Both classify read errors the same way: codes in
``absent_codes`` mean "the object is gone" and become the ``ABSENT``
observation, anything else ends the wait immediately.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ilm_suite.common.exceptions import (
    FlappingStateError,
    PollTimeoutError,
    SteadyStateViolationError,
    UnexpectedPollError,
)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404", "NoSuchVersion"})


class _Absent:
    """Observation produced when a read reports the object or version as missing."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def is_absent(observation: Any) -> bool:
    """Condition: the read reported not-found."""
    return observation is ABSENT


def is_present(observation: Any) -> bool:
    """Condition: the read returned the object."""
    return observation is not ABSENT


@dataclass(frozen=True)
class PollPolicy:
    """
    Bounds of a poll loop.

    ``timeout`` caps wall-clock seconds, ``max_attempts`` caps reads; when both
    are set the first one reached ends the loop. ``confirm_reads`` extra reads
    must agree once the awaited state has been seen.
    """

    interval: float = 1.0
    timeout: Optional[float] = None
    max_attempts: Optional[int] = None
    initial_delay: float = 0.0
    confirm_reads: int = 1

    def __post_init__(self):
        if self.timeout is None and self.max_attempts is None:
            raise ValueError("PollPolicy needs a timeout or max_attempts bound")
        if self.interval < 0 or self.initial_delay < 0:
            raise ValueError("PollPolicy delays must not be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.confirm_reads < 0:
            raise ValueError("confirm_reads must not be negative")

    @classmethod
    def from_config(cls, config) -> "PollPolicy":
        """Policy for waiting on a lifecycle action, bounded by the max scanner wait."""
        return cls(interval=config.poll_interval_seconds, timeout=float(config.max_scanner_wait_seconds))

    @classmethod
    def steady_from_config(cls, config) -> "PollPolicy":
        """Policy for negative checks, which always span the full steady-state window."""
        return cls(interval=config.poll_interval_seconds, timeout=float(config.steady_state_seconds))

    def exhausted(self, attempts: int, elapsed: float) -> bool:
        """True when either configured bound has been reached."""
        if self.max_attempts is not None and attempts >= self.max_attempts:
            return True
        return self.timeout is not None and elapsed >= self.timeout


class Poller:
    """Runs poll loops with an injectable sleep and clock."""

    def __init__(self, sleep: Callable[[float], None] = time.sleep, clock: Callable[[], float] = time.monotonic):
        self.sleep = sleep
        self.clock = clock

    @staticmethod
    def _observe(read: Callable[[], Any], description: str, absent_codes: frozenset) -> Any:
        try:
            return read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in absent_codes:
                return ABSENT
            raise UnexpectedPollError(description, exc) from exc
        except BotoCoreError as exc:
            raise UnexpectedPollError(description, exc) from exc

    def until(
        self,
        read: Callable[[], Any],
        condition: Callable[[Any], bool],
        policy: PollPolicy,
        description: str,
        absent_codes: frozenset = NOT_FOUND_CODES,
    ) -> Any:
        """
        Re-read until ``condition`` holds and return the satisfying observation.

        The first read happens right away (after ``initial_delay``) since some
        servers evaluate lifecycle rules lazily on access.

        Raises:
            PollTimeoutError: If the bound is exhausted first
            UnexpectedPollError: If a read fails with a code outside ``absent_codes``
            FlappingStateError: If a confirmation read disagrees
        """
        start = self.clock()
        if policy.initial_delay:
            self.sleep(policy.initial_delay)
        attempts = 0
        while True:
            observation = self._observe(read, description, absent_codes)
            attempts += 1
            if condition(observation):
                logging.debug("Observed %s after %d read(s)", description, attempts)
                for _ in range(policy.confirm_reads):
                    if not condition(self._observe(read, description, absent_codes)):
                        raise FlappingStateError(description)
                return observation
            elapsed = self.clock() - start
            if policy.exhausted(attempts, elapsed):
                raise PollTimeoutError(description, attempts, elapsed)
            self.sleep(policy.interval)

    def steady(
        self,
        read: Callable[[], Any],
        condition: Callable[[Any], bool],
        policy: PollPolicy,
        description: str,
        absent_codes: frozenset = NOT_FOUND_CODES,
    ) -> Any:
        """
        Assert ``condition`` on every read until the bound is exhausted.

        Returns the last observation. A negative result is only declared after
        the full window so a slow scanner cannot make it pass by accident.

        Raises:
            SteadyStateViolationError: If any read breaks the condition
            UnexpectedPollError: If a read fails with a code outside ``absent_codes``
        """
        start = self.clock()
        if policy.initial_delay:
            self.sleep(policy.initial_delay)
        attempts = 0
        while True:
            observation = self._observe(read, description, absent_codes)
            attempts += 1
            elapsed = self.clock() - start
            if not condition(observation):
                raise SteadyStateViolationError(description, elapsed)
            if policy.exhausted(attempts, elapsed):
                logging.debug("%s held for %d read(s) over %.1fs", description, attempts, elapsed)
                return observation
            self.sleep(policy.interval)


__all__ = [
    "ABSENT",
    "NOT_FOUND_CODES",
    "PollPolicy",
    "Poller",
    "is_absent",
    "is_present",
]
