"""
Structured result reporting.

Every scenario produces exactly one JSON record on stdout with the fields
``name``, ``function``, ``args``, ``duration`` (milliseconds) and ``status``.
Failures add ``alert``, ``message`` and ``error``; not-applicable results add
an ``alert`` naming the missing capability.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

RESULT_LOGGER_NAME = "ilm_suite.results"


class Status(str, Enum):
    """Outcome of a single scenario execution."""

    PASS = "PASS"
    FAIL = "FAIL"
    NA = "NA"


@dataclass
class TestResult:
    """One scenario outcome as it is written to the result stream."""

    __test__ = False  # not a pytest test class

    suite: str
    function: str
    args: dict[str, Any]
    duration_ms: int
    status: Status
    alert: str = ""
    message: str = ""
    error: Optional[BaseException] = None

    def to_record(self) -> dict[str, Any]:
        """Return the JSON-serializable record for the result stream."""
        record: dict[str, Any] = {
            "name": self.suite,
            "function": self.function,
            "args": self.args,
            "duration": self.duration_ms,
            "status": self.status.value,
        }
        if self.status is Status.FAIL:
            record["alert"] = self.alert
            record["message"] = self.message
            if self.error is not None:
                record["error"] = str(self.error)
        elif self.status is Status.NA:
            record["alert"] = self.alert
        return record


class JsonFormatter(logging.Formatter):
    """Render result records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload = getattr(record, "result", None)
        if payload is None:
            payload = {"level": record.levelname, "message": record.getMessage()}
        return json.dumps(payload, default=str, sort_keys=False)


def elapsed_ms(start_time: float, now: Optional[float] = None) -> int:
    """Milliseconds elapsed since ``start_time`` (a ``time.time()`` value)."""
    current = time.time() if now is None else now
    return max(0, int((current - start_time) * 1000))


def setup_result_logger(stream=None) -> logging.Logger:
    """Attach a JSON stdout handler to the result logger, replacing previous handlers."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger(RESULT_LOGGER_NAME)
    logger.handlers[:] = [handler]
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


@dataclass
class ResultReporter:
    """
    Emits result records and keeps them for the end-of-run summary.

    Reporting is called from cleanup worker threads as well as the main flow.
    """

    suite: str = "ilm"
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(RESULT_LOGGER_NAME))
    results: list[TestResult] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def report(self, result: TestResult) -> TestResult:
        """Record ``result`` and emit it on the result stream."""
        with self._lock:
            self.results.append(result)
        level = logging.ERROR if result.status is Status.FAIL else logging.INFO
        self.logger.log(level, "%s %s", result.function, result.status.value, extra={"result": result.to_record()})
        return result

    def success(self, function: str, args: dict[str, Any], start_time: float, suite: Optional[str] = None) -> TestResult:
        """Report a passing scenario."""
        return self.report(TestResult(suite or self.suite, function, args, elapsed_ms(start_time), Status.PASS))

    def failure(
        self,
        function: str,
        args: dict[str, Any],
        start_time: float,
        message: str,
        error: Optional[BaseException] = None,
        alert: str = "",
        suite: Optional[str] = None,
    ) -> TestResult:
        """Report a failed scenario with its message and optional cause."""
        result = TestResult(
            suite or self.suite,
            function,
            args,
            elapsed_ms(start_time),
            Status.FAIL,
            alert=alert,
            message=message,
            error=error,
        )
        return self.report(result)

    def not_applicable(self, function: str, args: dict[str, Any], start_time: float, alert: str, suite: Optional[str] = None) -> TestResult:
        """Report a scenario skipped because the server lacks a capability."""
        result = TestResult(suite or self.suite, function, args, elapsed_ms(start_time), Status.NA, alert=alert)
        return self.report(result)

    def counts(self) -> dict[Status, int]:
        """Return the number of results per status."""
        with self._lock:
            snapshot = list(self.results)
        tally = {status: 0 for status in Status}
        for result in snapshot:
            tally[result.status] += 1
        return tally


__all__ = [
    "RESULT_LOGGER_NAME",
    "Status",
    "TestResult",
    "JsonFormatter",
    "ResultReporter",
    "elapsed_ms",
    "setup_result_logger",
]
