"""Shared pytest fixtures for test files."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ilm_suite.cleanup import CleanupCoordinator
from ilm_suite.common.config import SuiteConfig
from ilm_suite.common.naming import BucketNameGenerator
from ilm_suite.common.results import ResultReporter
from ilm_suite.common.waiter_utils import Poller
from ilm_suite.runner import ScenarioContext
from tests.fake_s3 import FakeS3

SUITE_ENV_VARS = (
    "SERVER_ENDPOINT",
    "ACCESS_KEY",
    "SECRET_KEY",
    "ENABLE_HTTPS",
    "SERVER_REGION",
    "REMOTE_TIER_NAME",
    "MAX_SCANNER_WAIT_SECONDS",
    "POLL_INTERVAL_SECONDS",
    "STEADY_STATE_SECONDS",
    "CLEANUP_TIMEOUT_SECONDS",
    "CLEANUP_RETRY_SECONDS",
)

TIER_NAME = "WARM-TIER"


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


@pytest.fixture(autouse=True)
def stub_boto3_client(monkeypatch):
    """Replace boto3.client with a stub so tests don't call a real server."""
    created = []

    def fake_client(service_name, **kwargs):
        client = MagicMock(name=f"{service_name}-client")
        client.service_name = service_name
        client.client_kwargs = kwargs
        created.append(client)
        return client

    monkeypatch.setattr("boto3.client", fake_client)
    return created


@pytest.fixture(autouse=True)
def isolated_suite_env(tmp_path, monkeypatch):
    """Clear suite variables and point ILM_ENV_FILE at an empty file."""
    for name in SUITE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    env_file = tmp_path / "empty.env"
    env_file.write_text("")
    monkeypatch.setenv("ILM_ENV_FILE", str(env_file))
    monkeypatch.chdir(tmp_path)
    return env_file


@pytest.fixture(name="suite_config")
def fixture_suite_config():
    """Configuration with short waits and a remote tier."""
    return SuiteConfig(
        endpoint="localhost:9000",
        access_key="minioadmin",
        secret_key="minioadmin",
        remote_tier_name=TIER_NAME,
        max_scanner_wait_seconds=10,
        poll_interval_seconds=1.0,
        steady_state_seconds=5,
        cleanup_timeout_seconds=20,
        cleanup_retry_seconds=1.0,
    )


@pytest.fixture(name="fake_clock")
def fixture_fake_clock():
    return FakeClock()


@pytest.fixture(name="fake_s3")
def fixture_fake_s3():
    return FakeS3()


@pytest.fixture(name="reporter")
def fixture_reporter():
    return ResultReporter()


@pytest.fixture(name="cleanup")
def fixture_cleanup(fake_s3, reporter):
    """Cleanup coordinator over the fake server; joined at teardown."""
    clock = FakeClock()
    coordinator = CleanupCoordinator(fake_s3, reporter, timeout=3, retry_delay=1, sleep=clock.sleep, clock=clock.now)
    yield coordinator
    coordinator.wait()


@pytest.fixture(name="ctx")
def fixture_ctx(fake_s3, suite_config, reporter, cleanup, fake_clock):
    """Scenario context wired to the fake server and a fake clock."""
    return ScenarioContext(
        s3=fake_s3,
        config=suite_config,
        reporter=reporter,
        cleanup=cleanup,
        names=BucketNameGenerator(seed=7),
        poller=Poller(sleep=fake_clock.sleep, clock=fake_clock.now),
    )
