"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from ilm_suite import cli
from ilm_suite.common.exceptions import ServerConnectionError
from tests.assertions import assert_equal
from tests.conftest import TIER_NAME
from tests.fake_s3 import FakeS3, client_error


@pytest.fixture(name="server_env")
def fixture_server_env(monkeypatch):
    """Minimal configuration with fast polling."""
    monkeypatch.setenv("SERVER_ENDPOINT", "localhost:9000")
    monkeypatch.setenv("ACCESS_KEY", "minioadmin")
    monkeypatch.setenv("SECRET_KEY", "minioadmin")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("MAX_SCANNER_WAIT_SECONDS", "1")


@pytest.fixture(name="server")
def fixture_server(monkeypatch, server_env):
    """Route the CLI's connection to an in-memory server."""
    s3 = FakeS3()
    monkeypatch.setattr(cli, "connect", lambda config: s3)
    return s3


def _records(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.env_file is None
    assert args.scenario is None
    assert args.max_scanner_wait is None
    assert not args.verbose


def test_parse_args_repeated_scenarios():
    args = cli.parse_args(["--scenario", "expiry", "--scenario", "restore", "--max-scanner-wait", "30"])
    assert_equal(args.scenario, ["expiry", "restore"])
    assert_equal(args.max_scanner_wait, 30)


def test_parse_args_rejects_unknown_scenario():
    with pytest.raises(SystemExit):
        cli.parse_args(["--scenario", "nonsense"])


def test_scenario_table_order():
    assert_equal(cli.SCENARIO_NAMES[0], "expiry")
    assert_equal(cli.SCENARIO_NAMES[-2:], ["locking_legalhold", "locking_legalhold_multipart"])
    assert_equal(len(set(cli.SCENARIO_NAMES)), len(cli.SCENARIOS))


def test_max_scanner_wait_override_bounds_both_windows(server_env):
    config = cli.load_config()
    updated = cli._apply_overrides(config, cli.parse_args(["--max-scanner-wait", "7"]))  # pylint: disable=protected-access

    assert_equal(updated.max_scanner_wait_seconds, 7)
    assert_equal(updated.steady_state_seconds, 7)
    assert cli._apply_overrides(config, cli.parse_args([])) is config  # pylint: disable=protected-access


def test_missing_configuration_is_fatal(capsys):
    """Without endpoint and credentials the run ends with a single FAIL record."""
    assert_equal(cli.run([]), 1)

    (record,) = _records(capsys)
    assert_equal(record["function"], "main")
    assert_equal(record["status"], "FAIL")
    assert "SERVER_ENDPOINT" in record["message"]


def test_unreachable_server_is_fatal(capsys, monkeypatch, server_env):
    def _refuse(config):
        raise ServerConnectionError(config.endpoint_url, ConnectionRefusedError("refused"))

    monkeypatch.setattr(cli, "connect", _refuse)

    assert_equal(cli.run([]), 1)
    (record,) = _records(capsys)
    assert "Unable to connect to http://localhost:9000" in record["message"]


def test_selected_scenario_passes(capsys, server):
    assert_equal(cli.run(["--scenario", "expire_current_version"]), 0)

    (record,) = _records(capsys)
    assert_equal(record["name"], "ilm")
    assert_equal(record["function"], "expire_current_version")
    assert_equal(record["status"], "PASS")
    assert "alert" not in record
    assert_equal(server.buckets, {})


def test_tiering_scenarios_are_not_applicable_without_tier(capsys, server):
    assert_equal(cli.run(["--scenario", "transition", "--scenario", "restore"]), 0)

    records = _records(capsys)
    assert_equal([r["function"] for r in records], ["transition", "restore"])
    assert_equal({r["status"] for r in records}, {"NA"})
    assert "REMOTE_TIER_NAME" in records[0]["alert"]


def test_tiering_scenario_runs_with_tier(capsys, monkeypatch, server):
    monkeypatch.setenv("REMOTE_TIER_NAME", TIER_NAME)

    assert_equal(cli.run(["--scenario", "restore"]), 0)
    (record,) = _records(capsys)
    assert_equal(record["status"], "PASS")


def test_lifecycle_not_implemented_skips_everything(capsys, server):
    server.not_implemented.add("lifecycle")

    assert_equal(cli.run([]), 0)
    (record,) = _records(capsys)
    assert_equal(record["function"], "main")
    assert_equal(record["status"], "NA")
    assert_equal(record["alert"], "PutLifecycleConfiguration is not implemented. Skipping all ILM tests.")


def test_versioning_not_implemented_marks_versioned_scenarios(capsys, server):
    server.not_implemented.add("versioning")

    cli.run(["--scenario", "expire_current_version", "--scenario", "expire_delete_markers"])

    records = _records(capsys)
    assert_equal([r["status"] for r in records], ["NA", "NA"])
    assert "PutBucketVersioning is not implemented" in records[1]["alert"]


def test_object_lock_not_implemented_marks_legalhold(capsys, server):
    server.not_implemented.add("object_lock")

    cli.run(["--scenario", "locking_legalhold"])

    (record,) = _records(capsys)
    assert_equal(record["name"], "versioning")
    assert_equal(record["status"], "NA")


def test_probe_errors_other_than_not_implemented_count_as_supported(capsys, monkeypatch, server):
    original = server.put_bucket_versioning
    calls = []

    def _flaky(**kwargs):
        if not calls:
            calls.append(kwargs)
            raise client_error("InternalError", "PutBucketVersioning")
        return original(**kwargs)

    monkeypatch.setattr(server, "put_bucket_versioning", _flaky)

    cli.run(["--scenario", "expire_current_version"])

    (record,) = _records(capsys)
    assert_equal(record["status"], "PASS")


def test_dropped_connection_during_probe_does_not_abort_the_run(capsys, monkeypatch, server):
    monkeypatch.setattr(
        server,
        "put_bucket_versioning",
        MagicMock(side_effect=EndpointConnectionError(endpoint_url="http://localhost:9000")),
    )

    assert_equal(cli.run(["--scenario", "expire_current_version"]), 0)

    (record,) = _records(capsys)
    assert_equal(record["function"], "expire_current_version")
    assert_equal(record["status"], "NA")
    assert_equal(server.buckets, {})
