"""
Configuration for the ILM conformance suite.

Values come from the process environment, optionally seeded from a ``.env``
file. The file is resolved in this order:
  1. Explicit path (``--env-file``)
  2. ILM_ENV_FILE environment variable
  3. ./.env in the working directory
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from ilm_suite.common.exceptions import MissingConfigurationError

DEFAULT_REGION: str = "us-east-1"
DEFAULT_MAX_SCANNER_WAIT_SECONDS: int = 120
DEFAULT_POLL_INTERVAL_SECONDS: float = 1.0
DEFAULT_CLEANUP_TIMEOUT_SECONDS: int = 8 * 60
DEFAULT_CLEANUP_RETRY_SECONDS: float = 5.0


@dataclass(frozen=True)
class SuiteConfig:  # pylint: disable=too-many-instance-attributes
    """Connection settings and timing bounds for a suite run."""

    endpoint: str
    access_key: str
    secret_key: str
    secure: bool = False
    region: str = DEFAULT_REGION
    remote_tier_name: str = ""
    max_scanner_wait_seconds: int = DEFAULT_MAX_SCANNER_WAIT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    steady_state_seconds: int = DEFAULT_MAX_SCANNER_WAIT_SECONDS
    cleanup_timeout_seconds: int = DEFAULT_CLEANUP_TIMEOUT_SECONDS
    cleanup_retry_seconds: float = DEFAULT_CLEANUP_RETRY_SECONDS

    @property
    def endpoint_url(self) -> str:
        """Endpoint with scheme, as boto3 expects it."""
        if self.endpoint.startswith(("http://", "https://")):
            return self.endpoint
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}"

    @property
    def tiering_enabled(self) -> bool:
        """Transition and restore scenarios run only when a remote tier is named."""
        return bool(self.remote_tier_name)


def resolve_env_path(env_path: Optional[str] = None) -> str:
    """Determine which .env file should seed the configuration."""
    if env_path:
        return env_path
    ilm_env_file = os.environ.get("ILM_ENV_FILE")
    if ilm_env_file:
        return ilm_env_file
    return str(Path.cwd() / ".env")


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logging.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logging.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def _positive_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logging.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logging.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def config_from_mapping(environ: Mapping[str, str]) -> SuiteConfig:
    """
    Build a SuiteConfig from environment-style key/value pairs.

    Args:
        environ: Mapping holding SERVER_ENDPOINT, ACCESS_KEY, SECRET_KEY and the
                 optional tuning variables

    Returns:
        SuiteConfig: Parsed configuration

    Raises:
        MissingConfigurationError: If the endpoint or credentials are missing
    """
    required = ("SERVER_ENDPOINT", "ACCESS_KEY", "SECRET_KEY")
    missing = [name for name in required if not environ.get(name)]
    if missing:
        raise MissingConfigurationError(missing)

    max_wait = _positive_int(environ, "MAX_SCANNER_WAIT_SECONDS", DEFAULT_MAX_SCANNER_WAIT_SECONDS)
    return SuiteConfig(
        endpoint=environ["SERVER_ENDPOINT"],
        access_key=environ["ACCESS_KEY"],
        secret_key=environ["SECRET_KEY"],
        secure=environ.get("ENABLE_HTTPS", "") == "1",
        region=environ.get("SERVER_REGION") or DEFAULT_REGION,
        remote_tier_name=environ.get("REMOTE_TIER_NAME", ""),
        max_scanner_wait_seconds=max_wait,
        poll_interval_seconds=_positive_float(environ, "POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        steady_state_seconds=_positive_int(environ, "STEADY_STATE_SECONDS", max_wait),
        cleanup_timeout_seconds=_positive_int(environ, "CLEANUP_TIMEOUT_SECONDS", DEFAULT_CLEANUP_TIMEOUT_SECONDS),
        cleanup_retry_seconds=_positive_float(environ, "CLEANUP_RETRY_SECONDS", DEFAULT_CLEANUP_RETRY_SECONDS),
    )


def load_config(env_path: Optional[str] = None) -> SuiteConfig:
    """
    Load the suite configuration from the environment and an optional .env file.

    Variables already present in the environment win over the file.
    """
    resolved_path = resolve_env_path(env_path)
    if load_dotenv(resolved_path):
        logging.info("Configuration loaded from %s", resolved_path)
    return config_from_mapping(os.environ)


__all__ = [
    "DEFAULT_MAX_SCANNER_WAIT_SECONDS",
    "SuiteConfig",
    "config_from_mapping",
    "load_config",
    "resolve_env_path",
]
