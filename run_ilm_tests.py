#!/usr/bin/env python3
"""Run the ILM conformance suite against the server named in the environment."""

from ilm_suite.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
