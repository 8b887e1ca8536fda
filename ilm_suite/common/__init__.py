"""Shared helpers for the ILM conformance suite."""
