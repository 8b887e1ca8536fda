"""Black-box conformance suite for S3 object lifecycle management (ILM)."""

__version__ = "0.1.0"
