"""Collision-free bucket names for test runs."""

from __future__ import annotations

import random
import string
import threading
from typing import Optional

BUCKET_NAME_LENGTH = 30
BUCKET_NAME_ALPHABET = string.ascii_lowercase + string.digits

ILM_BUCKET_PREFIX = "ilm-test-"
VERSIONING_BUCKET_PREFIX = "versioning-test-"


class BucketNameGenerator:
    """
    Thread-safe generator of random bucket names.

    Cleanup workers and the main flow may ask for names at the same time, so
    the shared random source is guarded by a lock.
    """

    def __init__(self, seed: Optional[int] = None, length: int = BUCKET_NAME_LENGTH):
        if length < 3 or length > 63:
            raise ValueError(f"Bucket names must be 3-63 characters, got {length}")
        self._random = random.Random(seed)
        self._lock = threading.Lock()
        self.length = length

    def unique(self, prefix: str = ILM_BUCKET_PREFIX) -> str:
        """Return ``prefix`` padded with random characters up to the configured length."""
        suffix_length = self.length - len(prefix)
        if suffix_length < 1:
            raise ValueError(f"Prefix {prefix!r} leaves no room for a random suffix")
        with self._lock:
            suffix = "".join(self._random.choice(BUCKET_NAME_ALPHABET) for _ in range(suffix_length))
        return prefix + suffix
