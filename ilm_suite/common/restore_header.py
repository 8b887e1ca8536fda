"""Parsing of the ``x-amz-restore`` response header."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

_RESTORE_PATTERN = re.compile(r'ongoing-request="(.*?)"(?:,\s*expiry-date="(.*?)")?')


class RestoreHeaderError(ValueError):
    """Raised when a restore header cannot be interpreted."""

    def __init__(self, header: str, reason: str):
        super().__init__(f"Malformed restore header {header!r}: {reason}")
        self.header = header


@dataclass(frozen=True)
class RestoreStatus:
    """Decoded restore header."""

    ongoing: bool
    expiry: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        """True once the restored copy is available."""
        return not self.ongoing


def parse_restore_header(header: str) -> RestoreStatus:
    """
    Decode a header such as
    ``ongoing-request="false", expiry-date="Fri, 21 Dec 2012 00:00:00 GMT"``.

    Raises:
        RestoreHeaderError: If the ongoing-request flag or expiry date is unreadable
    """
    match = _RESTORE_PATTERN.search(header or "")
    if match is None:
        raise RestoreHeaderError(header, "no ongoing-request status")
    ongoing_raw, expiry_raw = match.group(1), match.group(2)
    if ongoing_raw not in ("true", "false"):
        raise RestoreHeaderError(header, f"ongoing-request must be true or false, got {ongoing_raw!r}")
    expiry = None
    if expiry_raw:
        try:
            expiry = parsedate_to_datetime(expiry_raw)
        except (TypeError, ValueError) as exc:
            raise RestoreHeaderError(header, f"unparsable expiry-date {expiry_raw!r}") from exc
        if expiry is None:
            raise RestoreHeaderError(header, f"unparsable expiry-date {expiry_raw!r}")
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
    return RestoreStatus(ongoing=ongoing_raw == "true", expiry=expiry)
