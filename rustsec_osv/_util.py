"""
Utility functions for `rustsec-osv`.
"""

from datetime import datetime, timezone
from typing import NoReturn  # pragma: no cover


def assert_never(x: NoReturn) -> NoReturn:  # pragma: no cover
    """
    A hint to the typechecker that a branch can never occur.
    """
    assert False, f"unhandled type: {type(x).__name__}"


def rfc3339(dt: datetime) -> str:
    """
    Render a `datetime` as an RFC 3339 UTC timestamp with a `Z` suffix.

    Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")
