from __future__ import annotations

from datetime import datetime, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z.

    Microseconds are always present so the strings keep a fixed width and sort
    lexicographically in time order (rows created within the same second still
    order correctly).
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
