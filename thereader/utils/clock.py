"""Time helpers shared by models and services."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    Timestamps are stored naive-in-UTC so PostgreSQL ``timestamp`` columns and
    SQLite round-trip the same values.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
