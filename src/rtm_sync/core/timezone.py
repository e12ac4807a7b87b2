"""UTC timezone enforcement.

Sets the TZ environment variable to UTC and provides the naive-UTC
timestamps stored in every table (columns are TIMESTAMP WITHOUT TIME ZONE).
"""

import os
from datetime import UTC, datetime

# Set UTC timezone for the entire daemon
os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


def from_block_time(unix_seconds: int | float) -> datetime:
    """Convert a block header ``time`` (unix seconds) to naive UTC."""
    return datetime.fromtimestamp(unix_seconds, UTC).replace(tzinfo=None)
