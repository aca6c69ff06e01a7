"""Daily bucket naming shared by the counters and the reporter."""

from __future__ import annotations

from datetime import date
from enum import Enum

DEFAULT_KEY_PREFIX = "api_requests"
DEFAULT_EXPIRY_DAYS = 31
SECONDS_PER_DAY = 24 * 60 * 60


class MetricKind(str, Enum):
    """What a daily bucket counts."""

    IP = "ip"
    USER_AGENT = "user_agent"


def bucket_key(prefix: str, kind: MetricKind, day: date) -> str:
    """
    Return the store key of one day's bucket.

    User-agent buckets live at `{prefix}:{YYYY-MM-DD}` and IP buckets at
    `{prefix}:ips:{YYYY-MM-DD}`; both formats are shared with existing data.
    """

    if kind is MetricKind.IP:
        return f"{prefix}:ips:{day.isoformat()}"
    return f"{prefix}:{day.isoformat()}"


def expiry_seconds(expiry_days: int) -> int:
    return expiry_days * SECONDS_PER_DAY
