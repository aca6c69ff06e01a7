"""Multi-day aggregation and plain-text reporting of tracked requests."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, TextIO

from apistats.buckets import DEFAULT_KEY_PREFIX, MetricKind, bucket_key
from apistats.store import StatsStore

BANNER_WIDTH = 80
SECTION_RULE_WIDTH = 40
MAX_KEY_DISPLAY_LENGTH = 50
TRUNCATED_KEY_LENGTH = 47
ELLIPSIS = "..."
DEFAULT_MAX_CONCURRENT_READS = 8


@dataclass(slots=True)
class StatsSummary:
    """Merged per-key counts over a trailing window of days."""

    user_agents: dict[str, int] = field(default_factory=dict)
    ips: dict[str, int] = field(default_factory=dict)
    days: int = 0

    @property
    def total_requests(self) -> int:
        return sum(self.user_agents.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "days": self.days,
            "user_agents": dict(self.user_agents),
            "ips": dict(self.ips),
            "totals": {
                "unique_user_agents": len(self.user_agents),
                "unique_ips": len(self.ips),
                "requests": self.total_requests,
            },
        }


class StatsReporter:
    """Read daily buckets from the store and merge them into a summary."""

    def __init__(
        self,
        store: StatsStore,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        today: Callable[[], date] = date.today,
        max_concurrent_reads: int = DEFAULT_MAX_CONCURRENT_READS,
    ) -> None:
        if max_concurrent_reads < 1:
            raise ValueError("max_concurrent_reads must be >= 1")
        self._store = store
        self._key_prefix = key_prefix
        self._today = today
        self._max_concurrent_reads = max_concurrent_reads

    async def _read_bucket(self, key: str, limiter: asyncio.Semaphore) -> list[tuple[str, float]]:
        async with limiter:
            if not await self._store.exists(key):
                return []
            return await self._store.zrevrange(key, 0, -1, withscores=True)

    async def summary(self, days: int = 30) -> StatsSummary:
        """
        Merge the last `days` daily buckets, today included.

        Missing buckets contribute nothing. Store errors propagate to the caller.
        At most `max_concurrent_reads` buckets are read at the same time.
        """

        result = StatsSummary(days=days)
        if days <= 0:
            return result

        start = self._today()
        dates = [start - timedelta(days=offset) for offset in range(days)]
        targets = [
            (kind, bucket_key(self._key_prefix, kind, day))
            for day in dates
            for kind in (MetricKind.USER_AGENT, MetricKind.IP)
        ]
        limiter = asyncio.Semaphore(self._max_concurrent_reads)
        buckets = await asyncio.gather(*(self._read_bucket(key, limiter) for _, key in targets))

        for (kind, _), entries in zip(targets, buckets):
            merged = result.user_agents if kind is MetricKind.USER_AGENT else result.ips
            for member, score in entries:
                merged[member] = merged.get(member, 0) + int(score)
        return result

    async def summary_report(self, days: int = 30, limit: int = 10) -> str:
        return render_summary(await self.summary(days=days), limit=limit)

    async def display_summary(
        self,
        days: int = 30,
        limit: int = 10,
        file: TextIO | None = None,
    ) -> None:
        print(await self.summary_report(days=days, limit=limit), file=file or sys.stdout)


def rank_counts(counts: dict[str, int], limit: int) -> list[tuple[str, int]]:
    """Top `limit` entries by count; equal counts are ordered by key."""

    if limit <= 0:
        return []
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]


def truncate_key(key: str) -> str:
    if len(key) > MAX_KEY_DISPLAY_LENGTH:
        return f"{key[:TRUNCATED_KEY_LENGTH]}{ELLIPSIS}"
    return key


def _format_row(index: int, label: str, count: int, width: int) -> str:
    return f"  {index:2d}. {label:<{width}} : {count:6d} requests"


def _format_user_agents(user_agents: dict[str, int], limit: int) -> list[str]:
    lines = ["", "Top User Agents:"]
    if not user_agents:
        lines.append("  No user agent data available")
        return lines

    ranked = rank_counts(user_agents, limit)
    width = min(max((len(agent) for agent, _ in ranked), default=0), MAX_KEY_DISPLAY_LENGTH)
    for index, (agent, count) in enumerate(ranked, start=1):
        lines.append(_format_row(index, truncate_key(agent), count, width))
    return lines


def _format_ips(ips: dict[str, int], limit: int) -> list[str]:
    lines = ["", "Top IP Addresses:"]
    if not ips:
        lines.append("  No IP data available")
        return lines

    ranked = [(truncate_key(ip), count) for ip, count in rank_counts(ips, limit)]
    width = max((len(label) for label, _ in ranked), default=0)
    for index, (label, count) in enumerate(ranked, start=1):
        lines.append(_format_row(index, label, count, width))
    return lines


def _format_totals(summary: StatsSummary) -> list[str]:
    return [
        "",
        "Summary:",
        f"  Total unique user agents: {len(summary.user_agents)}",
        f"  Total unique IPs: {len(summary.ips)}",
        f"  Total API requests: {summary.total_requests}",
    ]


def render_summary(summary: StatsSummary, limit: int = 10) -> str:
    """Render a summary as the fixed-layout plain-text report."""

    lines = [
        "=" * BANNER_WIDTH,
        "API Usage Statistics Summary",
        "=" * BANNER_WIDTH,
        f"Period: Past {summary.days} days",
        "-" * SECTION_RULE_WIDTH,
    ]
    lines.extend(_format_user_agents(summary.user_agents, limit))
    lines.extend(_format_ips(summary.ips, limit))
    lines.extend(_format_totals(summary))
    lines.append("=" * BANNER_WIDTH)
    return "\n".join(lines)
