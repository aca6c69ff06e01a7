#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio

from apistats.buckets import DEFAULT_KEY_PREFIX
from apistats.config import get_settings
from apistats.reporter import StatsReporter
from apistats.store import RedisStatsStore


def parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Print tracked API usage statistics.")
    parser.add_argument(
        "--redis-url",
        default=settings.redis_url,
        help="Redis URL holding the daily buckets (default: REDIS_URL).",
    )
    parser.add_argument("--days", type=int, default=settings.stats_report_days)
    parser.add_argument("--limit", type=int, default=settings.stats_report_limit)
    parser.add_argument(
        "--socket-timeout",
        type=float,
        default=settings.redis_socket_timeout_seconds,
        help="Redis socket timeout in seconds (default: REDIS_SOCKET_TIMEOUT_SECONDS).",
    )
    parser.add_argument(
        "--prefix",
        default=settings.stats_key_prefix or DEFAULT_KEY_PREFIX,
        help="Bucket key prefix.",
    )
    return parser.parse_args()


async def run(
    redis_url: str,
    days: int,
    limit: int,
    prefix: str,
    socket_timeout: float | None = None,
) -> None:
    store = RedisStatsStore(redis_url=redis_url, socket_timeout=socket_timeout, prefix=prefix)
    try:
        reporter = StatsReporter(store, key_prefix=prefix)
        await reporter.display_summary(days=days, limit=limit)
    finally:
        await store.close()


def main() -> int:
    args = parse_args()
    if not args.redis_url:
        print("A Redis URL is required (--redis-url or REDIS_URL).")
        return 2
    asyncio.run(
        run(
            args.redis_url,
            args.days,
            args.limit,
            args.prefix,
            socket_timeout=args.socket_timeout,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
