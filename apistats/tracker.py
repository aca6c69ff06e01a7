"""Per-day request counters and the middleware that feeds them."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from apistats.buckets import (
    DEFAULT_EXPIRY_DAYS,
    DEFAULT_KEY_PREFIX,
    MetricKind,
    bucket_key,
    expiry_seconds,
)
from apistats.classifier import PathFilter, RequestClassifier
from apistats.extractors import extract_client_ip, extract_user_agent
from apistats.store import StatsStore, StoreError

KeyExtractor = Callable[[Request], str]

tracker_logger = logging.getLogger("apistats.tracker")


class RequestCounter:
    """Increment today's bucket for the tracking key of each in-scope request."""

    def __init__(
        self,
        *,
        name: str,
        kind: MetricKind,
        extract_key: KeyExtractor,
        store: StatsStore | None,
        path_filter: PathFilter | RequestClassifier | None = None,
        logger: logging.Logger | None = None,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        today: Callable[[], date] = date.today,
    ) -> None:
        if expiry_days < 1:
            raise ValueError("expiry_days must be >= 1")
        self.name = name
        self.kind = kind
        self._extract_key = extract_key
        self._store = store
        if isinstance(path_filter, RequestClassifier):
            self._classifier = path_filter
        else:
            self._classifier = RequestClassifier(path_filter)
        self._logger = logger or tracker_logger
        self._expiry_seconds = expiry_seconds(expiry_days)
        self._key_prefix = key_prefix
        self._today = today

    def should_track(self, request: Request) -> bool:
        return self._classifier.classify(request.url.path)

    def bucket_key_for(self, day: date) -> str:
        return bucket_key(self._key_prefix, self.kind, day)

    async def track(self, request: Request) -> bool:
        """Record one hit; return True only when both store writes succeeded."""

        if self._store is None or not self.should_track(request):
            return False

        tracking_key = self._extract_key(request)
        day_key = self.bucket_key_for(self._today())
        try:
            await self._store.zincrby(day_key, 1, tracking_key)
            await self._store.expire(day_key, self._expiry_seconds)
        except Exception as exc:
            error = exc if isinstance(exc, StoreError) else StoreError(str(exc))
            self._logger.error("%s error: %s", self.name, error)
            return False
        return True

    async def handle(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        await self.track(request)
        return await call_next(request)


def ip_counter(
    *,
    store: StatsStore | None,
    path_filter: PathFilter | RequestClassifier | None = None,
    logger: logging.Logger | None = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    today: Callable[[], date] = date.today,
) -> RequestCounter:
    return RequestCounter(
        name="IpTracker",
        kind=MetricKind.IP,
        extract_key=extract_client_ip,
        store=store,
        path_filter=path_filter,
        logger=logger,
        expiry_days=expiry_days,
        key_prefix=key_prefix,
        today=today,
    )


def user_agent_counter(
    *,
    store: StatsStore | None,
    path_filter: PathFilter | RequestClassifier | None = None,
    logger: logging.Logger | None = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    today: Callable[[], date] = date.today,
) -> RequestCounter:
    return RequestCounter(
        name="UserAgentTracker",
        kind=MetricKind.USER_AGENT,
        extract_key=extract_user_agent,
        store=store,
        path_filter=path_filter,
        logger=logger,
        expiry_days=expiry_days,
        key_prefix=key_prefix,
        today=today,
    )


class StatsTrackingMiddleware(BaseHTTPMiddleware):
    """Starlette middleware running one `RequestCounter` ahead of the app."""

    def __init__(self, app: ASGIApp, *, counter: RequestCounter) -> None:
        super().__init__(app)
        self.counter = counter

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        return await self.counter.handle(request, call_next)
