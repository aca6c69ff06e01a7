"""FastAPI entrypoint for the request statistics service."""

import hmac
import logging
import sys
from time import monotonic
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from redis.exceptions import RedisError

from apistats.classifier import RequestClassifier
from apistats.config import get_settings
from apistats.reporter import StatsReporter, StatsSummary, rank_counts, render_summary
from apistats.store import StoreError, create_stats_store
from apistats.tracker import StatsTrackingMiddleware, ip_counter, user_agent_counter

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
app = FastAPI(title=settings.app_name, version=settings.app_version)
started_at_monotonic = monotonic()
store_logger = logging.getLogger("apistats.store")
tracker_logger = logging.getLogger("apistats.tracker")
request_logger = logging.getLogger("apistats.request")
stats_store, stats_store_is_shared = create_stats_store(
    backend=settings.stats_backend,
    redis_url=settings.redis_url,
    socket_timeout=settings.redis_socket_timeout_seconds,
    prefix=settings.stats_key_prefix,
    logger=store_logger,
)
if settings.environment.lower() not in {"development", "test"} and not stats_store_is_shared:
    raise RuntimeError(
        "A shared stats store is required outside development/test. "
        "Configure REDIS_URL or STATS_BACKEND=redis."
    )
request_classifier = RequestClassifier(prefix=settings.stats_path_prefix)
stats_reporter = StatsReporter(stats_store, key_prefix=settings.stats_key_prefix)

app.add_middleware(
    StatsTrackingMiddleware,
    counter=user_agent_counter(
        store=stats_store,
        path_filter=request_classifier,
        logger=tracker_logger,
        expiry_days=settings.stats_expiry_days,
        key_prefix=settings.stats_key_prefix,
    ),
)
app.add_middleware(
    StatsTrackingMiddleware,
    counter=ip_counter(
        store=stats_store,
        path_filter=request_classifier,
        logger=tracker_logger,
        expiry_days=settings.stats_expiry_days,
        key_prefix=settings.stats_key_prefix,
    ),
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next: Any) -> Response:
    started = monotonic()
    path = request.url.path
    method = request.method.upper()
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = int((monotonic() - started) * 1000)
        request_logger.exception(
            "request method=%s path=%s status=%s latency_ms=%s",
            method,
            path,
            500,
            latency_ms,
        )
        raise

    latency_ms = int((monotonic() - started) * 1000)
    request_logger.info(
        "request method=%s path=%s status=%s latency_ms=%s",
        method,
        path,
        response.status_code,
        latency_ms,
    )
    return response


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await stats_store.close()


def _require_admin_token(admin_token: str | None) -> None:
    if settings.admin_api_token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Endpoint not configured")
    if not hmac.compare_digest(admin_token or "", settings.admin_api_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


async def _load_summary(days: int) -> StatsSummary:
    try:
        return await stats_reporter.summary(days=days)
    except (StoreError, RedisError) as exc:
        store_logger.error("stats_summary_failed error=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stats store unavailable",
        ) from exc


@app.get("/api/v1", tags=["meta"])
async def api_root() -> dict[str, Any]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "ok",
        "uptime_seconds": int(monotonic() - started_at_monotonic),
        "shared_store": stats_store_is_shared,
    }


@app.get("/api/v1/stats", tags=["stats"])
async def get_stats(
    days: int | None = Query(default=None, ge=1, le=366),
    limit: int | None = Query(default=None, ge=1, le=100),
    admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> dict[str, Any]:
    _require_admin_token(admin_token)
    summary = await _load_summary(days or settings.stats_report_days)
    payload = summary.to_dict()
    top = limit or settings.stats_report_limit
    payload["top_user_agents"] = [
        {"user_agent": agent, "count": count} for agent, count in rank_counts(summary.user_agents, top)
    ]
    payload["top_ips"] = [{"ip": ip, "count": count} for ip, count in rank_counts(summary.ips, top)]
    return payload


@app.get("/api/v1/stats/report", response_class=PlainTextResponse, tags=["stats"])
async def get_stats_report(
    days: int | None = Query(default=None, ge=1, le=366),
    limit: int | None = Query(default=None, ge=1, le=100),
    admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> str:
    _require_admin_token(admin_token)
    summary = await _load_summary(days or settings.stats_report_days)
    return render_summary(summary, limit=limit or settings.stats_report_limit)
