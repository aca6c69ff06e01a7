"""Tracking-key extraction from incoming requests."""

from __future__ import annotations

from starlette.requests import Request

UNKNOWN = "Unknown"


def extract_client_ip(request: Request) -> str:
    """
    Return the best-known client IP for a request.

    Resolution order:
    1. `CF-Connecting-IP` (set by the CDN edge)
    2. First hop of `X-Forwarded-For`
    3. The transport peer address, then a `Remote-Addr` header when there is no peer
    4. `"Unknown"`
    """

    headers = request.headers
    connecting_ip = headers.get("cf-connecting-ip")
    if connecting_ip and connecting_ip.strip():
        return connecting_ip.strip()

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host
    remote_addr = headers.get("remote-addr")
    if remote_addr:
        return remote_addr
    return UNKNOWN


def extract_user_agent(request: Request) -> str:
    return request.headers.get("user-agent", UNKNOWN)
