"""Rate limiting dependencies for FastAPI routes.

Each named policy (``login``, ``register``, ``api_general``, ``upload``,
``compare``) owns its own fixed-window limiter. Routes opt in with
``Depends(rate_limit("upload"))``.

Requests are identified by client IP (first ``X-Forwarded-For`` hop, then
``X-Real-IP``, then the socket peer) plus a short hash of the User-Agent and
the policy name.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Awaitable, Callable

from fastapi import HTTPException, Request, status

from companion.adapters.rate_limit.base import AbstractRateLimiter
from companion.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from companion.core.config import settings

logger = logging.getLogger(__name__)

POLICIES = ("login", "register", "api_general", "upload", "compare")

_limiters: dict[str, AbstractRateLimiter] = {}
_limiter_configs: dict[str, tuple[int, int]] = {}


def get_rate_limiter(policy: str) -> AbstractRateLimiter:
    """Return the process-wide limiter for ``policy``.

    The instance is cached to preserve state across requests and rebuilt
    when the policy's configuration changes (primarily in tests).

    Raises:
        KeyError: If the policy is unknown.
    """
    if policy not in POLICIES:
        raise KeyError(policy)

    config = settings.app.rate_limit_policy(policy)
    if policy not in _limiters or _limiter_configs.get(policy) != config:
        requests, window_seconds = config
        _limiters[policy] = InMemoryFixedWindowRateLimiter(
            limit=requests,
            window_seconds=window_seconds,
        )
        _limiter_configs[policy] = config

    return _limiters[policy]


def reset_rate_limiters() -> None:
    """Drop every limiter and its counters."""
    _limiters.clear()
    _limiter_configs.clear()


def get_rate_limit_stats() -> dict[str, Any]:
    """Per-policy snapshot of tracked identifiers."""
    return {policy: limiter.stats() for policy, limiter in _limiters.items()}


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def build_request_identifier(request: Request, suffix: str | None = None) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        suffix: Optional namespace, usually the policy name.

    Returns:
        str: ``"{ip}:{ua_hash}"`` or ``"{ip}:{ua_hash}:{suffix}"``.
    """
    user_agent = request.headers.get("user-agent") or "unknown"
    ua_hash = hashlib.sha256(user_agent.encode()).hexdigest()[:8]
    identifier = f"{get_client_ip(request)}:{ua_hash}"
    return f"{identifier}:{suffix}" if suffix else identifier


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client IPs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def format_wait(seconds: int) -> str:
    """Render a wait time for humans, e.g. ``"1 minute and 5 seconds"``."""
    minutes, secs = divmod(max(0, seconds), 60)
    parts = []
    if minutes:
        parts.append(f"{minutes} minute{'s' if minutes > 1 else ''}")
    if secs or not minutes:
        parts.append(f"{secs} second{'s' if secs != 1 else ''}")
    return " and ".join(parts)


def rate_limit(policy: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``policy``.

    Raises:
        KeyError: If the policy is unknown (at wiring time).
    """
    if policy not in POLICIES:
        raise KeyError(policy)

    async def enforce_rate_limit(request: Request) -> None:
        """Consume one unit; raise HTTP 429 once the window is exhausted."""

        if not settings.app.rate_limit_enabled:
            return

        limiter = get_rate_limiter(policy)
        key = build_request_identifier(request, policy)
        key_hash = _hash_limiter_key(key)

        result = limiter.consume(key)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "policy": policy,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            return

        retry_after = result.retry_after_seconds or 0
        wait = format_wait(retry_after)
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": policy,
                "key_hash": key_hash,
                "limit": result.limit,
                "retry_after_s": retry_after,
            },
        )

        headers: dict[str, str] = {}
        if settings.app.rate_limit_include_headers:
            headers["Retry-After"] = str(retry_after)
            headers["X-RateLimit-Limit"] = str(result.limit)
            headers["X-RateLimit-Remaining"] = "0"
            headers["X-RateLimit-Reset"] = str(result.reset_at)

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "rate_limit_exceeded",
                "message": f"Too many attempts. Please wait {wait} before trying again.",
                "retry_after": retry_after,
                "retry_after_formatted": wait,
            },
            headers=headers or None,
        )

    return enforce_rate_limit
