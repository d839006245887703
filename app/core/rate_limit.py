"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the history store (memory, JSON file, signed cookies) is
  selected by configuration behind an abstract interface.
- Availability first: store failures and bad client tokens degrade to empty
  history instead of failing the request.

Rate limiting strategy:
- Sliding-window quotas per client IP, one or more tiers evaluated in order.
- A request is admitted only if every tier admits it.
- Checking the tiers and recording the request is one atomic step
  (``RateLimiter.reserve``) under the store's per-client lock. The route
  releases the reservation when the request turns out not to count.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, Response, status

from app.adapters.rate_limit.base import (
    AbstractClientStateStore,
    ClientContext,
    QuotaTier,
    SignedToken,
)
from app.adapters.rate_limit.factory import create_client_state_store
from app.adapters.rate_limit.limiter import RateLimiter
from app.adapters.rate_limit.window import next_reset
from app.core.config import settings
from app.core.errors import ConfigurationAppError
from app.core.logging import hash_client_identity

logger = logging.getLogger(__name__)


_store: AbstractClientStateStore | None = None
_store_config: tuple | None = None


def parse_quota_tiers(tiers_string: str | None) -> list[QuotaTier]:
    """Parse comma-separated ``limit/period_seconds`` pairs.

    Args:
        tiers_string: Comma-separated tiers, e.g. ``"100/60,10000/86400"``.

    Returns:
        Tiers in the configured order.

    Raises:
        ConfigurationAppError: If the string is empty or malformed, or a
            tier has a non-positive limit or period.

    Examples:
        >>> parse_quota_tiers("100/60, 10000/86400")
        [QuotaTier(limit=100, period_seconds=60), QuotaTier(limit=10000, period_seconds=86400)]
    """
    tiers: list[QuotaTier] = []
    for chunk in (tiers_string or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue

        limit_text, sep, period_text = chunk.partition("/")
        try:
            if not sep:
                raise ValueError("missing '/' separator")
            limit, period = int(limit_text), int(period_text)
        except ValueError as exc:
            raise ConfigurationAppError(
                code="invalid_quota_tier",
                message=f"Invalid quota tier '{chunk}': expected limit/period_seconds",
                details={"setting": "tiers"},
            ) from exc

        tiers.append(QuotaTier(limit=limit, period_seconds=period))

    if not tiers:
        raise ConfigurationAppError(
            code="no_quota_tiers",
            message="At least one quota tier must be configured",
            details={"setting": "tiers"},
        )
    return tiers


def get_quota_tiers() -> list[QuotaTier]:
    """Return the configured tiers, checked against the retention horizon.

    Raises:
        ConfigurationAppError: If retention is shorter than the longest tier.
    """
    tiers = parse_quota_tiers(settings.rate_limit.tiers)
    longest = max(tier.period_seconds for tier in tiers)
    if settings.rate_limit.retention_seconds < longest:
        raise ConfigurationAppError(
            code="retention_too_short",
            message=(
                f"Retention of {settings.rate_limit.retention_seconds}s is shorter "
                f"than the longest quota period ({longest}s)"
            ),
            details={"setting": "retention_seconds"},
        )
    return tiers


def get_client_state_store() -> AbstractClientStateStore:
    """Return a process-wide history store instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the store is rebuilt.

    Returns:
        AbstractClientStateStore: Configured store instance.
    """

    global _store, _store_config

    cfg = settings.rate_limit
    config = (
        cfg.store,
        cfg.tiers,
        cfg.retention_seconds,
        cfg.data_file,
        cfg.secret,
    )

    if _store is None or _store_config != config:
        _store = create_client_state_store(cfg, get_quota_tiers())
        _store_config = config

    return _store


def get_clock() -> Callable[[], float]:
    """Time source for admission decisions (overridable in tests)."""
    return time.time


def validate_rate_limit_config() -> None:
    """Build tiers and store eagerly so bad configuration fails at startup.

    Raises:
        ConfigurationAppError: If the rate limit configuration is invalid.
    """
    if not settings.rate_limit.enabled:
        return
    tiers = get_quota_tiers()
    get_client_state_store()
    logger.info(
        "rate_limit.configured",
        extra={
            "store": settings.rate_limit.store,
            "tiers": [f"{t.limit}/{t.period_seconds}" for t in tiers],
            "retention_s": settings.rate_limit.retention_seconds,
        },
    )


def _client_identity(request: Request) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.

    Returns:
        str: Namespaced limiter key.
    """

    if settings.app.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _presented_token(request: Request) -> SignedToken | None:
    """Read the history token echoed back by the client, if any."""
    cfg = settings.rate_limit
    payload = request.cookies.get(cfg.history_cookie)
    signature = request.cookies.get(cfg.signature_cookie)
    if payload is None and signature is None:
        return None
    return SignedToken(payload=payload or "", signature=signature or "")


def build_client_context(request: Request) -> ClientContext:
    """Identity plus presented history token for the current request."""
    return ClientContext(identity=_client_identity(request), token=_presented_token(request))


def retry_after_seconds(tier: QuotaTier, now: int) -> int:
    """Seconds until the next period-aligned boundary."""
    return tier.period_seconds - (now % tier.period_seconds)


def enforce_rate_limit(
    request: Request,
    store: Annotated[AbstractClientStateStore, Depends(get_client_state_store)],
    tiers: Annotated[list[QuotaTier], Depends(get_quota_tiers)],
    clock: Annotated[Callable[[], float], Depends(get_clock)],
) -> RateLimiter | None:
    """FastAPI dependency enforcing rate limits.

    Reserves a slot for the request: every configured tier is checked and
    the request recorded in one step under the per-client lock. If a tier is
    exceeded, nothing is recorded and HTTP 429 is raised with headers for
    that tier. Declared sync so FastAPI runs store I/O in its threadpool.

    Args:
        request: FastAPI request.
        store: History store (injected).
        tiers: Quota tiers in evaluation order (injected).
        clock: Time source (injected).

    Returns:
        RateLimiter holding the reservation (the route calls ``release()``
        when the request does not count), or None when rate limiting is
        disabled.

    Raises:
        HTTPException: 429 Too Many Requests when a tier is exceeded.
    """

    if not settings.rate_limit.enabled:
        return None

    context = build_client_context(request)
    limiter = RateLimiter(store, context, clock=clock)
    key_hash = hash_client_identity(context.identity)

    tier = limiter.reserve(tiers)
    if tier is None:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "store": settings.rate_limit.store,
                "tiers_checked": len(tiers),
            },
        )
        return limiter

    now = int(clock())
    retry_after = retry_after_seconds(tier, now)
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": tier.limit,
            "window_s": tier.period_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.rate_limit.include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-Rate-Limit-Limit"] = str(tier.limit)
        headers["X-Rate-Limit-Remaining"] = "0"
        headers["X-Rate-Limit-Reset"] = str(next_reset(tier.period_seconds, now))

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=(
            f"Rate limit exceeded: {tier.limit} requests per {tier.label}. "
            "Try again later."
        ),
        headers=headers or None,
    )


def apply_rate_limit_headers(
    response: Response,
    limiter: RateLimiter | None,
    tiers: list[QuotaTier],
) -> None:
    """Attach quota headers and, for the signed store, the history cookies.

    Headers describe the first tier. Call once the request is recorded so they
    include the current request.
    """
    if limiter is None:
        return

    cfg = settings.rate_limit
    if cfg.include_headers and tiers:
        tier = tiers[0]
        stats = limiter.get_stats(tier)
        response.headers["X-Rate-Limit-Limit"] = str(tier.limit)
        response.headers["X-Rate-Limit-Remaining"] = str(stats.remaining)
        response.headers["X-Rate-Limit-Reset"] = str(stats.reset_at)

    token = limiter.last_write
    if isinstance(token, SignedToken):
        for name, value in (
            (cfg.history_cookie, token.payload),
            (cfg.signature_cookie, token.signature),
        ):
            response.set_cookie(
                key=name,
                value=value,
                max_age=cfg.retention_seconds,
                httponly=True,
                secure=cfg.cookie_secure,
                samesite="strict",
            )
