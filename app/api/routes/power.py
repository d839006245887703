from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from starlette.concurrency import run_in_threadpool

from app.adapters.power import AbstractPowerUsageProvider, create_power_usage_provider
from app.adapters.rate_limit import QuotaTier, RateLimiter
from app.core.errors import UpstreamAppError, ValidationAppError
from app.core.rate_limit import apply_rate_limit_headers, enforce_rate_limit, get_quota_tiers
from app.schemas.power import PowerUsageResponse

router = APIRouter(tags=["Power usage"])

_provider: AbstractPowerUsageProvider | None = None


def get_power_usage_provider() -> AbstractPowerUsageProvider:
    """Return the process-wide provider, creating it on first use."""
    global _provider
    if _provider is None:
        _provider = create_power_usage_provider()
    return _provider


async def close_power_usage_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


async def _release(limiter: RateLimiter | None) -> None:
    if limiter is not None:
        await run_in_threadpool(limiter.release)


@router.get("/power-usage", response_model=PowerUsageResponse)
async def get_power_usage(
    response: Response,
    limiter: Annotated[RateLimiter | None, Depends(enforce_rate_limit)],
    provider: Annotated[AbstractPowerUsageProvider, Depends(get_power_usage_provider)],
    tiers: Annotated[list[QuotaTier], Depends(get_quota_tiers)],
    blockchain_name: Annotated[
        str | None,
        Query(description="Blockchain to estimate, e.g. bitcoin, ethereum, ravencoin"),
    ] = None,
) -> PowerUsageResponse:
    """Estimate a blockchain network's current power usage.

    The rate limit dependency reserves a slot for the request before any
    work. The reservation is released when the request turns out not to
    count (missing parameter, unsupported chain, upstream failure).

    Args:
        response: Outgoing response (receives rate limit headers/cookies).
        limiter: Per-request rate limiter holding the reservation, None when
            limiting is disabled.
        provider: Power usage provider.
        tiers: Configured quota tiers.
        blockchain_name: Case-insensitive blockchain name.

    Returns:
        PowerUsageResponse: currentWattage, timestamp and trend.

    Raises:
        HTTPException: 400 if blockchain_name is missing, 404 if the chain is
            unsupported or its data is unavailable, 429 (from the rate limit
            dependency) when a quota tier is exceeded.
    """
    if not blockchain_name:
        await _release(limiter)
        raise HTTPException(status_code=400, detail="Missing blockchain_name parameter")

    name = blockchain_name.lower()
    try:
        usage = await provider.get_power_usage(name)
    except (ValidationAppError, UpstreamAppError) as exc:
        await _release(limiter)
        raise HTTPException(
            status_code=404,
            detail=f"Blockchain '{name}' not supported or data unavailable",
        ) from exc
    except Exception:
        await _release(limiter)
        raise

    if limiter is not None:
        # Store I/O may block (file backend, lock waits); keep it off the event loop.
        await run_in_threadpool(apply_rate_limit_headers, response, limiter, tiers)

    return usage
