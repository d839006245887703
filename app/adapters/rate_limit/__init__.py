"""Rate limiting adapters.

This package provides the admission gate (``RateLimiter``) and the stores it
runs on. Request history can be kept on the server (in memory or in a JSON
file) or handed to the client as an HMAC-signed token, without changing the
API layer.
"""

from app.adapters.rate_limit.base import (
    AbstractClientStateStore,
    ClientContext,
    QuotaStats,
    QuotaTier,
    SignedToken,
    TimestampHistory,
)
from app.adapters.rate_limit.factory import create_client_state_store
from app.adapters.rate_limit.limiter import RateLimiter

__all__ = [
    "AbstractClientStateStore",
    "ClientContext",
    "QuotaStats",
    "QuotaTier",
    "RateLimiter",
    "SignedToken",
    "TimestampHistory",
    "create_client_state_store",
]
