"""Factory pattern for creating client state store instances."""

from __future__ import annotations

import time
from typing import Callable, Sequence

from app.adapters.rate_limit.base import AbstractClientStateStore, QuotaTier
from app.adapters.rate_limit.in_memory import InMemoryHistoryBackend
from app.adapters.rate_limit.json_file import JsonFileHistoryBackend
from app.adapters.rate_limit.server_keyed import ServerKeyedStore
from app.adapters.rate_limit.signed_token import SignedClientStore
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError


def create_client_state_store(
    rate_limit: RateLimitSettings,
    tiers: Sequence[QuotaTier],
    *,
    clock: Callable[[], float] = time.time,
) -> AbstractClientStateStore:
    """Instantiate the history store selected by configuration.

    Server-keyed stores cap each client's history at the largest tier limit.

    Args:
        rate_limit: Rate limit settings (store type, retention, secret...).
        tiers: Validated quota tiers.
        clock: Time source returning UNIX time in seconds.

    Returns:
        AbstractClientStateStore: Configured store instance.

    Raises:
        ConfigurationAppError: If store-specific requirements are not met.
    """
    store = rate_limit.store.lower()
    max_entries = max((tier.limit for tier in tiers), default=None)

    if store == "memory":
        return ServerKeyedStore(
            InMemoryHistoryBackend(),
            retention_seconds=rate_limit.retention_seconds,
            max_entries=max_entries,
            clock=clock,
        )

    if store == "file":
        return ServerKeyedStore(
            JsonFileHistoryBackend(rate_limit.data_file),
            retention_seconds=rate_limit.retention_seconds,
            max_entries=max_entries,
            clock=clock,
        )

    if store == "signed":
        if not rate_limit.secret:
            raise ConfigurationAppError(
                code="rate_limit_missing_secret",
                message="Signed rate limit store requires RATE_LIMIT_SECRET",
                details={"setting": "secret"},
            )
        return SignedClientStore(
            rate_limit.secret,
            retention_seconds=rate_limit.retention_seconds,
            clock=clock,
        )

    raise ConfigurationAppError(
        code="rate_limit_unknown_store",
        message=f"Unknown rate limit store: '{store}'. Supported stores: memory, file, signed",
        details={"setting": "store"},
    )
