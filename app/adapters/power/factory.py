"""Factory pattern for creating power usage provider instances."""

from app.adapters.power.base import AbstractPowerUsageProvider
from app.adapters.power.http_provider import HttpPowerUsageProvider
from app.core.config import settings


def create_power_usage_provider() -> AbstractPowerUsageProvider:
    """Instantiate the power usage provider from app.core.config.settings.

    Returns:
        AbstractPowerUsageProvider: Configured provider instance.
    """
    return HttpPowerUsageProvider(
        blockchair_bitcoin_url=settings.upstream.blockchair_bitcoin_url,
        whattomine_base_url=settings.upstream.whattomine_base_url,
        ethernodes_url=settings.upstream.ethernodes_url,
        timeout_seconds=settings.upstream.timeout_seconds,
    )
