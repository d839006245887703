"""Power usage adapter layer - abstracts over blockchain statistics sources."""

from app.adapters.power.base import AbstractPowerUsageProvider
from app.adapters.power.factory import create_power_usage_provider
from app.adapters.power.http_provider import HttpPowerUsageProvider

__all__ = [
    "AbstractPowerUsageProvider",
    "HttpPowerUsageProvider",
    "create_power_usage_provider",
]
