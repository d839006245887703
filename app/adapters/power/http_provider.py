"""HTTP power usage provider backed by public blockchain statistics APIs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from app.adapters.power.base import AbstractPowerUsageProvider
from app.core.errors import UpstreamAppError, ValidationAppError
from app.schemas.power import PowerUsageResponse
from app.services import power_usage

logger = logging.getLogger(__name__)


class HttpPowerUsageProvider(AbstractPowerUsageProvider):
    """Fetch network statistics and turn them into power estimates.

    Sources:
    - Bitcoin: Blockchair ``data.hashrate_24h``, falling back to WhatToMine.
    - Ethereum: ethernodes.org ``total_nodes``.
    - Other supported chains: WhatToMine ``nethash``.
    """

    def __init__(
        self,
        *,
        blockchair_bitcoin_url: str,
        whattomine_base_url: str,
        ethernodes_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider and its async HTTP client.

        Args:
            blockchair_bitcoin_url: Primary Bitcoin statistics endpoint.
            whattomine_base_url: Base URL for ``<coin_id>.json`` lookups.
            ethernodes_url: Ethereum node statistics endpoint.
            timeout_seconds: Timeout for each upstream call.
            transport: Optional httpx transport (e.g. MockTransport in tests).
        """
        self._blockchair_bitcoin_url = blockchair_bitcoin_url
        self._whattomine_base_url = whattomine_base_url.rstrip("/") + "/"
        self._ethernodes_url = ethernodes_url
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def get_power_usage(self, blockchain: str) -> PowerUsageResponse:
        name = blockchain.lower()
        if not power_usage.is_supported(name):
            logger.info("upstream.unsupported_blockchain", extra={"blockchain": name})
            raise ValidationAppError(
                code="unsupported_blockchain",
                message=f"Blockchain '{name}' is not supported",
                details={"blockchain": name},
            )

        if name == "ethereum":
            active_nodes = await self._fetch_ethereum_nodes()
            wattage = power_usage.estimate_ethereum_wattage(active_nodes)
            trend: power_usage.Trend = "stable"
        else:
            if name == "bitcoin":
                sample = await self._fetch_bitcoin_hashrate()
            else:
                coin_id = power_usage.SUPPORTED_BLOCKCHAINS[name]
                sample = await self._fetch_whattomine_hashrate(coin_id)
            wattage = power_usage.estimate_wattage(sample, power_usage.algorithm_for(name))
            trend = power_usage.determine_trend(sample)

        return PowerUsageResponse(
            current_wattage=wattage,
            timestamp=datetime.now(timezone.utc),
            trend=trend,
        )

    async def _get_json(self, url: str) -> Any:
        """GET ``url`` and parse the JSON body.

        Raises:
            UpstreamAppError: On network errors, non-2xx status or invalid JSON.
        """
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "upstream.fetch_failed",
                extra={"url": url, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise UpstreamAppError(
                code="upstream_request_failed",
                message=f"Upstream request failed: {url}",
                details={"url": url},
            ) from exc

    async def _fetch_bitcoin_hashrate(self) -> power_usage.HashrateSample:
        try:
            data = await self._get_json(self._blockchair_bitcoin_url)
            hashrate = data["data"]["hashrate_24h"]
            return power_usage.HashrateSample.from_current(float(hashrate))
        except UpstreamAppError:
            pass
        except (KeyError, TypeError, ValueError):
            logger.warning(
                "upstream.invalid_response",
                extra={"url": self._blockchair_bitcoin_url},
            )

        logger.info("upstream.fallback", extra={"blockchain": "bitcoin", "source": "whattomine"})
        return await self._fetch_whattomine_hashrate(power_usage.SUPPORTED_BLOCKCHAINS["bitcoin"])

    async def _fetch_whattomine_hashrate(self, coin_id: int | None) -> power_usage.HashrateSample:
        url = f"{self._whattomine_base_url}{coin_id}.json"
        data = await self._get_json(url)
        try:
            return power_usage.HashrateSample.from_current(float(data["nethash"]))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("upstream.invalid_response", extra={"url": url})
            raise UpstreamAppError(
                code="upstream_invalid_response",
                message=f"WhatToMine returned no hashrate for coin {coin_id}",
                details={"url": url},
            ) from exc

    async def _fetch_ethereum_nodes(self) -> int:
        data = await self._get_json(self._ethernodes_url)
        try:
            return int(data["total_nodes"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("upstream.invalid_response", extra={"url": self._ethernodes_url})
            raise UpstreamAppError(
                code="upstream_invalid_response",
                message="Ethereum node statistics are missing total_nodes",
                details={"url": self._ethernodes_url},
            ) from exc
