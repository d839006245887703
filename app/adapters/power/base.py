from abc import ABC, abstractmethod

from app.schemas.power import PowerUsageResponse


class AbstractPowerUsageProvider(ABC):
	"""Interface for providers estimating a blockchain's power usage."""

	@abstractmethod
	async def get_power_usage(self, blockchain: str) -> PowerUsageResponse:
		"""Estimate the current power draw of a blockchain network.

		Args:
			blockchain: Lower-case blockchain name (e.g., "bitcoin").

		Returns:
			PowerUsageResponse: Wattage estimate, timestamp and trend.

		Raises:
			ValidationAppError: If the blockchain is not supported.
			UpstreamAppError: If the statistics could not be fetched or parsed.
		"""
		...

	async def aclose(self) -> None:
		"""Release network resources held by the provider."""
		return None
