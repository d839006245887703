"""Power usage estimation from network statistics.

Pure functions turning hashrate / node counts into a wattage estimate and a
trend label. Fetching the statistics is the provider adapter's job
(``app.adapters.power``).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

Trend = Literal["increasing", "decreasing", "stable"]

# Supported blockchains and their WhatToMine coin IDs.
# Ethereum is estimated from node counts (ethernodes.org), not WhatToMine.
SUPPORTED_BLOCKCHAINS: dict[str, int | None] = {
    "bitcoin": 1,
    "ethereum": None,
    "eticacoin": 382,
    "ethereumclassic": 162,
    "ravencoin": 234,
    "ergo": 340,
    "conflux": 337,
}

ALGORITHM_BY_BLOCKCHAIN: dict[str, str] = {
    "bitcoin": "sha256",
    "ethereumclassic": "etchash",
    "eticacoin": "etchash",
    "ravencoin": "kawpow",
    "ergo": "autolykos",
    "conflux": "octopus",
}

# Joules per gigahash for each mining algorithm
ENERGY_PER_GH: dict[str, float] = {
    "sha256": 0.045,
    "etchash": 0.050,
    "kawpow": 0.060,
    "autolykos": 0.055,
    "octopus": 0.058,
}
DEFAULT_ENERGY_PER_GH = 0.05

# Cooling, PSU losses and other facility overhead
OVERHEAD_FACTOR = 1.35

# Upstreams only report the current hashrate; the previous value is assumed.
PREVIOUS_HASHRATE_RATIO = 0.98

ETHEREUM_TOTAL_VALIDATORS = 500_000
ETHEREUM_ANNUAL_TWH = 0.01


@dataclass(frozen=True)
class HashrateSample:
    """Network hashrate in H/s, current and previous."""

    hashrate: float
    previous_hashrate: float

    @classmethod
    def from_current(cls, hashrate: float) -> "HashrateSample":
        return cls(hashrate=hashrate, previous_hashrate=hashrate * PREVIOUS_HASHRATE_RATIO)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(Decimal(value).quantize(Decimal(0), rounding=ROUND_HALF_UP))


def is_supported(blockchain: str) -> bool:
    return blockchain.lower() in SUPPORTED_BLOCKCHAINS


def algorithm_for(blockchain: str) -> str:
    return ALGORITHM_BY_BLOCKCHAIN.get(blockchain.lower(), "unknown")


def estimate_wattage(sample: HashrateSample, algorithm: str) -> int:
    """Estimate network power draw in watts for a proof-of-work chain.

    Args:
        sample: Network hashrate in H/s.
        algorithm: Mining algorithm (unknown algorithms use 0.05 J/GH).

    Returns:
        Rounded wattage including facility overhead.
    """
    hashrate_ghs = sample.hashrate / 1e9
    joules_per_gh = ENERGY_PER_GH.get(algorithm, DEFAULT_ENERGY_PER_GH)
    return round_half_up(hashrate_ghs * joules_per_gh * OVERHEAD_FACTOR)


def estimate_ethereum_wattage(active_nodes: int) -> int:
    """Estimate proof-of-stake Ethereum power draw from the active node count.

    The network-wide annual consumption is scaled by the share of reporting
    nodes among the assumed validator population.
    """
    watts_total = (ETHEREUM_ANNUAL_TWH * 1e9) / 8760
    return round_half_up(watts_total * (active_nodes / ETHEREUM_TOTAL_VALIDATORS))


def determine_trend(sample: HashrateSample) -> Trend:
    if sample.hashrate > sample.previous_hashrate * 1.05:
        return "increasing"
    if sample.hashrate < sample.previous_hashrate * 0.95:
        return "decreasing"
    return "stable"
