"""Unit tests for the power usage estimation functions."""

import pytest

from app.services import power_usage
from app.services.power_usage import (
    HashrateSample,
    algorithm_for,
    determine_trend,
    estimate_ethereum_wattage,
    estimate_wattage,
    is_supported,
    round_half_up,
)


@pytest.mark.parametrize(
    "name",
    ["bitcoin", "Bitcoin", "ETHEREUM", "eticacoin", "ethereumclassic", "ravencoin", "ergo", "conflux"],
)
def test_supported_blockchains(name: str) -> None:
    assert is_supported(name) is True


@pytest.mark.parametrize("name", ["dogecoin", "", "bit coin"])
def test_unsupported_blockchains(name: str) -> None:
    assert is_supported(name) is False


def test_algorithm_lookup() -> None:
    assert algorithm_for("bitcoin") == "sha256"
    assert algorithm_for("EthereumClassic") == "etchash"
    assert algorithm_for("ravencoin") == "kawpow"
    assert algorithm_for("ethereum") == "unknown"


class TestEstimateWattage:
    """Hashrate to watts conversion."""

    def test_sha256(self) -> None:
        # 500 EH/s -> 5e11 GH/s * 0.045 J/GH * 1.35 overhead
        sample = HashrateSample.from_current(5e20)

        assert estimate_wattage(sample, "sha256") == 30_375_000_000

    def test_kawpow(self) -> None:
        sample = HashrateSample.from_current(1e15)

        assert estimate_wattage(sample, "kawpow") == 81_000

    def test_unknown_algorithm_uses_default_efficiency(self) -> None:
        sample = HashrateSample.from_current(1e15)

        assert estimate_wattage(sample, "unknown") == 67_500

    def test_zero_hashrate(self) -> None:
        assert estimate_wattage(HashrateSample.from_current(0), "sha256") == 0


def test_ethereum_wattage_scales_with_nodes() -> None:
    assert estimate_ethereum_wattage(5000) == 11
    assert estimate_ethereum_wattage(500_000) == 1142
    assert estimate_ethereum_wattage(0) == 0


class TestDetermineTrend:
    """Trend classification with a 5% band."""

    def test_assumed_previous_sample_is_stable(self) -> None:
        assert determine_trend(HashrateSample.from_current(1e18)) == "stable"

    def test_increasing(self) -> None:
        assert determine_trend(HashrateSample(hashrate=110.0, previous_hashrate=100.0)) == "increasing"

    def test_decreasing(self) -> None:
        assert determine_trend(HashrateSample(hashrate=90.0, previous_hashrate=100.0)) == "decreasing"

    @pytest.mark.parametrize("current", [96.0, 100.0, 104.0])
    def test_within_band_is_stable(self, current: float) -> None:
        assert determine_trend(HashrateSample(hashrate=current, previous_hashrate=100.0)) == "stable"


@pytest.mark.parametrize(("value", "expected"), [(0.5, 1), (2.5, 3), (4.5, 5), (2.4999, 2), (7.0, 7)])
def test_halves_round_away_from_zero(value: float, expected: int) -> None:
    assert round_half_up(value) == expected


def test_wattage_half_watt_rounds_up(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(power_usage, "OVERHEAD_FACTOR", 1.0)
    monkeypatch.setattr(power_usage, "DEFAULT_ENERGY_PER_GH", 1.0)

    assert estimate_wattage(HashrateSample.from_current(2.5e9), "unknown") == 3
