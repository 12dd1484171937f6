"""Tests for the integer bonding-curve mathematics."""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from relevance_markets.markets.curve import (
    PRICE_FLOOR,
    TOKEN_UNIT,
    floor_supply,
    icbrt,
    is_floor_priced,
    rescale_k,
    reserve_at,
    spot_price,
    supply_at,
)
from relevance_markets.settlement.metrics import price_continuity_error


class TestIntegerRoots:
    """Test the exact integer cube root."""

    def test_perfect_cubes(self):
        for n in [0, 1, 2, 3, 10, 12345, 10 ** 10]:
            assert icbrt(n ** 3) == n

    def test_floors_between_cubes(self):
        assert icbrt(26) == 2
        assert icbrt(28) == 3
        assert icbrt(10 ** 30 - 1) == 10 ** 10 - 1

    def test_huge_values(self):
        n = 3 ** 200
        root = icbrt(n)
        assert root ** 3 <= n < (root + 1) ** 3

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            icbrt(-1)


class TestCurveShape:
    """Test reserve/supply inversion and price floor."""

    def test_floor_region_is_linear(self):
        k = 200
        s_star = floor_supply(k)
        assert s_star > 0
        supply = s_star // 2
        assert reserve_at(supply, k) == PRICE_FLOOR * supply // TOKEN_UNIT
        assert is_floor_priced(supply, k)
        assert spot_price(supply, k) == PRICE_FLOOR

    def test_empty_pool_priced_at_floor(self):
        assert spot_price(0, 200) == PRICE_FLOOR
        assert reserve_at(0, 200) == 0
        assert supply_at(0, 200) == 0

    def test_inversion_never_overstates_reserve(self):
        for k in [100, 200, 1_000, 10_000]:
            for reserve in [1, 70, 1_000_000, 123_456_789, 10 ** 12]:
                supply = supply_at(reserve, k)
                assert reserve_at(supply, k) <= reserve
                # One more atomic unit of supply costs more than the reserve holds
                assert reserve_at(supply + 1, k) >= reserve_at(supply, k)

    def test_one_dollar_buy_mints_tokens(self):
        supply = supply_at(1_000_000, 200)
        # cbrt(3 * 1 / 200) whole tokens ~ 24.66
        assert np.isclose(supply / TOKEN_UNIT, (3 / 200 * 1e6) ** (1 / 3), rtol=1e-2)
        assert not is_floor_priced(supply, 200)

    def test_price_strictly_increasing_above_floor(self):
        k = 200
        supplies = [floor_supply(k) + i * TOKEN_UNIT for i in range(1, 20)]
        prices = [spot_price(s, k) for s in supplies]
        assert all(b > a for a, b in zip(prices, prices[1:]))

    def test_reserve_monotone_in_supply(self):
        k = 300
        supplies = np.linspace(0, 100 * TOKEN_UNIT, 50).astype(int).tolist()
        reserves = [reserve_at(s, k) for s in supplies]
        assert all(b >= a for a, b in zip(reserves, reserves[1:]))


class TestElasticK:
    """Test the elastic-k rescale."""

    def test_exact_ratio(self):
        assert rescale_k(200, 1_000, 900) == 180
        assert rescale_k(180, 900, 1_000) == 200

    def test_floor_rounding(self):
        assert rescale_k(199, 3, 2) == 132

    def test_round_trip_within_rounding(self):
        k0, reserve = 333, 10_000_000
        amount = 1_234_567
        k1 = rescale_k(k0, reserve, reserve - amount)
        k2 = rescale_k(k1, reserve - amount, reserve)
        assert abs(k2 - k0) <= 2

    def test_price_continuity(self):
        k0, r0, r1 = 5_000, 50_000_000, 45_000_000
        k1 = rescale_k(k0, r0, r1)
        assert price_continuity_error(k0, k1, r0, r1) < 0.01

    def test_empty_reserve_rejected(self):
        with pytest.raises(ValueError, match="reserve_before"):
            rescale_k(200, 0, 100)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
