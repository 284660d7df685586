"""Unit tests for account health evaluation."""
from __future__ import annotations

from dataclasses import replace

import pytest
from hypothesis import given, strategies as st

from reserve_engine.constants import HEALTH_FACTOR_INFINITE, RAY, SECONDS_PER_YEAR, WAD
from reserve_engine.errors import InsufficientCollateral, OraclePriceUnavailable
from reserve_engine.health import (
    calculate_available_borrows,
    calculate_health_factor,
    calculate_user_account_data,
    collateral_balance,
    debt_balance,
    from_usd,
    get_asset_price,
    is_liquidatable,
    to_usd,
    validate_health_factor,
)
from reserve_engine.models import Reserve, UserAccountSnapshot, UserPosition
from reserve_engine.oracles import StaticPriceOracle

from conftest import T0


class _BrokenOracle:
    def get_asset_price_usd(self, asset_id: str) -> int:
        raise TimeoutError("feed timed out")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestCalculateHealthFactor:
    def test_healthy(self) -> None:
        assert calculate_health_factor(1000 * WAD, 500 * WAD, 8000) == 16 * WAD // 10

    def test_liquidatable(self) -> None:
        hf = calculate_health_factor(600 * WAD, 500 * WAD, 8000)
        assert hf == 96 * WAD // 100
        assert is_liquidatable(hf)

    def test_no_debt_is_infinite(self) -> None:
        assert calculate_health_factor(1000 * WAD, 0, 8000) == HEALTH_FACTOR_INFINITE
        assert not is_liquidatable(HEALTH_FACTOR_INFINITE)

    def test_exactly_one_is_not_liquidatable(self) -> None:
        assert not is_liquidatable(calculate_health_factor(1000 * WAD, 800 * WAD, 8000))

    @given(
        st.integers(min_value=0, max_value=10**30),
        st.integers(min_value=0, max_value=10**30),
        st.integers(min_value=0, max_value=10_000),
    )
    def test_infinite_iff_no_debt(self, collateral: int, debt: int, threshold: int) -> None:
        hf = calculate_health_factor(collateral, debt, threshold)
        assert (hf == HEALTH_FACTOR_INFINITE) == (debt == 0)


class TestCalculateAvailableBorrows:
    def test_headroom(self) -> None:
        assert calculate_available_borrows(1000 * WAD, 500 * WAD, 7500) == 250 * WAD

    def test_floored_at_zero(self) -> None:
        assert calculate_available_borrows(1000 * WAD, 900 * WAD, 7500) == 0


class TestUsdConversion:
    def test_to_usd_scales_by_decimals(self) -> None:
        assert to_usd(500 * 10**6, WAD, 6) == 500 * WAD

    def test_from_usd_inverse(self) -> None:
        assert from_usd(3000 * WAD, 2000 * WAD, 18) == 15 * WAD // 10


# ---------------------------------------------------------------------------
# Oracle access
# ---------------------------------------------------------------------------


class TestGetAssetPrice:
    def test_returns_price(self, oracle: StaticPriceOracle) -> None:
        assert get_asset_price(oracle, "WETH") == 2000 * WAD

    def test_oracle_failure(self) -> None:
        with pytest.raises(OraclePriceUnavailable) as exc_info:
            get_asset_price(_BrokenOracle(), "WETH")
        assert isinstance(exc_info.value.__cause__, TimeoutError)
        assert exc_info.value.context["asset_id"] == "WETH"

    def test_unknown_asset(self, oracle: StaticPriceOracle) -> None:
        with pytest.raises(OraclePriceUnavailable):
            get_asset_price(oracle, "DOGE")

    def test_zero_price(self) -> None:
        with pytest.raises(OraclePriceUnavailable, match="usable"):
            get_asset_price(StaticPriceOracle({"DAI": 0}), "DAI")


# ---------------------------------------------------------------------------
# calculate_user_account_data
# ---------------------------------------------------------------------------


class TestCalculateUserAccountData:
    def test_single_collateral_single_debt(
        self, reserves: dict[str, Reserve], oracle: StaticPriceOracle
    ) -> None:
        positions = {
            "DAI": UserPosition("alice", "DAI", scaled_collateral_balance=1000 * WAD),
            "USDC": UserPosition("alice", "USDC", scaled_debt_balance=500 * 10**6),
        }
        snapshot = calculate_user_account_data(reserves, positions, oracle, T0)
        assert snapshot == UserAccountSnapshot(
            total_collateral_usd=1000 * WAD,
            total_debt_usd=500 * WAD,
            available_borrows_usd=250 * WAD,
            current_liquidation_threshold=8000,
            ltv=7500,
            health_factor=16 * WAD // 10,
        )

    def test_collateral_drop_makes_liquidatable(
        self, reserves: dict[str, Reserve], oracle: StaticPriceOracle
    ) -> None:
        positions = {
            "DAI": UserPosition("alice", "DAI", scaled_collateral_balance=600 * WAD),
            "USDC": UserPosition("alice", "USDC", scaled_debt_balance=500 * 10**6),
        }
        snapshot = calculate_user_account_data(reserves, positions, oracle, T0)
        assert snapshot.health_factor == 96 * WAD // 100
        assert snapshot.available_borrows_usd == 0
        assert is_liquidatable(snapshot.health_factor)

    def test_weighted_parameters(
        self, reserves: dict[str, Reserve], oracle: StaticPriceOracle
    ) -> None:
        positions = {
            "DAI": UserPosition("alice", "DAI", scaled_collateral_balance=2000 * WAD),
            "WETH": UserPosition("alice", "WETH", scaled_collateral_balance=WAD),
        }
        snapshot = calculate_user_account_data(reserves, positions, oracle, T0)
        assert snapshot.total_collateral_usd == 4000 * WAD
        # (2000 * 7500 + 2000 * 8000) / 4000
        assert snapshot.ltv == 7750
        # (2000 * 8000 + 2000 * 8250) / 4000
        assert snapshot.current_liquidation_threshold == 8125
        assert snapshot.health_factor == HEALTH_FACTOR_INFINITE

    def test_no_positions(
        self, reserves: dict[str, Reserve], oracle: StaticPriceOracle
    ) -> None:
        snapshot = calculate_user_account_data(reserves, {}, oracle, T0)
        assert snapshot.total_collateral_usd == 0
        assert snapshot.ltv == 0
        assert snapshot.health_factor == HEALTH_FACTOR_INFINITE

    def test_oracle_failure_propagates(self, reserves: dict[str, Reserve]) -> None:
        positions = {"DAI": UserPosition("alice", "DAI", scaled_collateral_balance=WAD)}
        with pytest.raises(OraclePriceUnavailable):
            calculate_user_account_data(reserves, positions, _BrokenOracle(), T0)

    def test_balances_include_accrued_interest(
        self, reserves: dict[str, Reserve], oracle: StaticPriceOracle
    ) -> None:
        dai = reserves["DAI"]
        dai = replace(
            dai,
            state=replace(
                dai.state,
                current_liquidity_rate=RAY // 10,
                current_borrow_rate=RAY // 5,
            ),
        )
        position = UserPosition(
            "alice", "DAI", scaled_collateral_balance=1000 * WAD, scaled_debt_balance=100 * WAD
        )
        later = T0 + SECONDS_PER_YEAR
        assert collateral_balance(dai, position, later) == 1100 * WAD
        assert debt_balance(dai, position, later) > 120 * WAD


# ---------------------------------------------------------------------------
# validate_health_factor
# ---------------------------------------------------------------------------


class TestValidateHealthFactor:
    def _snapshot(self, health_factor: int) -> UserAccountSnapshot:
        return UserAccountSnapshot(
            total_collateral_usd=600 * WAD,
            total_debt_usd=500 * WAD,
            available_borrows_usd=0,
            current_liquidation_threshold=8000,
            ltv=7500,
            health_factor=health_factor,
        )

    def test_healthy_passes(self) -> None:
        validate_health_factor(self._snapshot(WAD))

    def test_unhealthy_raises_with_health_factor(self) -> None:
        with pytest.raises(InsufficientCollateral) as exc_info:
            validate_health_factor(self._snapshot(96 * WAD // 100), "USDC", "alice")
        assert exc_info.value.health_factor == 96 * WAD // 100
        assert exc_info.value.context["reserve_id"] == "USDC"
