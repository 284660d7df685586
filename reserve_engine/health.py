"""Account health evaluation: aggregates a user's positions into USD totals.

    ltv_weighted       = sum(collateral_usd_i * ltv_i) / sum(collateral_usd_i)
    threshold_weighted = sum(collateral_usd_i * lt_i)  / sum(collateral_usd_i)
    health_factor      = collateral_usd * threshold_weighted / 10000 / debt_usd
    available_borrows  = max(collateral_usd * ltv_weighted / 10000 - debt_usd, 0)

USD values and the health factor are wads; thresholds are basis points.
A user without debt has an infinite health factor (``MAX_UINT256``).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping

from .constants import HEALTH_FACTOR_INFINITE, HEALTH_FACTOR_LIQUIDATION_THRESHOLD
from .errors import InsufficientCollateral, OraclePriceUnavailable
from .interfaces.price_oracle import PriceOracle
from .models import Reserve, UserAccountSnapshot, UserPosition
from .reserve.accrual import normalized_debt, normalized_income
from .wad_ray import percent_mul, ray_mul, wad_div

logger = logging.getLogger(__name__)


def get_asset_price(oracle: PriceOracle, asset_id: str) -> int:
    """Query the oracle, converting any failure to OraclePriceUnavailable."""
    try:
        price = oracle.get_asset_price_usd(asset_id)
    except Exception as e:
        raise OraclePriceUnavailable(
            f"Price oracle failed for {asset_id}: {e}", asset_id=asset_id
        ) from e
    if price is None or price <= 0:
        raise OraclePriceUnavailable(
            "Price oracle returned no usable price", asset_id=asset_id, price=price
        )
    return price


def to_usd(amount: int, price: int, decimals: int) -> int:
    """Value ``amount`` base units of an asset with ``decimals`` at a wad price."""
    return amount * price // 10**decimals


def from_usd(usd_value: int, price: int, decimals: int) -> int:
    """Inverse of ``to_usd``: base units worth ``usd_value`` at a wad price."""
    return usd_value * 10**decimals // price


def collateral_balance(reserve: Reserve, position: UserPosition, now: int) -> int:
    """Actual collateral balance, including income accrued up to ``now``."""
    if position.scaled_collateral_balance == 0:
        return 0
    index = normalized_income(reserve.state, now, reserve.reserve_id)
    return ray_mul(position.scaled_collateral_balance, index)


def debt_balance(reserve: Reserve, position: UserPosition, now: int) -> int:
    """Actual debt balance, including interest compounded up to ``now``."""
    if position.scaled_debt_balance == 0:
        return 0
    index = normalized_debt(reserve.state, now, reserve.reserve_id)
    return ray_mul(position.scaled_debt_balance, index)


def calculate_health_factor(
    total_collateral_usd: int, total_debt_usd: int, liquidation_threshold: int
) -> int:
    if total_debt_usd == 0:
        return HEALTH_FACTOR_INFINITE
    return wad_div(percent_mul(total_collateral_usd, liquidation_threshold), total_debt_usd)


def calculate_available_borrows(
    total_collateral_usd: int, total_debt_usd: int, ltv: int
) -> int:
    borrow_capacity = percent_mul(total_collateral_usd, ltv)
    return max(borrow_capacity - total_debt_usd, 0)


def is_liquidatable(health_factor: int) -> bool:
    """True when a position can be liquidated (HF < 1 wad)."""
    return health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD


def calculate_user_account_data(
    reserves: Mapping[str, Reserve],
    positions: Mapping[str, UserPosition],
    oracle: PriceOracle,
    now: int,
) -> UserAccountSnapshot:
    """Aggregate a user's positions (keyed by reserve id) into a snapshot.

    Positions are visited in the order of ``reserves`` so the sums, and any
    oracle failure, are deterministic.
    """
    total_collateral_usd = 0
    total_debt_usd = 0
    weighted_ltv = 0
    weighted_threshold = 0

    for reserve_id, reserve in reserves.items():
        position = positions.get(reserve_id)
        if position is None or position.is_empty:
            continue

        config = reserve.configuration
        collateral = collateral_balance(reserve, position, now)
        debt = debt_balance(reserve, position, now)
        price = get_asset_price(oracle, reserve_id)

        if collateral:
            collateral_usd = to_usd(collateral, price, config.decimals)
            total_collateral_usd += collateral_usd
            weighted_ltv += collateral_usd * config.ltv
            weighted_threshold += collateral_usd * config.liquidation_threshold
        if debt:
            total_debt_usd += to_usd(debt, price, config.decimals)

    ltv = weighted_ltv // total_collateral_usd if total_collateral_usd else 0
    liquidation_threshold = (
        weighted_threshold // total_collateral_usd if total_collateral_usd else 0
    )

    return UserAccountSnapshot(
        total_collateral_usd=total_collateral_usd,
        total_debt_usd=total_debt_usd,
        available_borrows_usd=calculate_available_borrows(
            total_collateral_usd, total_debt_usd, ltv
        ),
        current_liquidation_threshold=liquidation_threshold,
        ltv=ltv,
        health_factor=calculate_health_factor(
            total_collateral_usd, total_debt_usd, liquidation_threshold
        ),
    )


def validate_health_factor(
    snapshot: UserAccountSnapshot, reserve_id: str | None = None, user_id: str | None = None
) -> None:
    """Raise InsufficientCollateral when the snapshot is liquidatable."""
    if is_liquidatable(snapshot.health_factor):
        logger.warning(
            "Rejecting operation for %s on %s: health factor %d below 1 wad",
            user_id, reserve_id, snapshot.health_factor,
        )
        raise InsufficientCollateral(
            "Health factor would fall below 1",
            health_factor=snapshot.health_factor,
            reserve_id=reserve_id,
            user_id=user_id,
            total_collateral_usd=snapshot.total_collateral_usd,
            total_debt_usd=snapshot.total_debt_usd,
        )
