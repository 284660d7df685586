"""Kinked (two-slope) interest rate model.

Below the optimal utilization the borrow rate climbs gently along ``slope1``;
above it the remaining headroom is priced along the much steeper ``slope2``:

    u <= u_opt:  base + slope1 * u / u_opt
    u >  u_opt:  base + slope1 + slope2 * (u - u_opt) / (1 - u_opt)

Depositors earn the borrow rate scaled by utilization, minus the reserve
factor kept by the protocol. All values are rays; rates are annualized.
"""
from __future__ import annotations

from ..constants import PERCENTAGE_FACTOR, RAY
from ..errors import InvalidUtilization
from ..models import InterestRateParams, InterestRates
from ..wad_ray import percent_mul, ray_div, ray_mul


def calculate_utilization(
    total_borrows: int, available_liquidity: int, reserve_id: str | None = None
) -> int:
    """Return ``total_borrows / (total_borrows + available_liquidity)`` as a ray."""
    if total_borrows < 0 or available_liquidity < 0:
        raise InvalidUtilization(
            "reserve totals must be non-negative",
            reserve_id=reserve_id,
            total_borrows=total_borrows,
            available_liquidity=available_liquidity,
        )
    total = total_borrows + available_liquidity
    if total == 0:
        return 0

    utilization = ray_div(total_borrows, total)
    if not 0 <= utilization <= RAY:
        raise InvalidUtilization(
            "utilization outside [0, 1 ray]",
            reserve_id=reserve_id,
            utilization=utilization,
        )
    return utilization


def calculate_borrow_rate(utilization: int, params: InterestRateParams) -> int:
    """Borrow rate on the kinked curve for a ray utilization."""
    if not 0 <= utilization <= RAY:
        raise InvalidUtilization("utilization outside [0, 1 ray]", utilization=utilization)

    if utilization <= params.utilization_optimal:
        return params.base_borrow_rate + ray_mul(
            params.slope1, ray_div(utilization, params.utilization_optimal)
        )

    excess_ratio = ray_div(
        utilization - params.utilization_optimal, RAY - params.utilization_optimal
    )
    return params.base_borrow_rate + params.slope1 + ray_mul(params.slope2, excess_ratio)


def calculate_liquidity_rate(
    borrow_rate: int, utilization: int, reserve_factor: int
) -> int:
    """``borrow_rate * utilization * (1 - reserve_factor / 10000)``."""
    return percent_mul(
        ray_mul(borrow_rate, utilization), PERCENTAGE_FACTOR - reserve_factor
    )


def calculate_interest_rates(
    total_borrows: int,
    available_liquidity: int,
    params: InterestRateParams,
    reserve_factor: int,
    reserve_id: str | None = None,
) -> InterestRates:
    utilization = calculate_utilization(total_borrows, available_liquidity, reserve_id)
    borrow_rate = calculate_borrow_rate(utilization, params)
    return InterestRates(
        utilization=utilization,
        borrow_rate=borrow_rate,
        liquidity_rate=calculate_liquidity_rate(borrow_rate, utilization, reserve_factor),
    )
