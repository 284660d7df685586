"""Mutating reserve operations — pure, state-in / state-out.

Every operation follows the same protocol on each reserve it touches:

    1. accrue indices up to ``now``
    2. apply the balance movement to the reserve totals and the user's
       scaled balances
    3. recompute rates from the post-operation totals
    4. re-evaluate the acting user's health where the operation can lower it

Inputs are never mutated. A rejected operation raises before anything is
returned, so the caller's stored state is untouched.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace

from .constants import DEFAULT_CLOSE_FACTOR_BPS, HEALTH_FACTOR_INFINITE, MAX_AMOUNT
from .errors import (
    BorrowingNotEnabled,
    HealthFactorNotBelowThreshold,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidConfiguration,
    ReserveFrozen,
    ReserveNotActive,
    ReserveNotFound,
)
from .health import (
    calculate_user_account_data,
    from_usd,
    get_asset_price,
    is_liquidatable,
    to_usd,
    validate_health_factor,
)
from .interfaces.price_oracle import PriceOracle
from .models import (
    InterestRateParams,
    LiquidationResult,
    OperationResult,
    Reserve,
    ReserveConfiguration,
    ReserveState,
    UserPosition,
)
from .reserve.accrual import accrue, apply_liquidity_delta, init_reserve_state, update_rates
from .reserve.configuration import validate_configuration, validate_rate_params
from .wad_ray import percent_div, percent_mul, ray_div, ray_mul

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_reserve(reserves: Mapping[str, Reserve], reserve_id: str) -> Reserve:
    try:
        return reserves[reserve_id]
    except KeyError:
        raise ReserveNotFound("Unknown reserve", reserve_id=reserve_id) from None


def _require_positive(amount: int, reserve_id: str) -> None:
    if amount <= 0:
        raise InvalidAmount("Amount must be greater than zero", reserve_id=reserve_id, amount=amount)


def _require_active(reserve: Reserve) -> None:
    if not reserve.configuration.is_active:
        raise ReserveNotActive("Reserve is not active", reserve_id=reserve.reserve_id)


def _require_not_frozen(reserve: Reserve) -> None:
    if reserve.configuration.is_frozen:
        raise ReserveFrozen("Reserve is frozen", reserve_id=reserve.reserve_id)


def _accrued(reserve: Reserve, now: int) -> Reserve:
    return replace(reserve, state=accrue(reserve.state, now, reserve.reserve_id))


def _with_state(reserve: Reserve, state: ReserveState) -> Reserve:
    """Install a post-operation ledger and refresh its rates."""
    state = update_rates(
        state, reserve.rate_params, reserve.configuration.reserve_factor, reserve.reserve_id
    )
    return replace(reserve, state=state)


def _burn_scaled(scaled: int, amount: int, balance: int, index: int) -> int:
    """Scaled balance left after removing ``amount`` of an actual ``balance``."""
    if amount >= balance:
        return 0
    return max(scaled - ray_div(amount, index), 0)


def _has_debt(positions: Mapping[str, UserPosition]) -> bool:
    return any(p.scaled_debt_balance for p in positions.values())


# ---------------------------------------------------------------------------
# Reserve lifecycle / admin
# ---------------------------------------------------------------------------


def init_reserve(
    reserve_id: str,
    configuration: ReserveConfiguration,
    rate_params: InterestRateParams,
    now: int,
) -> Reserve:
    """Create a reserve with both indices at 1 ray."""
    validate_configuration(configuration, reserve_id)
    validate_rate_params(rate_params, reserve_id)
    reserve = Reserve(
        reserve_id=reserve_id,
        configuration=configuration,
        rate_params=rate_params,
        state=init_reserve_state(now),
    )
    logger.info("Initialized reserve %s", reserve_id)
    return _with_state(reserve, reserve.state)


def set_configuration(
    reserve: Reserve, configuration: ReserveConfiguration, now: int
) -> Reserve:
    """Replace the risk parameters; interest up to ``now`` accrues under the old ones.

    Rates are recomputed afterwards because the reserve factor feeds the
    liquidity rate.
    """
    validate_configuration(configuration, reserve.reserve_id)
    if configuration.decimals != reserve.configuration.decimals:
        raise InvalidConfiguration(
            "decimals cannot change after initialization",
            reserve_id=reserve.reserve_id,
            decimals=configuration.decimals,
        )
    accrued = _accrued(reserve, now)
    updated = _with_state(replace(accrued, configuration=configuration), accrued.state)
    logger.info("Updated configuration of %s: %s", reserve.reserve_id, configuration)
    return updated


def set_interest_rate_params(
    reserve: Reserve, params: InterestRateParams, now: int
) -> Reserve:
    """Swap the rate curve; interest up to ``now`` accrues at the old rates."""
    validate_rate_params(params, reserve.reserve_id)
    accrued = _accrued(reserve, now)
    updated = _with_state(replace(accrued, rate_params=params), accrued.state)
    logger.info("Updated interest rate params of %s: %s", reserve.reserve_id, params)
    return updated


def deactivate_reserve(reserve: Reserve) -> Reserve:
    """Flag the reserve inactive; its ledger is retained as-is."""
    configuration = replace(reserve.configuration, is_active=False)
    logger.info("Deactivated reserve %s", reserve.reserve_id)
    return replace(reserve, configuration=configuration)


# ---------------------------------------------------------------------------
# User operations
# ---------------------------------------------------------------------------


def deposit(
    reserve: Reserve, position: UserPosition, amount: int, now: int
) -> OperationResult:
    """Supply ``amount`` of the reserve's asset as collateral."""
    reserve_id = reserve.reserve_id
    _require_positive(amount, reserve_id)
    _require_active(reserve)
    _require_not_frozen(reserve)

    state = accrue(reserve.state, now, reserve_id)
    scaled = ray_div(amount, state.liquidity_index)
    if scaled == 0:
        raise InvalidAmount("Amount too small for the current index", reserve_id=reserve_id, amount=amount)

    updated = _with_state(reserve, apply_liquidity_delta(state, liquidity_added=amount, reserve_id=reserve_id))
    new_position = replace(
        position, scaled_collateral_balance=position.scaled_collateral_balance + scaled
    )

    logger.info("Deposit: %s supplied %d to %s", position.user_id, amount, reserve_id)
    return OperationResult(
        reserves={reserve_id: updated},
        positions={reserve_id: new_position},
        amount=amount,
    )


def withdraw(
    reserves: Mapping[str, Reserve],
    positions: Mapping[str, UserPosition],
    user_id: str,
    reserve_id: str,
    amount: int,
    now: int,
    oracle: PriceOracle,
) -> OperationResult:
    """Withdraw collateral; ``MAX_AMOUNT`` withdraws the whole balance.

    ``positions`` are all of the user's positions keyed by reserve id.
    """
    reserve = _get_reserve(reserves, reserve_id)
    _require_positive(amount, reserve_id)
    _require_active(reserve)

    position = positions.get(reserve_id) or UserPosition(user_id, reserve_id)
    state = accrue(reserve.state, now, reserve_id)
    balance = ray_mul(position.scaled_collateral_balance, state.liquidity_index)

    if amount == MAX_AMOUNT:
        amount = balance
    if balance == 0 or amount > balance:
        raise InvalidAmount(
            "Amount exceeds collateral balance",
            reserve_id=reserve_id, user_id=user_id, amount=amount, balance=balance,
        )
    if amount > state.available_liquidity:
        raise InsufficientLiquidity(
            "Not enough available liquidity",
            reserve_id=reserve_id, amount=amount, available_liquidity=state.available_liquidity,
        )

    updated = _with_state(reserve, apply_liquidity_delta(state, liquidity_taken=amount, reserve_id=reserve_id))
    new_position = replace(
        position,
        scaled_collateral_balance=_burn_scaled(
            position.scaled_collateral_balance, amount, balance, state.liquidity_index
        ),
    )

    health_factor = HEALTH_FACTOR_INFINITE
    if _has_debt(positions):
        snapshot = calculate_user_account_data(
            {**reserves, reserve_id: updated}, {**positions, reserve_id: new_position}, oracle, now
        )
        validate_health_factor(snapshot, reserve_id, user_id)
        health_factor = snapshot.health_factor

    logger.info("Withdraw: %s took %d from %s", user_id, amount, reserve_id)
    return OperationResult(
        reserves={reserve_id: updated},
        positions={reserve_id: new_position},
        amount=amount,
        health_factor=health_factor,
    )


def borrow(
    reserves: Mapping[str, Reserve],
    positions: Mapping[str, UserPosition],
    user_id: str,
    reserve_id: str,
    amount: int,
    now: int,
    oracle: PriceOracle,
) -> OperationResult:
    """Borrow ``amount`` against the user's collateral across all reserves."""
    reserve = _get_reserve(reserves, reserve_id)
    _require_positive(amount, reserve_id)
    _require_active(reserve)
    _require_not_frozen(reserve)
    if not reserve.configuration.borrowing_enabled:
        raise BorrowingNotEnabled("Borrowing is not enabled", reserve_id=reserve_id)

    position = positions.get(reserve_id) or UserPosition(user_id, reserve_id)
    state = accrue(reserve.state, now, reserve_id)
    if amount > state.available_liquidity:
        raise InsufficientLiquidity(
            "Not enough available liquidity",
            reserve_id=reserve_id, amount=amount, available_liquidity=state.available_liquidity,
        )

    scaled = ray_div(amount, state.borrow_index)
    updated = _with_state(
        reserve,
        apply_liquidity_delta(state, liquidity_taken=amount, borrows_added=amount, reserve_id=reserve_id),
    )
    new_position = replace(position, scaled_debt_balance=position.scaled_debt_balance + scaled)

    snapshot = calculate_user_account_data(
        {**reserves, reserve_id: updated}, {**positions, reserve_id: new_position}, oracle, now
    )
    validate_health_factor(snapshot, reserve_id, user_id)

    logger.info(
        "Borrow: %s borrowed %d from %s (health factor %d)",
        user_id, amount, reserve_id, snapshot.health_factor,
    )
    return OperationResult(
        reserves={reserve_id: updated},
        positions={reserve_id: new_position},
        amount=amount,
        health_factor=snapshot.health_factor,
    )


def repay(
    reserve: Reserve, position: UserPosition, amount: int, now: int
) -> OperationResult:
    """Repay debt; amounts above the outstanding debt are capped to it."""
    reserve_id = reserve.reserve_id
    _require_positive(amount, reserve_id)
    _require_active(reserve)

    state = accrue(reserve.state, now, reserve_id)
    debt = ray_mul(position.scaled_debt_balance, state.borrow_index)
    if debt == 0:
        raise InvalidAmount("No debt to repay", reserve_id=reserve_id, user_id=position.user_id)

    payback = min(amount, debt)
    updated = _with_state(
        reserve,
        apply_liquidity_delta(state, liquidity_added=payback, borrows_repaid=payback, reserve_id=reserve_id),
    )
    new_position = replace(
        position,
        scaled_debt_balance=_burn_scaled(
            position.scaled_debt_balance, payback, debt, state.borrow_index
        ),
    )

    logger.info("Repay: %s repaid %d to %s", position.user_id, payback, reserve_id)
    return OperationResult(
        reserves={reserve_id: updated},
        positions={reserve_id: new_position},
        amount=payback,
    )


def liquidate(
    reserves: Mapping[str, Reserve],
    borrower_positions: Mapping[str, UserPosition],
    borrower_id: str,
    collateral_reserve_id: str,
    debt_reserve_id: str,
    debt_to_cover: int,
    now: int,
    oracle: PriceOracle,
    close_factor: int = DEFAULT_CLOSE_FACTOR_BPS,
) -> LiquidationResult:
    """Repay part of an unhealthy borrower's debt in exchange for collateral.

    At most ``close_factor`` bps of the debt in ``debt_reserve_id`` is repaid
    per call. The liquidator receives collateral worth the repaid debt times
    the collateral reserve's liquidation bonus; if the borrower holds less,
    all of it is seized and the repaid debt shrinks to match.
    """
    collateral_reserve = _get_reserve(reserves, collateral_reserve_id)
    debt_reserve = _get_reserve(reserves, debt_reserve_id)
    _require_positive(debt_to_cover, debt_reserve_id)
    _require_active(collateral_reserve)
    _require_active(debt_reserve)

    before = calculate_user_account_data(reserves, borrower_positions, oracle, now)
    if not is_liquidatable(before.health_factor):
        raise HealthFactorNotBelowThreshold(
            "Health factor is not below 1",
            user_id=borrower_id, health_factor=before.health_factor,
        )

    accrued = {rid: _accrued(reserves[rid], now) for rid in {collateral_reserve_id, debt_reserve_id}}
    states = {rid: r.state for rid, r in accrued.items()}
    new_positions = {
        rid: borrower_positions.get(rid) or UserPosition(borrower_id, rid)
        for rid in {collateral_reserve_id, debt_reserve_id}
    }

    debt_position = new_positions[debt_reserve_id]
    debt_index = states[debt_reserve_id].borrow_index
    user_debt = ray_mul(debt_position.scaled_debt_balance, debt_index)
    if user_debt == 0:
        raise InvalidAmount("Borrower has no debt in reserve", reserve_id=debt_reserve_id, user_id=borrower_id)

    collateral_position = new_positions[collateral_reserve_id]
    collateral_index = states[collateral_reserve_id].liquidity_index
    user_collateral = ray_mul(collateral_position.scaled_collateral_balance, collateral_index)
    if user_collateral == 0:
        raise InvalidAmount(
            "Borrower has no collateral in reserve",
            reserve_id=collateral_reserve_id, user_id=borrower_id,
        )

    debt_config = debt_reserve.configuration
    collateral_config = collateral_reserve.configuration
    debt_price = get_asset_price(oracle, debt_reserve_id)
    collateral_price = get_asset_price(oracle, collateral_reserve_id)

    debt_to_repay = min(debt_to_cover, percent_mul(user_debt, close_factor))
    collateral_to_seize = from_usd(
        percent_mul(to_usd(debt_to_repay, debt_price, debt_config.decimals), collateral_config.liquidation_bonus),
        collateral_price,
        collateral_config.decimals,
    )
    if collateral_to_seize > user_collateral:
        collateral_to_seize = user_collateral
        debt_to_repay = from_usd(
            percent_div(
                to_usd(user_collateral, collateral_price, collateral_config.decimals),
                collateral_config.liquidation_bonus,
            ),
            debt_price,
            debt_config.decimals,
        )
    if debt_to_repay == 0 or collateral_to_seize == 0:
        raise InvalidAmount(
            "Liquidation amount rounds to zero",
            reserve_id=debt_reserve_id, debt_to_cover=debt_to_cover,
        )

    # The liquidator's repayment lands before the seized collateral leaves,
    # which matters when both legs are the same reserve.
    states[debt_reserve_id] = apply_liquidity_delta(
        states[debt_reserve_id],
        liquidity_added=debt_to_repay,
        borrows_repaid=debt_to_repay,
        reserve_id=debt_reserve_id,
    )
    if collateral_to_seize > states[collateral_reserve_id].available_liquidity:
        raise InsufficientLiquidity(
            "Not enough available liquidity to release collateral",
            reserve_id=collateral_reserve_id,
            amount=collateral_to_seize,
            available_liquidity=states[collateral_reserve_id].available_liquidity,
        )
    states[collateral_reserve_id] = apply_liquidity_delta(
        states[collateral_reserve_id],
        liquidity_taken=collateral_to_seize,
        reserve_id=collateral_reserve_id,
    )

    new_positions[debt_reserve_id] = replace(
        new_positions[debt_reserve_id],
        scaled_debt_balance=_burn_scaled(
            debt_position.scaled_debt_balance, debt_to_repay, user_debt, debt_index
        ),
    )
    new_positions[collateral_reserve_id] = replace(
        new_positions[collateral_reserve_id],
        scaled_collateral_balance=_burn_scaled(
            collateral_position.scaled_collateral_balance,
            collateral_to_seize,
            user_collateral,
            collateral_index,
        ),
    )

    updated = {rid: _with_state(accrued[rid], states[rid]) for rid in accrued}
    after = calculate_user_account_data(
        {**reserves, **updated}, {**borrower_positions, **new_positions}, oracle, now
    )

    logger.info(
        "Liquidation: %s repaid %d of %s, seized %d of %s (health factor %d -> %d)",
        borrower_id, debt_to_repay, debt_reserve_id, collateral_to_seize,
        collateral_reserve_id, before.health_factor, after.health_factor,
    )
    return LiquidationResult(
        reserves=updated,
        borrower_positions=new_positions,
        debt_repaid=debt_to_repay,
        collateral_seized=collateral_to_seize,
        health_factor_before=before.health_factor,
        health_factor_after=after.health_factor,
    )
