"""Data models — all frozen (immutable).

Amounts are integers in the underlying asset's smallest unit, indices and
rates are rays, USD values and health factors are wads, risk parameters are
basis points.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from .constants import RAY


@dataclass(frozen=True)
class ReserveConfiguration:
    """Risk parameters of one reserve."""

    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    decimals: int
    reserve_factor: int = 0
    borrowing_enabled: bool = True
    is_active: bool = True
    is_frozen: bool = False


@dataclass(frozen=True)
class InterestRateParams:
    """Kinked interest curve parameters, all rays."""

    utilization_optimal: int
    base_borrow_rate: int
    slope1: int
    slope2: int


@dataclass(frozen=True)
class InterestRates:
    """Annualized rates produced by the interest rate model."""

    utilization: int
    borrow_rate: int
    liquidity_rate: int


@dataclass(frozen=True)
class ReserveState:
    """Mutable-by-replacement ledger of one reserve."""

    liquidity_index: int = RAY
    borrow_index: int = RAY
    current_liquidity_rate: int = 0
    current_borrow_rate: int = 0
    total_borrows: int = 0
    available_liquidity: int = 0
    last_update_timestamp: int = 0


@dataclass(frozen=True)
class Reserve:
    """A reserve: its id (the oracle's asset id), parameters and ledger."""

    reserve_id: str
    configuration: ReserveConfiguration
    rate_params: InterestRateParams
    state: ReserveState


@dataclass(frozen=True)
class UserPosition:
    """Scaled balances of one user in one reserve."""

    user_id: str
    reserve_id: str
    scaled_collateral_balance: int = 0
    scaled_debt_balance: int = 0

    @property
    def is_empty(self) -> bool:
        return self.scaled_collateral_balance == 0 and self.scaled_debt_balance == 0


@dataclass(frozen=True)
class UserAccountSnapshot:
    """Aggregated account health, derived on demand and never stored."""

    total_collateral_usd: int
    total_debt_usd: int
    available_borrows_usd: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int


@dataclass(frozen=True)
class ReserveData:
    """Read model returned by ``get_reserve_data``."""

    reserve_id: str
    liquidity_index: int
    borrow_index: int
    current_liquidity_rate: int
    current_borrow_rate: int
    configuration: ReserveConfiguration
    configuration_word: int
    total_borrows: int
    available_liquidity: int
    last_update_timestamp: int


@dataclass(frozen=True)
class OperationResult:
    """Updated records produced by a mutating operation.

    ``reserves`` and ``positions`` hold only the records the operation
    touched, keyed by reserve id; the caller persists them. ``amount`` is
    the amount actually moved (resolved when ``MAX_AMOUNT`` was requested).
    ``health_factor`` is None when the operation cannot lower it.
    """

    reserves: dict[str, Reserve] = field(default_factory=dict)
    positions: dict[str, UserPosition] = field(default_factory=dict)
    amount: int = 0
    health_factor: int | None = None


@dataclass(frozen=True)
class LiquidationResult:
    """Outcome of a liquidation call."""

    reserves: dict[str, Reserve] = field(default_factory=dict)
    borrower_positions: dict[str, UserPosition] = field(default_factory=dict)
    debt_repaid: int = 0
    collateral_seized: int = 0
    health_factor_before: int = 0
    health_factor_after: int = 0
