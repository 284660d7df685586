"""Error taxonomy for the reserve engine.

Every error carries a ``context`` dict (reserve id, intermediate values) so a
failure can be reproduced from the exception alone.
"""
from __future__ import annotations

from typing import Any


class ReserveEngineError(Exception):
    """Base class for all engine failures."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class InvalidConfiguration(ReserveEngineError, ValueError):
    """Risk parameters violate their declared ranges or invariants."""


# ---------------------------------------------------------------------------
# Arithmetic (fatal)
# ---------------------------------------------------------------------------


class ArithmeticOverflow(ReserveEngineError, ArithmeticError):
    """An intermediate product left the 256-bit unsigned range."""


class DivisionByZero(ReserveEngineError, ZeroDivisionError):
    """Fixed-point division by zero."""


# ---------------------------------------------------------------------------
# Upstream state inconsistency (fatal)
# ---------------------------------------------------------------------------


class InvalidUtilization(ReserveEngineError):
    """Utilization outside [0, 1 ray], or a ledger total went negative."""


class ClockRegression(ReserveEngineError):
    """``now`` is earlier than the reserve's last update timestamp."""


# ---------------------------------------------------------------------------
# Collaborators (transient)
# ---------------------------------------------------------------------------


class OraclePriceUnavailable(ReserveEngineError):
    """The price oracle failed or returned an unusable price."""


# ---------------------------------------------------------------------------
# Expected user-facing rejections
# ---------------------------------------------------------------------------


class OperationRejected(ReserveEngineError):
    """An operation was refused; no state was changed."""


class InsufficientCollateral(OperationRejected):
    """The operation would leave the user's health factor below 1 wad."""

    def __init__(self, message: str, health_factor: int, **context: Any) -> None:
        super().__init__(message, health_factor=health_factor, **context)
        self.health_factor = health_factor


class InvalidAmount(OperationRejected):
    """Zero amount, or more than the user's balance."""


class InsufficientLiquidity(OperationRejected):
    """The reserve does not hold enough available liquidity."""


class ReserveNotActive(OperationRejected):
    """The reserve has been deactivated."""


class ReserveFrozen(OperationRejected):
    """The reserve accepts no new deposits or borrows."""


class BorrowingNotEnabled(OperationRejected):
    """Borrowing is disabled on the reserve."""


class HealthFactorNotBelowThreshold(OperationRejected):
    """Liquidation attempted on a healthy position."""


class PoolPaused(OperationRejected):
    """The pool is paused; mutating operations are refused."""


class ReserveNotFound(OperationRejected):
    """No reserve registered under the given id."""


class ReserveAlreadyExists(OperationRejected):
    """A reserve is already registered under the given id."""
