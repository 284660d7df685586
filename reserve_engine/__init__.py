"""Reserve accounting and risk engine for a pooled lending protocol."""
from .config import EngineConfig, load_config
from .constants import HEALTH_FACTOR_INFINITE, MAX_AMOUNT, RAY, SECONDS_PER_YEAR, WAD
from .errors import (
    ArithmeticOverflow,
    ClockRegression,
    DivisionByZero,
    InsufficientCollateral,
    InvalidConfiguration,
    InvalidUtilization,
    OperationRejected,
    OraclePriceUnavailable,
    ReserveEngineError,
)
from .logging_setup import configure_logging
from .models import (
    InterestRateParams,
    Reserve,
    ReserveConfiguration,
    ReserveData,
    ReserveState,
    UserAccountSnapshot,
    UserPosition,
)
from .services import LendingPool

__all__ = [
    "ArithmeticOverflow",
    "ClockRegression",
    "DivisionByZero",
    "EngineConfig",
    "HEALTH_FACTOR_INFINITE",
    "InsufficientCollateral",
    "InterestRateParams",
    "InvalidConfiguration",
    "InvalidUtilization",
    "LendingPool",
    "MAX_AMOUNT",
    "OperationRejected",
    "OraclePriceUnavailable",
    "RAY",
    "Reserve",
    "ReserveConfiguration",
    "ReserveData",
    "ReserveEngineError",
    "ReserveState",
    "SECONDS_PER_YEAR",
    "UserAccountSnapshot",
    "UserPosition",
    "WAD",
    "configure_logging",
    "load_config",
]
