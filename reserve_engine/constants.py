"""Fixed-point scales and protocol-wide constants."""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Fixed-point scales
# ---------------------------------------------------------------------------
WAD: int = 10**18
HALF_WAD: int = WAD // 2

RAY: int = 10**27
HALF_RAY: int = RAY // 2

WAD_RAY_RATIO: int = 10**9

PERCENTAGE_FACTOR: int = 10_000  # 100.00 % in basis points
HALF_PERCENTAGE: int = PERCENTAGE_FACTOR // 2

# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------
MAX_UINT256: int = 2**256 - 1

# Used as "entire balance" for withdraw / repay, and as the health factor of
# a user with no debt.
MAX_AMOUNT: int = MAX_UINT256
HEALTH_FACTOR_INFINITE: int = MAX_UINT256
HEALTH_FACTOR_LIQUIDATION_THRESHOLD: int = WAD

# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------
SECONDS_PER_YEAR: int = 365 * 24 * 60 * 60  # 31_536_000

# Gaps up to this length use the series expansion for compounding;
# anything longer is exponentiated exactly.
TAYLOR_MAX_SECONDS: int = 3 * 24 * 60 * 60

# ---------------------------------------------------------------------------
# Liquidation
# ---------------------------------------------------------------------------
DEFAULT_CLOSE_FACTOR_BPS: int = 5_000  # at most 50 % of a debt per call
