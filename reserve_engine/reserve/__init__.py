"""Per-reserve accounting: configuration codec, rate model, index accrual."""
from .accrual import accrue, init_reserve_state, normalized_debt, normalized_income, update_rates
from .configuration import decode, encode, validate_configuration, validate_rate_params
from .interest_rate import calculate_interest_rates, calculate_utilization

__all__ = [
    "accrue",
    "calculate_interest_rates",
    "calculate_utilization",
    "decode",
    "encode",
    "init_reserve_state",
    "normalized_debt",
    "normalized_income",
    "update_rates",
    "validate_configuration",
    "validate_rate_params",
]
