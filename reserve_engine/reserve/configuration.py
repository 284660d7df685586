"""Reserve configuration codec — packs risk parameters into one word.

Layout (bit offsets, least significant first):

    0-15   ltv                      (bps)
    16-31  liquidation threshold    (bps)
    32-47  liquidation bonus        (bps, >= 10000)
    48-55  decimals
    56-63  flags: bit0 active, bit1 frozen, bit2 borrowing enabled
    64-79  reserve factor           (bps)
    80-255 reserved, must be zero

The engine works on ``ReserveConfiguration`` records; the packed word only
exists at the storage / wire boundary.
"""
from __future__ import annotations

from ..constants import MAX_UINT256, PERCENTAGE_FACTOR, RAY
from ..errors import InvalidConfiguration
from ..models import InterestRateParams, ReserveConfiguration

LTV_START_BIT = 0
LIQUIDATION_THRESHOLD_START_BIT = 16
LIQUIDATION_BONUS_START_BIT = 32
DECIMALS_START_BIT = 48
FLAGS_START_BIT = 56
RESERVE_FACTOR_START_BIT = 64
RESERVED_START_BIT = 80

LTV_MASK = 0xFFFF
LIQUIDATION_THRESHOLD_MASK = 0xFFFF
LIQUIDATION_BONUS_MASK = 0xFFFF
DECIMALS_MASK = 0xFF
FLAGS_MASK = 0xFF
RESERVE_FACTOR_MASK = 0xFFFF

FLAG_ACTIVE = 1 << 0
FLAG_FROZEN = 1 << 1
FLAG_BORROWING_ENABLED = 1 << 2
_KNOWN_FLAGS = FLAG_ACTIVE | FLAG_FROZEN | FLAG_BORROWING_ENABLED


def validate_configuration(
    config: ReserveConfiguration, reserve_id: str | None = None
) -> ReserveConfiguration:
    """Check every field range and cross-field invariant.

    Returns the configuration unchanged so callers can validate inline.
    """

    def fail(message: str, **context: object) -> InvalidConfiguration:
        return InvalidConfiguration(message, reserve_id=reserve_id, **context)

    if not 0 <= config.ltv <= PERCENTAGE_FACTOR:
        raise fail("ltv must be within 0-10000 bps", ltv=config.ltv)
    if not config.ltv <= config.liquidation_threshold <= PERCENTAGE_FACTOR:
        raise fail(
            "liquidation threshold must be >= ltv and <= 10000 bps",
            ltv=config.ltv,
            liquidation_threshold=config.liquidation_threshold,
        )
    if not PERCENTAGE_FACTOR <= config.liquidation_bonus <= LIQUIDATION_BONUS_MASK:
        raise fail(
            "liquidation bonus must be >= 10000 bps",
            liquidation_bonus=config.liquidation_bonus,
        )
    if not 0 <= config.decimals <= DECIMALS_MASK:
        raise fail("decimals must be within 0-255", decimals=config.decimals)
    if not 0 <= config.reserve_factor <= PERCENTAGE_FACTOR:
        raise fail(
            "reserve factor must be within 0-10000 bps",
            reserve_factor=config.reserve_factor,
        )
    return config


def validate_rate_params(
    params: InterestRateParams, reserve_id: str | None = None
) -> InterestRateParams:
    """Optimal utilization strictly inside (0, 1 ray); rates non-negative."""
    if not 0 < params.utilization_optimal < RAY:
        raise InvalidConfiguration(
            "utilization optimal must be strictly between 0 and 1 ray",
            reserve_id=reserve_id,
            utilization_optimal=params.utilization_optimal,
        )
    for name in ("base_borrow_rate", "slope1", "slope2"):
        value = getattr(params, name)
        if not 0 <= value <= MAX_UINT256:
            raise InvalidConfiguration(
                f"{name} must be a non-negative ray",
                reserve_id=reserve_id,
                **{name: value},
            )
    return params


def encode(config: ReserveConfiguration) -> int:
    """Pack a validated configuration into its word."""
    validate_configuration(config)

    flags = 0
    if config.is_active:
        flags |= FLAG_ACTIVE
    if config.is_frozen:
        flags |= FLAG_FROZEN
    if config.borrowing_enabled:
        flags |= FLAG_BORROWING_ENABLED

    return (
        config.ltv << LTV_START_BIT
        | config.liquidation_threshold << LIQUIDATION_THRESHOLD_START_BIT
        | config.liquidation_bonus << LIQUIDATION_BONUS_START_BIT
        | config.decimals << DECIMALS_START_BIT
        | flags << FLAGS_START_BIT
        | config.reserve_factor << RESERVE_FACTOR_START_BIT
    )


def decode(word: int) -> ReserveConfiguration:
    """Unpack a configuration word, rejecting corrupted words."""
    if not 0 <= word <= MAX_UINT256:
        raise InvalidConfiguration("configuration word out of range", word=word)
    if word >> RESERVED_START_BIT:
        raise InvalidConfiguration("reserved configuration bits are set", word=hex(word))

    flags = (word >> FLAGS_START_BIT) & FLAGS_MASK
    if flags & ~_KNOWN_FLAGS:
        raise InvalidConfiguration("unknown configuration flags are set", flags=bin(flags))

    config = ReserveConfiguration(
        ltv=(word >> LTV_START_BIT) & LTV_MASK,
        liquidation_threshold=(word >> LIQUIDATION_THRESHOLD_START_BIT)
        & LIQUIDATION_THRESHOLD_MASK,
        liquidation_bonus=(word >> LIQUIDATION_BONUS_START_BIT) & LIQUIDATION_BONUS_MASK,
        decimals=(word >> DECIMALS_START_BIT) & DECIMALS_MASK,
        reserve_factor=(word >> RESERVE_FACTOR_START_BIT) & RESERVE_FACTOR_MASK,
        borrowing_enabled=bool(flags & FLAG_BORROWING_ENABLED),
        is_active=bool(flags & FLAG_ACTIVE),
        is_frozen=bool(flags & FLAG_FROZEN),
    )
    return validate_configuration(config)
