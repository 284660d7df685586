"""Configuration loader — reads config.yaml, interpolates env vars, validates.

Rates and utilizations are written as human decimals ("0.8", "0.04") and
converted to rays exactly; prices are USD decimals converted to wads.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import DEFAULT_CLOSE_FACTOR_BPS, PERCENTAGE_FACTOR, RAY, WAD
from .errors import InvalidConfiguration
from .models import InterestRateParams, ReserveConfiguration
from .reserve.configuration import validate_configuration, validate_rate_params

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InterestRateConfig:
    utilization_optimal: int = 8 * RAY // 10
    base_borrow_rate: int = 0
    slope1: int = 4 * RAY // 100
    slope2: int = 75 * RAY // 100


@dataclass(frozen=True)
class ReserveParamsConfig:
    reserve_id: str = ""
    ltv: int = 0
    liquidation_threshold: int = 0
    liquidation_bonus: int = PERCENTAGE_FACTOR
    decimals: int = 18
    reserve_factor: int = 0
    borrowing_enabled: bool = True
    active: bool = True
    frozen: bool = False
    interest_rate: InterestRateConfig = field(default_factory=InterestRateConfig)

    def to_configuration(self) -> ReserveConfiguration:
        return ReserveConfiguration(
            ltv=self.ltv,
            liquidation_threshold=self.liquidation_threshold,
            liquidation_bonus=self.liquidation_bonus,
            decimals=self.decimals,
            reserve_factor=self.reserve_factor,
            borrowing_enabled=self.borrowing_enabled,
            is_active=self.active,
            is_frozen=self.frozen,
        )

    def to_rate_params(self) -> InterestRateParams:
        return InterestRateParams(
            utilization_optimal=self.interest_rate.utilization_optimal,
            base_borrow_rate=self.interest_rate.base_borrow_rate,
            slope1=self.interest_rate.slope1,
            slope2=self.interest_rate.slope2,
        )


@dataclass(frozen=True)
class PoolConfig:
    paused: bool = False
    close_factor: int = DEFAULT_CLOSE_FACTOR_BPS


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    prices: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineConfig:
    pool: PoolConfig = field(default_factory=PoolConfig)
    reserves: tuple[ReserveParamsConfig, ...] = ()
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Decimal → fixed-point
# ---------------------------------------------------------------------------


def _to_scaled(value: Any, scale: int, name: str) -> int:
    """Convert a decimal literal to an integer at ``scale``, exactly."""
    try:
        scaled = Decimal(str(value)) * scale
    except InvalidOperation:
        raise InvalidConfiguration(f"'{name}' is not a number", value=value) from None
    if scaled != scaled.to_integral_value():
        raise InvalidConfiguration(f"'{name}' has more precision than the scale allows", value=value)
    return int(scaled)


def to_ray(value: Any, name: str = "value") -> int:
    return _to_scaled(value, RAY, name)


def to_wad(value: Any, name: str = "value") -> int:
    return _to_scaled(value, WAD, name)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_pool(raw: dict[str, Any]) -> PoolConfig:
    return PoolConfig(
        paused=bool(raw.get("paused", False)),
        close_factor=int(raw.get("close_factor", DEFAULT_CLOSE_FACTOR_BPS)),
    )


def _build_interest_rate(raw: dict[str, Any]) -> InterestRateConfig:
    return InterestRateConfig(
        utilization_optimal=to_ray(raw.get("utilization_optimal", "0.8"), "utilization_optimal"),
        base_borrow_rate=to_ray(raw.get("base_borrow_rate", "0"), "base_borrow_rate"),
        slope1=to_ray(raw.get("slope1", "0.04"), "slope1"),
        slope2=to_ray(raw.get("slope2", "0.75"), "slope2"),
    )


def _build_reserves(raw: dict[str, Any]) -> tuple[ReserveParamsConfig, ...]:
    reserves: list[ReserveParamsConfig] = []
    for reserve_id, cfg in raw.items():
        reserves.append(
            ReserveParamsConfig(
                reserve_id=str(reserve_id),
                ltv=int(cfg.get("ltv", 0)),
                liquidation_threshold=int(cfg.get("liquidation_threshold", 0)),
                liquidation_bonus=int(cfg.get("liquidation_bonus", PERCENTAGE_FACTOR)),
                decimals=int(cfg.get("decimals", 18)),
                reserve_factor=int(cfg.get("reserve_factor", 0)),
                borrowing_enabled=bool(cfg.get("borrowing_enabled", True)),
                active=bool(cfg.get("active", True)),
                frozen=bool(cfg.get("frozen", False)),
                interest_rate=_build_interest_rate(cfg.get("interest_rate", {})),
            )
        )
    return tuple(reserves)


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    prices = raw.get("prices", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        prices={str(k): to_wad(v, f"prices.{k}") for k, v in prices.items() if v != ""},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> EngineConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = EngineConfig(
        pool=_build_pool(raw.get("pool", {})),
        reserves=_build_reserves(raw.get("reserves", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s (%d reserves)", config_path, len(cfg.reserves))
    return cfg


def _validate(cfg: EngineConfig) -> None:
    """Raise InvalidConfiguration on invalid configuration."""
    if not cfg.reserves:
        raise InvalidConfiguration("At least one reserve must be configured")

    if not 0 < cfg.pool.close_factor <= PERCENTAGE_FACTOR:
        raise InvalidConfiguration(
            "Close factor must be within 1-10000 bps", close_factor=cfg.pool.close_factor
        )

    if cfg.price_oracle.provider != "static":
        raise InvalidConfiguration(
            f"Unknown price oracle provider '{cfg.price_oracle.provider}'"
        )

    for reserve in cfg.reserves:
        validate_configuration(reserve.to_configuration(), reserve.reserve_id)
        validate_rate_params(reserve.to_rate_params(), reserve.reserve_id)
