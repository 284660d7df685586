"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from reserve_engine.constants import RAY, WAD
from reserve_engine.models import InterestRateParams, Reserve, ReserveConfiguration
from reserve_engine.operations import init_reserve
from reserve_engine.oracles import StaticPriceOracle
from reserve_engine.services import LendingPool

T0 = 1_700_000_000


# ---------------------------------------------------------------------------
# Parameter fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def dai_config() -> ReserveConfiguration:
    return ReserveConfiguration(
        ltv=7500,
        liquidation_threshold=8000,
        liquidation_bonus=10500,
        decimals=18,
        reserve_factor=1000,
        borrowing_enabled=True,
        is_active=True,
        is_frozen=False,
    )


@pytest.fixture()
def usdc_config() -> ReserveConfiguration:
    return ReserveConfiguration(
        ltv=8000,
        liquidation_threshold=8500,
        liquidation_bonus=10400,
        decimals=6,
        reserve_factor=1000,
    )


@pytest.fixture()
def weth_config() -> ReserveConfiguration:
    return ReserveConfiguration(
        ltv=8000,
        liquidation_threshold=8250,
        liquidation_bonus=10500,
        decimals=18,
        reserve_factor=1000,
    )


@pytest.fixture()
def rate_params() -> InterestRateParams:
    """Kinked curve of the DAI reserve: 80 % optimal, 4 % / 75 % slopes."""
    return InterestRateParams(
        utilization_optimal=8 * RAY // 10,
        base_borrow_rate=0,
        slope1=4 * RAY // 100,
        slope2=75 * RAY // 100,
    )


# ---------------------------------------------------------------------------
# Reserve fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def reserves(
    dai_config: ReserveConfiguration,
    usdc_config: ReserveConfiguration,
    weth_config: ReserveConfiguration,
    rate_params: InterestRateParams,
) -> dict[str, Reserve]:
    return {
        "DAI": init_reserve("DAI", dai_config, rate_params, T0),
        "USDC": init_reserve("USDC", usdc_config, rate_params, T0),
        "WETH": init_reserve("WETH", weth_config, rate_params, T0),
    }


@pytest.fixture()
def oracle() -> StaticPriceOracle:
    return StaticPriceOracle({"DAI": WAD, "USDC": WAD, "WETH": 2000 * WAD})


@pytest.fixture()
def pool(
    oracle: StaticPriceOracle,
    dai_config: ReserveConfiguration,
    usdc_config: ReserveConfiguration,
    weth_config: ReserveConfiguration,
    rate_params: InterestRateParams,
) -> LendingPool:
    pool = LendingPool(oracle, clock=lambda: T0)
    pool.add_reserve("DAI", dai_config, rate_params, now=T0)
    pool.add_reserve("USDC", usdc_config, rate_params, now=T0)
    pool.add_reserve("WETH", weth_config, rate_params, now=T0)
    return pool


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    pool:
      paused: false
      close_factor: 5000
    reserves:
      DAI:
        ltv: 7500
        liquidation_threshold: 8000
        liquidation_bonus: 10500
        decimals: 18
        reserve_factor: 1000
        borrowing_enabled: true
        interest_rate:
          utilization_optimal: "0.8"
          base_borrow_rate: "0"
          slope1: "0.04"
          slope2: "0.75"
      BTCB:
        ltv: 7000
        liquidation_threshold: 7500
        liquidation_bonus: 10900
        decimals: 18
        reserve_factor: 1000
        interest_rate:
          utilization_optimal: 0.6
          base_borrow_rate: 0
          slope1: 0.01
          slope2: 1
    price_oracle:
      provider: static
      prices:
        DAI: "1"
        BTCB: "60000.5"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
