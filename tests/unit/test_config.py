"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from reserve_engine.config import (
    EngineConfig,
    InterestRateConfig,
    PoolConfig,
    ReserveParamsConfig,
    _interpolate_env,
    load_config,
    to_ray,
    to_wad,
)
from reserve_engine.constants import RAY, WAD
from reserve_engine.errors import InvalidConfiguration
from reserve_engine.models import InterestRateParams, ReserveConfiguration


def _write(tmp_path: Path, content: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(textwrap.dedent(content))
    return cfg_file


MINIMAL_RESERVE = """\
    reserves:
      DAI:
        ltv: 7500
        liquidation_threshold: 8000
        liquidation_bonus: 10500
"""


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PRICE", "1.01")
        result = _interpolate_env({"prices": {"DAI": "${PRICE}"}, "plain": "text"})
        assert result == {"prices": {"DAI": "1.01"}, "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestFixedPointConversion:
    def test_string_decimal_to_ray(self) -> None:
        assert to_ray("0.04") == 4 * RAY // 100

    def test_float_is_converted_via_its_repr(self) -> None:
        assert to_ray(0.75) == 75 * RAY // 100

    def test_integer(self) -> None:
        assert to_ray(1) == RAY
        assert to_wad("60000") == 60_000 * WAD

    def test_not_a_number(self) -> None:
        with pytest.raises(InvalidConfiguration, match="not a number"):
            to_ray("four percent", "slope1")

    def test_too_precise(self) -> None:
        with pytest.raises(InvalidConfiguration, match="precision"):
            to_wad("0.0000000000000000001")


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, EngineConfig)
        assert cfg.pool == PoolConfig(paused=False, close_factor=5000)
        assert [r.reserve_id for r in cfg.reserves] == ["DAI", "BTCB"]

        dai = cfg.reserves[0]
        assert dai.ltv == 7500
        assert dai.reserve_factor == 1000
        assert dai.interest_rate == InterestRateConfig(
            utilization_optimal=8 * RAY // 10,
            base_borrow_rate=0,
            slope1=4 * RAY // 100,
            slope2=75 * RAY // 100,
        )

    def test_unquoted_numbers(self, sample_yaml_path: Path) -> None:
        btcb = load_config(sample_yaml_path).reserves[1]
        assert btcb.interest_rate.utilization_optimal == 6 * RAY // 10
        assert btcb.interest_rate.slope1 == RAY // 100
        assert btcb.interest_rate.slope2 == RAY

    def test_prices_are_wads(self, sample_yaml_path: Path) -> None:
        prices = load_config(sample_yaml_path).price_oracle.prices
        assert prices == {"DAI": WAD, "BTCB": 600_005 * WAD // 10}

    def test_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, MINIMAL_RESERVE))
        dai = cfg.reserves[0]
        assert dai.decimals == 18
        assert dai.reserve_factor == 0
        assert dai.borrowing_enabled
        assert dai.active and not dai.frozen
        assert dai.interest_rate == InterestRateConfig()
        assert cfg.pool.close_factor == 5000
        assert cfg.price_oracle.provider == "static"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_DAI_PRICE", "0.998")
        cfg_file = _write(
            tmp_path,
            MINIMAL_RESERVE
            + """\
    price_oracle:
      prices:
        DAI: "${TEST_DAI_PRICE}"
""",
        )
        cfg = load_config(cfg_file)
        assert cfg.price_oracle.prices == {"DAI": 998 * WAD // 1000}

    def test_unset_price_is_skipped(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("UNSET_PRICE_XYZ", raising=False)
        cfg_file = _write(
            tmp_path,
            MINIMAL_RESERVE
            + """\
    price_oracle:
      prices:
        DAI: "${UNSET_PRICE_XYZ}"
""",
        )
        assert load_config(cfg_file).price_oracle.prices == {}

    def test_default_config_file(self) -> None:
        cfg = load_config()
        assert [r.reserve_id for r in cfg.reserves] == ["DAI", "BTCB", "BUSD"]
        assert cfg.reserves[1].liquidation_bonus == 10900


class TestValidation:
    def test_no_reserves_raises(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidConfiguration, match="At least one reserve"):
            load_config(_write(tmp_path, "reserves: {}\n"))

    def test_close_factor_out_of_range(self, tmp_path: Path) -> None:
        content = MINIMAL_RESERVE + "    pool:\n      close_factor: 0\n"
        with pytest.raises(InvalidConfiguration, match="Close factor"):
            load_config(_write(tmp_path, content))

    def test_unknown_provider(self, tmp_path: Path) -> None:
        content = MINIMAL_RESERVE + "    price_oracle:\n      provider: chainlink\n"
        with pytest.raises(InvalidConfiguration, match="Unknown price oracle provider"):
            load_config(_write(tmp_path, content))

    def test_threshold_below_ltv(self, tmp_path: Path) -> None:
        content = """\
    reserves:
      DAI:
        ltv: 8500
        liquidation_threshold: 8000
        liquidation_bonus: 10500
"""
        with pytest.raises(InvalidConfiguration, match="liquidation threshold"):
            load_config(_write(tmp_path, content))

    def test_bad_kink(self, tmp_path: Path) -> None:
        content = MINIMAL_RESERVE + "        interest_rate:\n          utilization_optimal: 1\n"
        with pytest.raises(InvalidConfiguration, match="utilization optimal"):
            load_config(_write(tmp_path, content))

    def test_is_a_value_error(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "reserves: {}\n"))


class TestFrozenConfigs:
    def test_pool_config_immutable(self) -> None:
        p = PoolConfig()
        with pytest.raises(AttributeError):
            p.paused = True  # type: ignore[misc]

    def test_reserve_config_immutable(self) -> None:
        r = ReserveParamsConfig(reserve_id="DAI")
        with pytest.raises(AttributeError):
            r.ltv = 9000  # type: ignore[misc]


class TestConversionToModels:
    def test_to_configuration(self) -> None:
        r = ReserveParamsConfig(
            reserve_id="DAI",
            ltv=7500,
            liquidation_threshold=8000,
            liquidation_bonus=10500,
            frozen=True,
        )
        assert r.to_configuration() == ReserveConfiguration(
            ltv=7500,
            liquidation_threshold=8000,
            liquidation_bonus=10500,
            decimals=18,
            is_frozen=True,
        )

    def test_to_rate_params(self) -> None:
        params = ReserveParamsConfig(reserve_id="DAI").to_rate_params()
        assert params == InterestRateParams(
            utilization_optimal=8 * RAY // 10,
            base_borrow_rate=0,
            slope1=4 * RAY // 100,
            slope2=75 * RAY // 100,
        )
