"""Lending pool service owning the reserve and position registries.

The pure functions in ``operations`` do the accounting; this class keeps the
records between calls and serializes access to them:

* each reserve has its own lock, so operations on independent reserves run
  in parallel;
* an operation holds the locks of every reserve it reads (the target
  reserves plus every reserve the acting user holds a position in),
  acquired in sorted id order, so health factors are computed on a
  consistent snapshot;
* updated records are committed only after the pure operation returns, so a
  rejected operation leaves nothing behind.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import ExitStack, contextmanager

from .. import operations
from ..config import EngineConfig
from ..constants import DEFAULT_CLOSE_FACTOR_BPS
from ..errors import PoolPaused, ReserveAlreadyExists, ReserveNotFound
from ..health import calculate_user_account_data
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    InterestRateParams,
    LiquidationResult,
    OperationResult,
    Reserve,
    ReserveConfiguration,
    ReserveData,
    UserAccountSnapshot,
    UserPosition,
)
from ..oracles import StaticPriceOracle
from ..reserve.configuration import encode

logger = logging.getLogger(__name__)


def _unix_now() -> int:
    return int(time.time())


class LendingPool:
    """Thread-safe registry of reserves and user positions."""

    def __init__(
        self,
        oracle: PriceOracle,
        paused: bool = False,
        close_factor: int = DEFAULT_CLOSE_FACTOR_BPS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._oracle = oracle
        self._paused = paused
        self._close_factor = close_factor
        self._clock = clock or _unix_now

        # Insertion order is the order reported by get_reserves_list.
        self._reserves: dict[str, Reserve] = {}
        self._reserve_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

        # user_id -> reserve_id -> position
        self._positions: dict[str, dict[str, UserPosition]] = {}
        self._positions_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        oracle: PriceOracle | None = None,
        now: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> LendingPool:
        """Build a pool with every configured reserve initialized at ``now``."""
        if oracle is None:
            oracle = StaticPriceOracle(config.price_oracle.prices)
        pool = cls(
            oracle,
            paused=config.pool.paused,
            close_factor=config.pool.close_factor,
            clock=clock,
        )
        for reserve_cfg in config.reserves:
            pool.add_reserve(
                reserve_cfg.reserve_id,
                reserve_cfg.to_configuration(),
                reserve_cfg.to_rate_params(),
                now=now,
            )
        return pool

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------

    def _now(self, now: int | None) -> int:
        return self._clock() if now is None else now

    def _require_unpaused(self) -> None:
        if self._paused:
            raise PoolPaused("Pool is paused")

    def _reserve(self, reserve_id: str) -> Reserve:
        with self._registry_lock:
            try:
                return self._reserves[reserve_id]
            except KeyError:
                raise ReserveNotFound("Unknown reserve", reserve_id=reserve_id) from None

    def _user_reserve_ids(self, user_id: str) -> set[str]:
        with self._positions_lock:
            return set(self._positions.get(user_id, {}))

    def _user_positions(self, user_id: str) -> dict[str, UserPosition]:
        with self._positions_lock:
            return dict(self._positions.get(user_id, {}))

    def _reserves_view(self, reserve_ids: Iterable[str]) -> dict[str, Reserve]:
        """Registered reserves among ``reserve_ids``, in registry order."""
        wanted = set(reserve_ids)
        with self._registry_lock:
            return {rid: r for rid, r in self._reserves.items() if rid in wanted}

    @contextmanager
    def _lock_reserves(self, reserve_ids: Iterable[str]) -> Iterator[None]:
        with self._registry_lock:
            locks = [
                self._reserve_locks[rid]
                for rid in sorted(set(reserve_ids))
                if rid in self._reserve_locks
            ]
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield

    @contextmanager
    def _lock_for_user(self, user_id: str, *reserve_ids: str) -> Iterator[set[str]]:
        """Lock ``reserve_ids`` plus every reserve the user has a position in.

        The user may open a position elsewhere while we wait for locks; in
        that case the wider set is locked on the next pass.
        """
        while True:
            ids = set(reserve_ids) | self._user_reserve_ids(user_id)
            with self._lock_reserves(ids):
                if self._user_reserve_ids(user_id) <= ids:
                    yield ids
                    return

    def _commit_reserves(self, reserves: dict[str, Reserve]) -> None:
        with self._registry_lock:
            self._reserves.update(reserves)

    def _commit(
        self,
        reserves: dict[str, Reserve],
        user_id: str,
        positions: dict[str, UserPosition],
    ) -> None:
        self._commit_reserves(reserves)
        with self._positions_lock:
            user_positions = self._positions.setdefault(user_id, {})
            for reserve_id, position in positions.items():
                if position.is_empty:
                    user_positions.pop(reserve_id, None)
                else:
                    user_positions[reserve_id] = position
            if not user_positions:
                del self._positions[user_id]

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def add_reserve(
        self,
        reserve_id: str,
        configuration: ReserveConfiguration,
        rate_params: InterestRateParams,
        now: int | None = None,
    ) -> Reserve:
        reserve = operations.init_reserve(reserve_id, configuration, rate_params, self._now(now))
        with self._registry_lock:
            if reserve_id in self._reserves:
                raise ReserveAlreadyExists("Reserve already registered", reserve_id=reserve_id)
            self._reserves[reserve_id] = reserve
            self._reserve_locks[reserve_id] = threading.Lock()
        return reserve

    def set_configuration(
        self, reserve_id: str, configuration: ReserveConfiguration, now: int | None = None
    ) -> Reserve:
        with self._lock_reserves([reserve_id]):
            updated = operations.set_configuration(
                self._reserve(reserve_id), configuration, self._now(now)
            )
            self._commit_reserves({reserve_id: updated})
        return updated

    def set_interest_rate_params(
        self, reserve_id: str, params: InterestRateParams, now: int | None = None
    ) -> Reserve:
        with self._lock_reserves([reserve_id]):
            updated = operations.set_interest_rate_params(
                self._reserve(reserve_id), params, self._now(now)
            )
            self._commit_reserves({reserve_id: updated})
        return updated

    def deactivate_reserve(self, reserve_id: str) -> Reserve:
        with self._lock_reserves([reserve_id]):
            updated = operations.deactivate_reserve(self._reserve(reserve_id))
            self._commit_reserves({reserve_id: updated})
        return updated

    def set_paused(self, paused: bool) -> None:
        logger.info("Pool %s", "paused" if paused else "unpaused")
        self._paused = paused

    @property
    def paused(self) -> bool:
        return self._paused

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def deposit(
        self, user_id: str, reserve_id: str, amount: int, now: int | None = None
    ) -> OperationResult:
        self._require_unpaused()
        with self._lock_reserves([reserve_id]):
            position = self._user_positions(user_id).get(reserve_id) or UserPosition(
                user_id, reserve_id
            )
            result = operations.deposit(self._reserve(reserve_id), position, amount, self._now(now))
            self._commit(result.reserves, user_id, result.positions)
        return result

    def withdraw(
        self, user_id: str, reserve_id: str, amount: int, now: int | None = None
    ) -> OperationResult:
        self._require_unpaused()
        self._reserve(reserve_id)
        with self._lock_for_user(user_id, reserve_id) as ids:
            result = operations.withdraw(
                self._reserves_view(ids),
                self._user_positions(user_id),
                user_id,
                reserve_id,
                amount,
                self._now(now),
                self._oracle,
            )
            self._commit(result.reserves, user_id, result.positions)
        return result

    def borrow(
        self, user_id: str, reserve_id: str, amount: int, now: int | None = None
    ) -> OperationResult:
        self._require_unpaused()
        self._reserve(reserve_id)
        with self._lock_for_user(user_id, reserve_id) as ids:
            result = operations.borrow(
                self._reserves_view(ids),
                self._user_positions(user_id),
                user_id,
                reserve_id,
                amount,
                self._now(now),
                self._oracle,
            )
            self._commit(result.reserves, user_id, result.positions)
        return result

    def repay(
        self, user_id: str, reserve_id: str, amount: int, now: int | None = None
    ) -> OperationResult:
        self._require_unpaused()
        with self._lock_reserves([reserve_id]):
            position = self._user_positions(user_id).get(reserve_id) or UserPosition(
                user_id, reserve_id
            )
            result = operations.repay(self._reserve(reserve_id), position, amount, self._now(now))
            self._commit(result.reserves, user_id, result.positions)
        return result

    def liquidate(
        self,
        borrower_id: str,
        collateral_reserve_id: str,
        debt_reserve_id: str,
        debt_to_cover: int,
        now: int | None = None,
    ) -> LiquidationResult:
        self._require_unpaused()
        self._reserve(collateral_reserve_id)
        self._reserve(debt_reserve_id)
        with self._lock_for_user(borrower_id, collateral_reserve_id, debt_reserve_id) as ids:
            result = operations.liquidate(
                self._reserves_view(ids),
                self._user_positions(borrower_id),
                borrower_id,
                collateral_reserve_id,
                debt_reserve_id,
                debt_to_cover,
                self._now(now),
                self._oracle,
                close_factor=self._close_factor,
            )
            self._commit(result.reserves, borrower_id, result.borrower_positions)
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_reserves_list(self) -> list[str]:
        with self._registry_lock:
            return list(self._reserves)

    def get_reserve(self, reserve_id: str) -> Reserve:
        return self._reserve(reserve_id)

    def get_reserve_data(self, reserve_id: str) -> ReserveData:
        reserve = self._reserve(reserve_id)
        state = reserve.state
        return ReserveData(
            reserve_id=reserve_id,
            liquidity_index=state.liquidity_index,
            borrow_index=state.borrow_index,
            current_liquidity_rate=state.current_liquidity_rate,
            current_borrow_rate=state.current_borrow_rate,
            configuration=reserve.configuration,
            configuration_word=encode(reserve.configuration),
            total_borrows=state.total_borrows,
            available_liquidity=state.available_liquidity,
            last_update_timestamp=state.last_update_timestamp,
        )

    def get_user_position(self, user_id: str, reserve_id: str) -> UserPosition:
        position = self._user_positions(user_id).get(reserve_id)
        return position or UserPosition(user_id, reserve_id)

    def get_user_account_data(self, user_id: str, now: int | None = None) -> UserAccountSnapshot:
        with self._lock_for_user(user_id) as ids:
            return calculate_user_account_data(
                self._reserves_view(ids),
                self._user_positions(user_id),
                self._oracle,
                self._now(now),
            )
