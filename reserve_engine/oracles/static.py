"""In-memory price oracle backed by a fixed price table."""
from __future__ import annotations

import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    """Serve wad-scaled USD prices from a dict.

    Used when prices are pushed in by the caller (configuration, tests,
    replay of historical snapshots) rather than pulled from a feed.
    """

    def __init__(self, prices: Mapping[str, int] | None = None) -> None:
        self._prices: dict[str, int] = dict(prices or {})

    def get_asset_price_usd(self, asset_id: str) -> int:
        try:
            return self._prices[asset_id]
        except KeyError:
            raise LookupError(f"No price for asset '{asset_id}'") from None

    def set_asset_price(self, asset_id: str, price: int) -> None:
        if price < 0:
            raise ValueError(f"Price for '{asset_id}' must be non-negative")
        logger.info("Price for %s set to %d", asset_id, price)
        self._prices[asset_id] = price

    @property
    def prices(self) -> dict[str, int]:
        return dict(self._prices)
