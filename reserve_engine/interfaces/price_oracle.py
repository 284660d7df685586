"""Price oracle protocol — USD price source abstraction."""
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching asset prices."""

    def get_asset_price_usd(self, asset_id: str) -> int:
        """Return the USD price of one whole unit of ``asset_id`` as a wad."""
        ...
