"""Price oracle implementations."""
from .static import StaticPriceOracle

__all__ = ["StaticPriceOracle"]
