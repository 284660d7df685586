"""Collaborator interfaces for the reserve engine."""
from .price_oracle import PriceOracle

__all__ = ["PriceOracle"]
