"""Service modules"""
from .pool import LendingPool

__all__ = ["LendingPool"]
