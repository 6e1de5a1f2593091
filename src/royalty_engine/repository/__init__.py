"""Persistence adapters."""

from royalty_engine.repository.base import ExpenseFilter, PayoutFilter, RoyaltyRepository
from royalty_engine.repository.memory import InMemoryRepository

__all__ = [
    "ExpenseFilter",
    "PayoutFilter",
    "RoyaltyRepository",
    "InMemoryRepository",
]
