"""Repository abstractions for database interactions."""

from .ledger_repository import CoinLedger
from .types import DecodeErrorHandler, Ledger, ResultFeed, WagerStatusCounts, WagerStore
from .wager_repository import WagerRepository

__all__ = [
    "CoinLedger",
    "DecodeErrorHandler",
    "Ledger",
    "ResultFeed",
    "WagerRepository",
    "WagerStatusCounts",
    "WagerStore",
]
