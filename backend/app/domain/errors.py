"""Exceptions raised by the settlement core and its collaborators."""

from __future__ import annotations


class MalformedSelectionError(ValueError):
    """A selection whose kind, side, point or odds cannot be settled."""


class MalformedWagerError(ValueError):
    """A stored wager is missing data required to locate its game."""


class WagerValidationError(ValueError):
    """A placement request violates wager construction rules."""


class WagerNotFoundError(LookupError):
    pass


class WagerAlreadySettledError(RuntimeError):
    pass


class SettlementLoadError(RuntimeError):
    """The pending wager list could not be loaded; the pass cannot run."""


class LedgerAccountNotFound(LookupError):
    pass


class InsufficientBalanceError(ValueError):
    pass


__all__ = [
    "InsufficientBalanceError",
    "LedgerAccountNotFound",
    "MalformedSelectionError",
    "MalformedWagerError",
    "SettlementLoadError",
    "WagerAlreadySettledError",
    "WagerNotFoundError",
    "WagerValidationError",
]
