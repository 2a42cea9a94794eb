"""Odds conversion and payout math for single and parlay wagers.

Payouts are total returns (stake included) rounded half-up to cents; combined
parlay odds are reported rounded to three decimals for display.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol, Sequence

from app.domain import LegStatus, WagerStatus

_CENTS = Decimal("0.01")
_THOUSANDTHS = Decimal("0.001")


class PricedLeg(Protocol):
    status: LegStatus | str
    odds: int


@dataclass(slots=True, frozen=True)
class ParlayQuote:
    combined_odds: float
    potential_payout: float


@dataclass(slots=True, frozen=True)
class PushRecalculation:
    status: WagerStatus
    payout: float


@dataclass(slots=True, frozen=True)
class LegPrice:
    """Minimal leg view used when recalculating a parlay after pushes."""

    status: LegStatus
    odds: int


def _round(value: float, quantum: Decimal) -> float:
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def american_to_decimal(odds: int) -> float:
    """Convert American odds (``+150``, ``-110``) to a decimal multiplier."""

    if odds == 0:
        raise ValueError("American odds cannot be zero")
    if odds > 0:
        return odds / 100 + 1
    return 100 / abs(odds) + 1


def payout(stake: float, odds: int) -> float:
    """Total return for a winning single bet, including the stake."""

    return _round(stake * american_to_decimal(odds), _CENTS)


def profit(stake: float, odds: int) -> float:
    return _round(payout(stake, odds) - stake, _CENTS)


def _combined_decimal(leg_odds: Iterable[int]) -> float:
    combined = 1.0
    for odds in leg_odds:
        combined *= american_to_decimal(odds)
    return combined


def parlay_payout(stake: float, leg_odds: Sequence[int]) -> ParlayQuote:
    combined = _combined_decimal(leg_odds)
    return ParlayQuote(
        combined_odds=_round(combined, _THOUSANDTHS),
        potential_payout=_round(stake * combined, _CENTS),
    )


def recalculate_after_push(stake: float, legs: Sequence[PricedLeg]) -> PushRecalculation:
    """Reprice a fully resolved, loss-free parlay that contains pushed legs.

    Pushed legs are dropped from the parlay rather than counted at even money.
    With no winning legs left the stake is refunded as a push; a single winner
    pays as a straight bet and two or more are repriced as a smaller parlay.
    """

    winners = [leg for leg in legs if LegStatus(leg.status) is LegStatus.WON]

    if not winners:
        return PushRecalculation(status=WagerStatus.PUSH, payout=float(stake))

    if len(winners) == 1:
        return PushRecalculation(
            status=WagerStatus.PARTIAL, payout=payout(stake, winners[0].odds)
        )

    quote = parlay_payout(stake, [leg.odds for leg in winners])
    return PushRecalculation(status=WagerStatus.PARTIAL, payout=quote.potential_payout)


def format_odds(odds: int) -> str:
    return f"+{odds}" if odds > 0 else str(odds)


def format_point(point: float) -> str:
    if point == 0:
        return "PK"
    text = f"{point:g}"
    return f"+{text}" if point > 0 else text


__all__ = [
    "LegPrice",
    "ParlayQuote",
    "PushRecalculation",
    "american_to_decimal",
    "format_odds",
    "format_point",
    "parlay_payout",
    "payout",
    "profit",
    "recalculate_after_push",
]
