from __future__ import annotations

import pytest

from app.domain import FinalScore, MalformedSelectionError, Outcome, Selection
from app.settlement import evaluate


def _pick(kind: str, side: str, point: float | None = None, odds: int = -110) -> Selection:
    return Selection(kind=kind, side=side, odds=odds, point=point)


@pytest.mark.parametrize(
    ("point", "expected"),
    [(-3.5, Outcome.WON), (-4, Outcome.PUSH), (-4.5, Outcome.LOST)],
)
def test_home_spread(point, expected):
    assert evaluate(_pick("spread", "home", point), FinalScore(28, 24)) is expected


def test_away_spread_covers_as_underdog():
    assert evaluate(_pick("spread", "away", 7.5), FinalScore(28, 21)) is Outcome.WON
    assert evaluate(_pick("spread", "away", 7), FinalScore(28, 21)) is Outcome.PUSH


@pytest.mark.parametrize("side", ["home", "away"])
def test_moneyline_tie_is_push(side):
    assert evaluate(_pick("moneyline", side), FinalScore(10, 10)) is Outcome.PUSH


def test_moneyline_winner_and_loser():
    score = FinalScore(home_score=3, away_score=7)
    assert evaluate(_pick("moneyline", "away"), score) is Outcome.WON
    assert evaluate(_pick("moneyline", "home"), score) is Outcome.LOST


def test_totals():
    score = FinalScore(24, 21)
    assert evaluate(_pick("total", "over", 44.5), score) is Outcome.WON
    assert evaluate(_pick("total", "under", 44.5), score) is Outcome.LOST
    assert evaluate(_pick("total", "under", 45), score) is Outcome.PUSH


def test_unknown_kind_is_rejected_at_construction():
    with pytest.raises(MalformedSelectionError):
        _pick("teaser", "home", 6)


@pytest.mark.parametrize(
    "payload",
    [
        {"kind": "total", "side": "home", "odds": -110, "point": 44.5},
        {"kind": "spread", "side": "over", "odds": -110, "point": 3},
        {"kind": "spread", "side": "home", "odds": -110},
        {"kind": "moneyline", "side": "home", "odds": 0},
        {"kind": "moneyline", "side": "home", "odds": "abc"},
    ],
)
def test_malformed_selections(payload):
    with pytest.raises(MalformedSelectionError):
        Selection.from_dict(payload)


def test_selection_from_dict_accepts_legacy_type_key():
    selection = Selection.from_dict({"type": "moneyline", "side": "away", "odds": -110.0, "point": 3})
    assert selection.odds == -110
    assert selection.point is None
