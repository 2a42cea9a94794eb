from __future__ import annotations

from app.domain import FinalScore, MalformedSelectionError, Outcome, Selection, SelectionKind, Side


def _compare(ours: float, theirs: float) -> Outcome:
    if ours > theirs:
        return Outcome.WON
    if ours < theirs:
        return Outcome.LOST
    return Outcome.PUSH


def evaluate_spread(selection: Selection, score: FinalScore) -> Outcome:
    point = selection.point or 0.0
    if selection.side is Side.HOME:
        return _compare(score.home_score + point, score.away_score)
    if selection.side is Side.AWAY:
        return _compare(score.away_score + point, score.home_score)
    raise MalformedSelectionError(f"Spread selection cannot take side {selection.side.value}")


def evaluate_moneyline(selection: Selection, score: FinalScore) -> Outcome:
    if score.home_score == score.away_score:
        return Outcome.PUSH
    home_won = score.home_score > score.away_score
    if selection.side is Side.HOME:
        return Outcome.WON if home_won else Outcome.LOST
    if selection.side is Side.AWAY:
        return Outcome.LOST if home_won else Outcome.WON
    raise MalformedSelectionError(f"Moneyline selection cannot take side {selection.side.value}")


def evaluate_total(selection: Selection, score: FinalScore) -> Outcome:
    if selection.point is None:
        raise MalformedSelectionError("Total selections require a point")
    if selection.side is Side.OVER:
        return _compare(score.total_score, selection.point)
    if selection.side is Side.UNDER:
        return _compare(selection.point, score.total_score)
    raise MalformedSelectionError(f"Total selection cannot take side {selection.side.value}")


_EVALUATORS = {
    SelectionKind.SPREAD: evaluate_spread,
    SelectionKind.MONEYLINE: evaluate_moneyline,
    SelectionKind.TOTAL: evaluate_total,
}


def evaluate(selection: Selection, score: FinalScore) -> Outcome:
    """Grade a selection against a final score."""

    evaluator = _EVALUATORS.get(selection.kind)
    if evaluator is None:
        raise MalformedSelectionError(f"Unknown bet type: {selection.kind!r}")
    return evaluator(selection, score)


__all__ = ["evaluate", "evaluate_moneyline", "evaluate_spread", "evaluate_total"]
