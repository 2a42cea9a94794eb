from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from app.domain import GameResult

FINAL_STATUSES = frozenset({"final", "f", "f/ot", "f/so", "closed", "complete", "completed"})


def _first_present(raw: dict[str, Any], *keys: str) -> Any:
    """Return the first key that is present and not None (zero scores count)."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _parse_score(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if decimal_value.is_nan():
        return None
    return int(decimal_value.to_integral_value(rounding=ROUND_HALF_UP))


def is_final_status(status: Any, is_closed: Any = None) -> bool:
    if is_closed is True:
        return True
    if not status:
        return False
    return str(status).strip().lower() in FINAL_STATUSES


def normalize_game_result(raw_game: dict[str, Any], sport: str) -> GameResult:
    status = raw_game.get("Status") or raw_game.get("status")
    raw_id = _first_present(raw_game, "GameID", "ScoreID", "GlobalGameID", "id")

    return GameResult(
        sport=sport.upper(),
        home_team=str(_first_present(raw_game, "HomeTeam", "home_team", "homeTeam") or ""),
        away_team=str(_first_present(raw_game, "AwayTeam", "away_team", "awayTeam") or ""),
        home_score=_parse_score(
            _first_present(raw_game, "HomeScore", "HomeTeamScore", "HomeTeamRuns", "home_score")
        ),
        away_score=_parse_score(
            _first_present(raw_game, "AwayScore", "AwayTeamScore", "AwayTeamRuns", "away_score")
        ),
        is_final=is_final_status(status, raw_game.get("IsClosed")),
        status=str(status) if status is not None else None,
        game_id=str(raw_id) if raw_id is not None else None,
        home_team_name=raw_game.get("HomeTeamName"),
        away_team_name=raw_game.get("AwayTeamName"),
        raw_data=raw_game,
    )


__all__ = ["FINAL_STATUSES", "is_final_status", "normalize_game_result"]
