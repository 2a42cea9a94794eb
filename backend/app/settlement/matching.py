"""Locate the final result for a wagered game within a results feed batch."""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from app.domain import (
    FinalScore,
    Found,
    GameRef,
    GameResult,
    MalformedWagerError,
    MatchOutcome,
    NotFinal,
    NotFound,
)

from .teams import TeamResolver

FetchKey = tuple[str, date]


def resolve_sport(game: GameRef, sport_key_map: Mapping[str, str]) -> str | None:
    """Return the results-feed sport code for a game reference."""

    if game.sport:
        return game.sport.strip().upper() or None
    if not game.sport_key:
        return None
    key = game.sport_key.strip().lower()
    mapped = sport_key_map.get(key)
    if mapped:
        return mapped.upper()
    parts = key.split("_")
    if len(parts) > 1 and parts[1]:
        return parts[1].upper()
    return None


def game_date(commence_time: datetime, zone: ZoneInfo) -> date:
    """Calendar date the feed files a game under."""

    return commence_time.astimezone(zone).date()


def fetch_key_for(game: GameRef, sport_key_map: Mapping[str, str], zone: ZoneInfo) -> FetchKey:
    sport = resolve_sport(game, sport_key_map)
    if not sport:
        raise MalformedWagerError(f"Cannot determine sport for game {game.game_id or game.matchup}")
    if game.commence_time is None:
        raise MalformedWagerError(f"Game {game.game_id or game.matchup} has no commence time")
    return sport, game_date(game.commence_time, zone)


def find_result(
    game: GameRef,
    sport: str,
    candidates: Sequence[GameResult],
    resolver: TeamResolver,
) -> MatchOutcome:
    """Match a game against a result batch, requiring both sides to agree.

    ``NotFinal`` means the game was found but cannot be settled yet; callers
    defer on it exactly as they do on ``NotFound``.
    """

    home_id = resolver.normalize(game.home_team, sport)
    away_id = resolver.normalize(game.away_team, sport)
    if not home_id or not away_id:
        return NotFound()

    found: list[GameResult] = []
    pending_status: str | None = None
    matched = False

    for candidate in candidates:
        if resolver.normalize(candidate.home_team, sport) != home_id:
            continue
        if resolver.normalize(candidate.away_team, sport) != away_id:
            continue
        matched = True
        if not candidate.is_final:
            pending_status = pending_status or candidate.status
            continue
        if candidate.home_score is None or candidate.away_score is None:
            logger.warning(
                "Final result for {} ({}) is missing scores; skipping candidate {}",
                game.matchup,
                sport,
                candidate.game_id,
            )
            continue
        found.append(candidate)

    if found:
        if len(found) > 1:
            logger.warning(
                "{} final results match {} ({}); using the first (game {})",
                len(found),
                game.matchup,
                sport,
                found[0].game_id,
            )
        chosen = found[0]
        return Found(
            score=FinalScore(home_score=int(chosen.home_score), away_score=int(chosen.away_score)),
            game=chosen,
        )

    if matched:
        return NotFinal(status=pending_status)
    return NotFound()


__all__ = ["FetchKey", "fetch_key_for", "find_result", "game_date", "resolve_sport"]
