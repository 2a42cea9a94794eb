from __future__ import annotations

from contextlib import contextmanager
from datetime import date

from loguru import logger
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.domain import GameResult

from .client import SportsDataClient
from .normalize import normalize_game_result


@contextmanager
def session_scope() -> Session:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class ScoresFeed:
    """Result feed backed by the scores-by-date provider endpoints."""

    def __init__(self, client: SportsDataClient | None = None) -> None:
        self._client = client or SportsDataClient()

    def fetch_results(self, sport: str, on_date: date) -> list[GameResult]:
        raw_games = self._client.fetch_scores_by_date(sport, on_date)
        results = [normalize_game_result(raw_game, sport) for raw_game in raw_games]
        final_count = sum(1 for result in results if result.is_final)
        logger.info(
            "Fetched {} {} games for {} ({} final)", len(results), sport, on_date, final_count
        )
        return results

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ScoresFeed":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ScoresFeed", "session_scope"]
