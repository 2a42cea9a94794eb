from __future__ import annotations

import json
import os
import sys
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{Path(tempfile.mkdtemp(prefix='wagers-')) / 'wagers.db'}"
)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings
from app.db import init_db
from app.domain import (
    BetType,
    GameRef,
    GameResult,
    Leg,
    Selection,
    SelectionKind,
    Side,
    Wager,
    WagerStatus,
    WagerUpdate,
)
from app.settlement import TeamResolver, default_team_aliases, parlay_payout, payout

NOW = datetime(2025, 10, 13, 12, 0, tzinfo=timezone.utc)
# 8:20pm Eastern on 2025-10-12.
KICKOFF = datetime(2025, 10, 13, 0, 20, tzinfo=timezone.utc)
GAME_DAY = date(2025, 10, 12)


class FakeWagerStore:
    """In-memory wager store with the same guarded-update contract as SQL."""

    def __init__(self, wagers: list[Wager] | None = None) -> None:
        self.wagers: dict[str, Wager] = {wager.wager_id: wager for wager in wagers or []}
        self.update_calls: list[tuple[str, WagerStatus, WagerUpdate]] = []
        self.rows_updated = 0
        self.commits = 0
        self.rollbacks = 0
        self.fail_load = False

    def list_pending(self, on_error=None) -> list[Wager]:
        if self.fail_load:
            raise RuntimeError("database unavailable")
        return [wager for wager in self.wagers.values() if wager.status is WagerStatus.PENDING]

    def get(self, wager_id: str) -> Wager | None:
        return self.wagers.get(wager_id)

    def add(self, wager: Wager) -> Wager:
        self.wagers[wager.wager_id] = wager
        return wager

    def compare_and_update(
        self,
        wager_id: str,
        expected_status: WagerStatus,
        changes: WagerUpdate,
        *,
        expected_revision: int | None = None,
    ) -> bool:
        self.update_calls.append((wager_id, expected_status, changes))
        current = self.wagers.get(wager_id)
        if current is None or current.status is not expected_status:
            return False
        if expected_revision is not None and current.revision != expected_revision:
            return False
        updates: dict[str, Any] = {"revision": current.revision + 1}
        if changes.status is not None:
            updates["status"] = changes.status
        if changes.actual_payout is not None:
            updates["actual_payout"] = changes.actual_payout
        if changes.result is not None:
            updates["result"] = changes.result
        if changes.legs is not None:
            updates["legs"] = changes.legs
        if changes.settled_at is not None:
            updates["settled_at"] = changes.settled_at
        self.wagers[wager_id] = replace(current, **updates)
        self.rows_updated += 1
        return True

    @contextmanager
    def atomic(self):
        snapshot = dict(self.wagers)
        try:
            yield
        except Exception:
            self.wagers = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1


class FakeFeed:
    """Result feed keyed by ``(sport, date)``; values may be exceptions to raise."""

    def __init__(self, results: dict[tuple[str, date], Any] | None = None) -> None:
        self.results = dict(results or {})
        self.calls: list[tuple[str, date]] = []
        self._lock = threading.Lock()

    def fetch_results(self, sport: str, on_date: date) -> list[GameResult]:
        with self._lock:
            self.calls.append((sport, on_date))
        value = self.results.get((sport, on_date), [])
        if isinstance(value, Exception):
            raise value
        return list(value)


class FakeLedger:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.credits: list[dict[str, Any]] = []
        self.balances: dict[str, float] = {}
        self.fail_for = fail_for or set()

    def credit(self, user_id, amount, reason_code, description, metadata=None) -> float:
        if user_id in self.fail_for:
            raise RuntimeError(f"ledger unavailable for {user_id}")
        self.credits.append(
            {
                "user_id": user_id,
                "amount": amount,
                "reason_code": reason_code,
                "description": description,
                "metadata": metadata,
            }
        )
        self.balances[user_id] = round(self.balances.get(user_id, 0.0) + amount, 2)
        return self.balances[user_id]


def make_game(
    home: str = "Philadelphia Eagles",
    away: str = "Dallas Cowboys",
    *,
    game_id: str = "g-1",
    sport: str | None = "NFL",
    sport_key: str | None = None,
    commence_time: datetime | None = KICKOFF,
) -> GameRef:
    return GameRef(
        game_id=game_id,
        home_team=home,
        away_team=away,
        commence_time=commence_time,
        sport=sport,
        sport_key=sport_key,
    )


def make_selection(
    kind: str = "moneyline", side: str = "home", odds: int = -110, point: float | None = None
) -> Selection:
    return Selection(kind=SelectionKind(kind), side=Side(side), odds=odds, point=point)


def make_single(
    wager_id: str = "w-1",
    *,
    user_id: str = "user-1",
    stake: int = 100,
    game: GameRef | None = None,
    selection: Selection | None = None,
    status: WagerStatus = WagerStatus.PENDING,
) -> Wager:
    selection = selection or make_selection()
    return Wager(
        wager_id=wager_id,
        user_id=user_id,
        bet_type=BetType.SINGLE,
        stake=stake,
        potential_payout=payout(stake, selection.odds),
        status=status,
        game=game or make_game(),
        selection=selection,
        placed_at=NOW,
    )


def make_parlay(
    wager_id: str,
    legs: list[Leg],
    *,
    user_id: str = "user-1",
    stake: int = 10,
) -> Wager:
    quote = parlay_payout(stake, [leg.selection.odds for leg in legs])
    return Wager(
        wager_id=wager_id,
        user_id=user_id,
        bet_type=BetType.PARLAY,
        stake=stake,
        potential_payout=quote.potential_payout,
        legs=tuple(legs),
        combined_odds=quote.combined_odds,
        placed_at=NOW,
    )


def final_result(
    home: str,
    away: str,
    home_score: int | None,
    away_score: int | None,
    *,
    sport: str = "NFL",
    is_final: bool = True,
    status: str = "Final",
    game_id: str | None = None,
) -> GameResult:
    return GameResult(
        sport=sport,
        home_team=home,
        away_team=away,
        home_score=home_score,
        away_score=away_score,
        is_final=is_final,
        status=status,
        game_id=game_id,
    )


@pytest.fixture
def resolver() -> TeamResolver:
    return TeamResolver(default_team_aliases())


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def sample_scores_payload() -> list[dict[str, object]]:
    path = Path(__file__).parent / "data" / "sample_scores.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'wagers.db'}",
        results_feed_api_key="test-key",
        settlement_fetch_concurrency=2,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path/'wagers.db'}", connect_args={"check_same_thread": False}
    )
    init_db(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()
