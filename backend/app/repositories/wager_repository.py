"""Wager persistence, including the guarded status transition used by settlement."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.domain import (
    BetType,
    GameRef,
    Leg,
    ScoreSnapshot,
    Selection,
    Wager,
    WagerStatus,
    WagerUpdate,
)
from app.models import WagerRecord

from .types import DecodeErrorHandler, WagerStatusCounts


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _as_decimal(value: float) -> Decimal:
    return Decimal(str(value))


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _shared_sport(legs: tuple[Leg, ...]) -> str | None:
    sports = {leg.game.sport for leg in legs}
    if len(sports) != 1:
        return None
    return sports.pop()


def record_to_wager(record: WagerRecord) -> Wager:
    bet_type = BetType(record.bet_type)
    game = None
    selection = None
    legs: tuple[Leg, ...] = ()
    if bet_type is BetType.SINGLE:
        game = GameRef(
            game_id=record.game_id or "",
            home_team=record.home_team or "",
            away_team=record.away_team or "",
            commence_time=_as_utc(record.commence_time),
            sport=record.sport,
            sport_key=record.sport_key,
        )
        selection = Selection.from_dict(record.selection or {})
    else:
        legs = tuple(Leg.from_dict(leg) for leg in record.legs or [])

    return Wager(
        wager_id=record.wager_id,
        user_id=record.user_id,
        bet_type=bet_type,
        stake=int(record.stake),
        potential_payout=_as_float(record.potential_payout) or 0.0,
        status=WagerStatus(record.status),
        game=game,
        selection=selection,
        legs=legs,
        combined_odds=_as_float(record.combined_odds),
        actual_payout=_as_float(record.actual_payout) or 0.0,
        result=ScoreSnapshot.from_dict(record.result),
        placed_at=_as_utc(record.placed_at),
        settled_at=_as_utc(record.settled_at),
        odds_source=record.odds_source,
        revision=record.revision or 0,
    )


def wager_to_record(wager: Wager) -> WagerRecord:
    record = WagerRecord(
        wager_id=wager.wager_id,
        user_id=wager.user_id,
        bet_type=wager.bet_type.value,
        status=wager.status.value,
        stake=wager.stake,
        potential_payout=_as_decimal(wager.potential_payout),
        actual_payout=_as_decimal(wager.actual_payout),
        combined_odds=_as_decimal(wager.combined_odds) if wager.combined_odds is not None else None,
        result=wager.result.to_dict() if wager.result else None,
        odds_source=wager.odds_source,
        settled_at=wager.settled_at,
        revision=0,
    )
    if wager.placed_at is not None:
        record.placed_at = wager.placed_at
    if wager.game is not None:
        record.game_id = wager.game.game_id
        record.sport = wager.game.sport
        record.sport_key = wager.game.sport_key
        record.home_team = wager.game.home_team
        record.away_team = wager.game.away_team
        record.commence_time = wager.game.commence_time
    if wager.selection is not None:
        record.selection = wager.selection.to_dict()
    if wager.legs:
        record.legs = [leg.to_dict() for leg in wager.legs]
        record.sport = _shared_sport(wager.legs)
    return record


class WagerRepository:
    """SQL-backed wager store."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Commit everything written inside the block, or roll it all back."""

        try:
            yield
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    def add(self, wager: Wager) -> Wager:
        self._session.add(wager_to_record(wager))
        self._session.flush()
        return wager

    def compare_and_update(
        self,
        wager_id: str,
        expected_status: WagerStatus,
        changes: WagerUpdate,
        *,
        expected_revision: int | None = None,
    ) -> bool:
        """Apply ``changes`` only if the wager still has ``expected_status``.

        With ``expected_revision`` the row must also be unchanged since it was
        loaded. Returns False when another writer already moved the wager on; in
        that case no row is touched.
        """

        values: dict[str, Any] = {"revision": WagerRecord.revision + 1}
        if changes.status is not None:
            values["status"] = changes.status.value
        if changes.actual_payout is not None:
            values["actual_payout"] = _as_decimal(changes.actual_payout)
        if changes.result is not None:
            values["result"] = changes.result.to_dict()
        if changes.legs is not None:
            values["legs"] = [leg.to_dict() for leg in changes.legs]
        if changes.settled_at is not None:
            values["settled_at"] = changes.settled_at

        conditions = [
            WagerRecord.wager_id == wager_id,
            WagerRecord.status == WagerStatus(expected_status).value,
        ]
        if expected_revision is not None:
            conditions.append(WagerRecord.revision == expected_revision)

        statement = (
            update(WagerRecord)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(statement)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Queries

    def get(self, wager_id: str) -> Wager | None:
        query = (
            select(WagerRecord)
            .where(WagerRecord.wager_id == wager_id)
            .execution_options(populate_existing=True)
        )
        record = self._session.execute(query).scalar_one_or_none()
        if record is None:
            return None
        return record_to_wager(record)

    def list_pending(self, on_error: DecodeErrorHandler | None = None) -> list[Wager]:
        """Load every pending wager.

        Rows that cannot be decoded are handed to ``on_error`` and skipped; with
        no handler the decode error propagates.
        """

        query = (
            select(WagerRecord)
            .where(WagerRecord.status == WagerStatus.PENDING.value)
            .order_by(WagerRecord.placed_at.asc(), WagerRecord.wager_id.asc())
            .execution_options(populate_existing=True)
        )
        records = self._session.execute(query).scalars().all()
        wagers: list[Wager] = []
        for record in records:
            try:
                wagers.append(record_to_wager(record))
            except (ValueError, KeyError, TypeError) as exc:
                if on_error is None:
                    raise
                on_error(record.wager_id, exc)
        return wagers

    def list_wagers(
        self,
        *,
        status: str | None = None,
        sport: str | None = None,
        user_id: str | None = None,
        limit: int = 50,
    ) -> list[Wager]:
        filters: list[Any] = []
        if status:
            filters.append(WagerRecord.status == status)
        if sport:
            filters.append(WagerRecord.sport == sport.upper())
        if user_id:
            filters.append(WagerRecord.user_id == user_id)

        query = (
            select(WagerRecord)
            .where(*filters)
            .order_by(WagerRecord.placed_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        records = self._session.execute(query).scalars().all()
        return [record_to_wager(record) for record in records]

    def status_counts(self) -> WagerStatusCounts:
        query = select(WagerRecord.status, func.count(WagerRecord.wager_id)).group_by(
            WagerRecord.status
        )
        rows = self._session.execute(query).all()
        return WagerStatusCounts(counts={status: int(count) for status, count in rows})


__all__ = ["WagerRepository", "record_to_wager", "wager_to_record"]
