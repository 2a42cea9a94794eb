from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WagerRecord(Base):
    __tablename__ = "wagers"

    wager_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    bet_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    stake: Mapped[int] = mapped_column(Integer, nullable=False)
    potential_payout: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    actual_payout: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    combined_odds: Mapped[float | None] = mapped_column(Numeric(18, 3), nullable=True)

    game_id: Mapped[str | None] = mapped_column(String, nullable=True)
    sport: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sport_key: Mapped[str | None] = mapped_column(String, nullable=True)
    home_team: Mapped[str | None] = mapped_column(String, nullable=True)
    away_team: Mapped[str | None] = mapped_column(String, nullable=True)
    commence_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    selection: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    legs: Mapped[list | None] = mapped_column(JSON, nullable=True)

    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    odds_source: Mapped[str | None] = mapped_column(String, nullable=True)
    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CoinAccount(Base):
    __tablename__ = "coin_accounts"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    balance: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    lifetime_earned: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class CoinTransaction(Base):
    __tablename__ = "coin_transactions"

    transaction_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    reason_code: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    balance_after: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
