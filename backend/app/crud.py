from __future__ import annotations

from sqlalchemy.orm import Session

from app.domain import Wager
from app.repositories import CoinLedger, WagerRepository, WagerStatusCounts

from .models import CoinAccount, CoinTransaction


def open_account(session: Session, user_id: str, *, initial_balance: float = 0) -> CoinAccount:
    return CoinLedger(session).open_account(user_id, initial_balance)


def get_balance(session: Session, user_id: str) -> float:
    return CoinLedger(session).balance(user_id)


def list_transactions(session: Session, user_id: str, *, limit: int = 50) -> list[CoinTransaction]:
    return CoinLedger(session).transactions(user_id, limit=limit)


def add_wager(session: Session, wager: Wager) -> Wager:
    return WagerRepository(session).add(wager)


def get_wager(session: Session, wager_id: str) -> Wager | None:
    return WagerRepository(session).get(wager_id)


def list_wagers(
    session: Session,
    *,
    status: str | None = None,
    sport: str | None = None,
    user_id: str | None = None,
    limit: int = 50,
) -> list[Wager]:
    return WagerRepository(session).list_wagers(
        status=status, sport=sport, user_id=user_id, limit=limit
    )


def wager_status_counts(session: Session) -> WagerStatusCounts:
    return WagerRepository(session).status_counts()
