"""Coin balances and the append-only coin transaction log."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain import InsufficientBalanceError, LedgerAccountNotFound
from app.models import CoinAccount, CoinTransaction, utcnow


def _amount(value: float) -> Decimal:
    amount = Decimal(str(value))
    if amount <= 0:
        raise ValueError(f"Ledger amounts must be positive, got {value}")
    return amount


class CoinLedger:
    """Credit and debit in-app coin balances.

    Each balance change is a single guarded ``UPDATE`` followed by a
    transaction row, both inside the caller's session transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def open_account(self, user_id: str, initial_balance: float = 0) -> CoinAccount:
        account = self._session.get(CoinAccount, user_id)
        if account is None:
            account = CoinAccount(
                user_id=user_id,
                balance=Decimal(str(initial_balance)),
                lifetime_earned=Decimal("0"),
            )
            self._session.add(account)
            self._session.flush()
        return account

    def balance(self, user_id: str) -> float:
        value = self._session.execute(
            select(CoinAccount.balance).where(CoinAccount.user_id == user_id)
        ).scalar_one_or_none()
        if value is None:
            raise LedgerAccountNotFound(f"No coin account for user {user_id}")
        return float(value)

    def credit(
        self,
        user_id: str,
        amount: float,
        reason_code: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> float:
        value = _amount(amount)
        statement = (
            update(CoinAccount)
            .where(CoinAccount.user_id == user_id)
            .values(
                balance=CoinAccount.balance + value,
                lifetime_earned=CoinAccount.lifetime_earned + value,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(statement).rowcount != 1:
            raise LedgerAccountNotFound(f"No coin account for user {user_id}")

        new_balance = self.balance(user_id)
        self._record(user_id, "earn", reason_code, value, new_balance, description, metadata)
        logger.info("Credited {} coins to {} ({}); balance={}", value, user_id, reason_code, new_balance)
        return new_balance

    def debit(
        self,
        user_id: str,
        amount: float,
        reason_code: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> float:
        value = _amount(amount)
        statement = (
            update(CoinAccount)
            .where(CoinAccount.user_id == user_id, CoinAccount.balance >= value)
            .values(balance=CoinAccount.balance - value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(statement).rowcount != 1:
            current = self.balance(user_id)
            raise InsufficientBalanceError(
                f"Insufficient balance: {current} available, {value} required"
            )

        new_balance = self.balance(user_id)
        self._record(user_id, "spend", reason_code, -value, new_balance, description, metadata)
        return new_balance

    def transactions(self, user_id: str, *, limit: int = 50) -> list[CoinTransaction]:
        query = (
            select(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
            .order_by(CoinTransaction.transaction_id.desc())
            .limit(limit)
        )
        return list(self._session.execute(query).scalars().all())

    def _record(
        self,
        user_id: str,
        kind: str,
        reason_code: str,
        amount: Decimal,
        balance_after: float,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        self._session.add(
            CoinTransaction(
                user_id=user_id,
                kind=kind,
                reason_code=reason_code,
                amount=amount,
                balance_after=Decimal(str(balance_after)),
                description=description,
                details=metadata or {},
            )
        )
        self._session.flush()


__all__ = ["CoinLedger"]
