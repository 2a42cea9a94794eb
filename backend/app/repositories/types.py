"""Collaborator contracts and shared repository result types."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Protocol, Sequence

from app.domain import GameResult, Wager, WagerStatus, WagerUpdate

DecodeErrorHandler = Callable[[str, Exception], None]


class WagerStore(Protocol):
    def list_pending(self, on_error: DecodeErrorHandler | None = None) -> list[Wager]: ...

    def get(self, wager_id: str) -> Wager | None: ...

    def compare_and_update(
        self,
        wager_id: str,
        expected_status: WagerStatus,
        changes: WagerUpdate,
        *,
        expected_revision: int | None = None,
    ) -> bool: ...

    def atomic(self) -> AbstractContextManager[None]: ...


class ResultFeed(Protocol):
    def fetch_results(self, sport: str, on_date: date) -> Sequence[GameResult]: ...


class Ledger(Protocol):
    def credit(
        self,
        user_id: str,
        amount: float,
        reason_code: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> float: ...


@dataclass(slots=True)
class WagerStatusCounts:
    """Per-status totals shown alongside admin wager listings."""

    counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, int]:
        return {status.value: self.counts.get(status.value, 0) for status in WagerStatus}


__all__ = ["DecodeErrorHandler", "Ledger", "ResultFeed", "WagerStatusCounts", "WagerStore"]
