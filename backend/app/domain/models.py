"""Typed domain representations shared by settlement, persistence, and APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union

from dateutil import parser as date_parser

from .errors import MalformedSelectionError


class BetType(str, Enum):
    SINGLE = "single"
    PARLAY = "parlay"


class SelectionKind(str, Enum):
    SPREAD = "spread"
    MONEYLINE = "moneyline"
    TOTAL = "total"


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"
    OVER = "over"
    UNDER = "under"


class Outcome(str, Enum):
    WON = "won"
    LOST = "lost"
    PUSH = "push"


class LegStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    PUSH = "push"


class WagerStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    PUSH = "push"
    PARTIAL = "partial"


TEAM_SIDES = frozenset({Side.HOME, Side.AWAY})
TOTAL_SIDES = frozenset({Side.OVER, Side.UNDER})


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, TypeError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(slots=True, frozen=True)
class Selection:
    """A bet-type specific pick; validated on construction."""

    kind: SelectionKind
    side: Side
    odds: int
    point: float | None = None

    def __post_init__(self) -> None:
        try:
            kind = SelectionKind(self.kind)
        except ValueError as exc:
            raise MalformedSelectionError(f"Unknown selection kind: {self.kind!r}") from exc
        try:
            side = Side(self.side)
        except ValueError as exc:
            raise MalformedSelectionError(f"Unknown selection side: {self.side!r}") from exc

        if isinstance(self.odds, bool) or not isinstance(self.odds, int):
            raise MalformedSelectionError(f"Odds must be a signed integer, got {self.odds!r}")
        if self.odds == 0:
            raise MalformedSelectionError("Odds cannot be zero")

        point = self.point
        if kind is SelectionKind.MONEYLINE:
            if side not in TEAM_SIDES:
                raise MalformedSelectionError("Moneyline selections must pick home or away")
            point = None
        else:
            allowed = TEAM_SIDES if kind is SelectionKind.SPREAD else TOTAL_SIDES
            if side not in allowed:
                raise MalformedSelectionError(
                    f"{kind.value} selections cannot take side {side.value}"
                )
            if point is None:
                raise MalformedSelectionError(f"{kind.value} selections require a point")
            try:
                point = float(point)
            except (TypeError, ValueError) as exc:
                raise MalformedSelectionError(f"Invalid point value: {self.point!r}") from exc

        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "side", side)
        object.__setattr__(self, "point", point)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Selection:
        if not isinstance(payload, Mapping):
            raise MalformedSelectionError("Selection payload must be a mapping")
        kind = payload.get("kind") or payload.get("type")
        odds = payload.get("odds")
        if isinstance(odds, float) and odds.is_integer():
            odds = int(odds)
        elif isinstance(odds, str):
            try:
                odds = int(odds.strip())
            except ValueError as exc:
                raise MalformedSelectionError(f"Invalid odds value: {odds!r}") from exc
        return cls(kind=kind, side=payload.get("side"), odds=odds, point=payload.get("point"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "side": self.side.value,
            "odds": self.odds,
            "point": self.point,
        }


@dataclass(slots=True, frozen=True)
class GameRef:
    """Reference to the scheduled game a wager or leg was placed on."""

    game_id: str
    home_team: str
    away_team: str
    commence_time: datetime | None
    sport: str | None = None
    sport_key: str | None = None

    @property
    def matchup(self) -> str:
        return f"{self.away_team} @ {self.home_team}"

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> GameRef:
        return cls(
            game_id=str(payload.get("game_id") or ""),
            home_team=str(payload.get("home_team") or ""),
            away_team=str(payload.get("away_team") or ""),
            commence_time=parse_datetime(payload.get("commence_time")),
            sport=payload.get("sport"),
            sport_key=payload.get("sport_key"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "commence_time": _isoformat(self.commence_time),
            "sport": self.sport,
            "sport_key": self.sport_key,
        }


@dataclass(slots=True, frozen=True)
class FinalScore:
    home_score: int
    away_score: int

    @property
    def total_score(self) -> int:
        return self.home_score + self.away_score


@dataclass(slots=True, frozen=True)
class ScoreSnapshot:
    """Final score recorded on a wager or leg when it settles."""

    home_score: int | None
    away_score: int | None
    scored_at: datetime | None
    manually_settled: bool = False

    @property
    def total_score(self) -> int | None:
        if self.home_score is None or self.away_score is None:
            return None
        return self.home_score + self.away_score

    @classmethod
    def from_score(cls, score: FinalScore, scored_at: datetime) -> ScoreSnapshot:
        return cls(home_score=score.home_score, away_score=score.away_score, scored_at=scored_at)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> ScoreSnapshot | None:
        if not payload:
            return None
        return cls(
            home_score=payload.get("home_score"),
            away_score=payload.get("away_score"),
            scored_at=parse_datetime(payload.get("scored_at")),
            manually_settled=bool(payload.get("manually_settled", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "home_score": self.home_score,
            "away_score": self.away_score,
            "total_score": self.total_score,
            "scored_at": _isoformat(self.scored_at),
        }
        if self.manually_settled:
            payload["manually_settled"] = True
        return payload


@dataclass(slots=True, frozen=True)
class Leg:
    game: GameRef
    selection: Selection
    status: LegStatus = LegStatus.PENDING
    result: ScoreSnapshot | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Leg:
        return cls(
            game=GameRef.from_dict(payload),
            selection=Selection.from_dict(payload.get("selection") or {}),
            status=LegStatus(payload.get("status") or LegStatus.PENDING.value),
            result=ScoreSnapshot.from_dict(payload.get("result")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = self.game.to_dict()
        payload.update(
            {
                "selection": self.selection.to_dict(),
                "status": self.status.value,
                "result": self.result.to_dict() if self.result else None,
            }
        )
        return payload


@dataclass(slots=True, frozen=True)
class Wager:
    """Immutable snapshot of a stored wager."""

    wager_id: str
    user_id: str
    bet_type: BetType
    stake: int
    potential_payout: float
    status: WagerStatus = WagerStatus.PENDING
    game: GameRef | None = None
    selection: Selection | None = None
    legs: tuple[Leg, ...] = ()
    combined_odds: float | None = None
    actual_payout: float = 0.0
    result: ScoreSnapshot | None = None
    placed_at: datetime | None = None
    settled_at: datetime | None = None
    odds_source: str | None = None
    revision: int = 0

    @property
    def is_parlay(self) -> bool:
        return self.bet_type is BetType.PARLAY

    def describe(self) -> str:
        if self.is_parlay:
            return f"{len(self.legs)}-leg parlay"
        return self.game.matchup if self.game else self.wager_id


@dataclass(slots=True, frozen=True)
class WagerUpdate:
    """Fields written by a guarded settlement transition; ``None`` means untouched."""

    status: WagerStatus | None = None
    actual_payout: float | None = None
    result: ScoreSnapshot | None = None
    legs: tuple[Leg, ...] | None = None
    settled_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class GameResult:
    """Provider result for one game, normalized but never persisted."""

    sport: str
    home_team: str
    away_team: str
    home_score: int | None
    away_score: int | None
    is_final: bool
    status: str | None = None
    game_id: str | None = None
    home_team_name: str | None = None
    away_team_name: str | None = None
    raw_data: dict[str, Any] | None = field(default=None, compare=False)


@dataclass(slots=True, frozen=True)
class NotFound:
    pass


@dataclass(slots=True, frozen=True)
class NotFinal:
    status: str | None = None


@dataclass(slots=True, frozen=True)
class Found:
    score: FinalScore
    game: GameResult


MatchOutcome = Union[NotFound, NotFinal, Found]
