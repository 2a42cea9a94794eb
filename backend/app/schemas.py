from datetime import date, datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.domain import (
    BetType,
    GameRef,
    Leg,
    LegStatus,
    Outcome,
    ScoreSnapshot as DomainScoreSnapshot,
    Selection as DomainSelection,
    SelectionKind,
    Side,
    Wager as DomainWager,
    WagerStatus,
)
from app.settlement import format_odds, format_point


class SelectionIn(BaseModel):
    kind: SelectionKind = Field(validation_alias=AliasChoices("kind", "type"))
    side: Side
    odds: int
    point: float | None = None

    def to_domain(self) -> DomainSelection:
        return DomainSelection(kind=self.kind, side=self.side, odds=self.odds, point=self.point)


class GameIn(BaseModel):
    game_id: str = Field(min_length=1)
    home_team: str = Field(min_length=1)
    away_team: str = Field(min_length=1)
    commence_time: datetime
    sport: str | None = None
    sport_key: str | None = None

    @field_validator("sport", mode="before")
    @classmethod
    def _upper_sport(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value).strip().upper()

    def to_domain(self) -> GameRef:
        commence_time = self.commence_time
        if commence_time.tzinfo is None:
            commence_time = commence_time.replace(tzinfo=timezone.utc)
        return GameRef(
            game_id=self.game_id,
            home_team=self.home_team,
            away_team=self.away_team,
            commence_time=commence_time,
            sport=self.sport,
            sport_key=self.sport_key,
        )


class LegIn(GameIn):
    selection: SelectionIn


class WagerCreate(BaseModel):
    user_id: str = Field(min_length=1)
    bet_type: BetType
    stake: float = Field(description="Whole coins; fractional amounts are floored")
    game: GameIn | None = None
    selection: SelectionIn | None = None
    legs: list[LegIn] | None = None
    odds_source: str | None = None


class Selection(BaseModel):
    kind: SelectionKind
    side: Side
    odds: int
    point: float | None = None
    odds_display: str
    point_display: str | None = None

    @classmethod
    def from_domain(cls, selection: DomainSelection) -> "Selection":
        return cls(
            kind=selection.kind,
            side=selection.side,
            odds=selection.odds,
            point=selection.point,
            odds_display=format_odds(selection.odds),
            point_display=format_point(selection.point) if selection.point is not None else None,
        )


class ScoreSnapshot(BaseModel):
    home_score: int | None = None
    away_score: int | None = None
    total_score: int | None = None
    scored_at: datetime | None = None
    manually_settled: bool = False

    @classmethod
    def from_domain(cls, snapshot: DomainScoreSnapshot | None) -> "ScoreSnapshot | None":
        if snapshot is None:
            return None
        return cls(
            home_score=snapshot.home_score,
            away_score=snapshot.away_score,
            total_score=snapshot.total_score,
            scored_at=snapshot.scored_at,
            manually_settled=snapshot.manually_settled,
        )


class WagerLeg(BaseModel):
    game_id: str
    home_team: str
    away_team: str
    commence_time: datetime | None = None
    sport: str | None = None
    sport_key: str | None = None
    selection: Selection
    status: LegStatus
    result: ScoreSnapshot | None = None

    @classmethod
    def from_domain(cls, leg: Leg) -> "WagerLeg":
        return cls(
            game_id=leg.game.game_id,
            home_team=leg.game.home_team,
            away_team=leg.game.away_team,
            commence_time=leg.game.commence_time,
            sport=leg.game.sport,
            sport_key=leg.game.sport_key,
            selection=Selection.from_domain(leg.selection),
            status=leg.status,
            result=ScoreSnapshot.from_domain(leg.result),
        )


class Wager(BaseModel):
    wager_id: str
    user_id: str
    bet_type: BetType
    status: WagerStatus
    stake: int
    potential_payout: float
    actual_payout: float
    combined_odds: float | None = None
    game_id: str | None = None
    home_team: str | None = None
    away_team: str | None = None
    commence_time: datetime | None = None
    sport: str | None = None
    selection: Selection | None = None
    legs: list[WagerLeg] = Field(default_factory=list)
    result: ScoreSnapshot | None = None
    odds_source: str | None = None
    placed_at: datetime | None = None
    settled_at: datetime | None = None

    @classmethod
    def from_domain(cls, wager: DomainWager) -> "Wager":
        game = wager.game
        return cls(
            wager_id=wager.wager_id,
            user_id=wager.user_id,
            bet_type=wager.bet_type,
            status=wager.status,
            stake=wager.stake,
            potential_payout=wager.potential_payout,
            actual_payout=wager.actual_payout,
            combined_odds=wager.combined_odds,
            game_id=game.game_id if game else None,
            home_team=game.home_team if game else None,
            away_team=game.away_team if game else None,
            commence_time=game.commence_time if game else None,
            sport=game.sport if game else None,
            selection=Selection.from_domain(wager.selection) if wager.selection else None,
            legs=[WagerLeg.from_domain(leg) for leg in wager.legs],
            result=ScoreSnapshot.from_domain(wager.result),
            odds_source=wager.odds_source,
            placed_at=wager.placed_at,
            settled_at=wager.settled_at,
        )


class WagerList(BaseModel):
    total: int
    items: list[Wager]


class AdminWagerList(WagerList):
    summary: dict[str, int]


class GameDebug(BaseModel):
    leg_index: int | None = None
    leg_status: LegStatus | None = None
    home_team: str
    away_team: str
    home_normalized: str
    away_normalized: str
    sport: str | None = None
    feed_date: date | None = None

    model_config = {"from_attributes": True}


class WagerDebug(BaseModel):
    wager: Wager
    games: list[GameDebug]


class ManualSettleRequest(BaseModel):
    outcome: Outcome
    home_score: int | None = Field(default=None, ge=0)
    away_score: int | None = Field(default=None, ge=0)


class SettlementOutcome(BaseModel):
    wager_id: str
    status: WagerStatus
    payout: float
    applied: bool
    credited: bool
    reason: str | None = None
    legs_resolved: int = 0

    model_config = {"from_attributes": True}


class SettlementRunSummary(BaseModel):
    processed: int
    settled: int
    errors: int
    deferred: int = 0
    failed_fetches: int = 0
    credited: float = 0.0


class CoinTransaction(BaseModel):
    transaction_id: int
    kind: str
    reason_code: str
    amount: float
    balance_after: float
    description: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("amount", "balance_after", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> float:
        return float(value)


class Account(BaseModel):
    user_id: str
    balance: float
    transactions: list[CoinTransaction] = Field(default_factory=list)
