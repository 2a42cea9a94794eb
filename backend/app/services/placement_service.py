"""Validate and record new wagers, debiting the stake from the coin ledger."""

from __future__ import annotations

import math
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Mapping, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.domain import BetType, GameRef, Leg, Selection, Wager, WagerValidationError
from app.repositories import CoinLedger, WagerRepository
from app.settlement import parlay_payout, payout, resolve_sport

REASON_WAGER = "bet_wager"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlacementService:
    def __init__(
        self,
        repository: WagerRepository,
        ledger: CoinLedger,
        *,
        sport_key_map: Mapping[str, str] | None = None,
        min_legs: int = 2,
        max_legs: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._ledger = ledger
        self._sport_key_map = dict(sport_key_map or {})
        self._min_legs = min_legs
        self._max_legs = max_legs
        self._clock = clock or _utcnow

    @classmethod
    def from_session(
        cls,
        session: Session,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "PlacementService":
        settings = settings or get_settings()
        return cls(
            WagerRepository(session),
            CoinLedger(session),
            sport_key_map=settings.sport_key_map,
            min_legs=settings.parlay_min_legs,
            max_legs=settings.parlay_max_legs,
            clock=clock,
        )

    def place_single(
        self,
        user_id: str,
        stake: float,
        game: GameRef,
        selection: Selection,
        *,
        odds_source: str | None = None,
    ) -> Wager:
        units = self._validate_stake(stake)
        now = self._clock()
        game = self._validate_game(game, now)

        wager = Wager(
            wager_id=str(uuid.uuid4()),
            user_id=user_id,
            bet_type=BetType.SINGLE,
            stake=units,
            potential_payout=payout(units, selection.odds),
            game=game,
            selection=selection,
            placed_at=now,
            odds_source=odds_source or "unknown",
        )
        with self._repository.atomic():
            self._ledger.debit(
                user_id,
                units,
                REASON_WAGER,
                f"Bet on {game.matchup}",
                {"game_id": game.game_id, "bet_type": BetType.SINGLE.value},
            )
            self._repository.add(wager)
        logger.info(
            "Placed single wager {} for {}: {} on {}", wager.wager_id, user_id, units, game.matchup
        )
        return wager

    def place_parlay(
        self,
        user_id: str,
        stake: float,
        legs: Sequence[tuple[GameRef, Selection]],
        *,
        odds_source: str | None = None,
    ) -> Wager:
        units = self._validate_stake(stake)
        if len(legs) < self._min_legs:
            raise WagerValidationError(f"Parlay must have at least {self._min_legs} legs")
        if len(legs) > self._max_legs:
            raise WagerValidationError(f"Parlay cannot exceed {self._max_legs} legs")

        game_ids = [game.game_id for game, _ in legs]
        if len(set(game_ids)) != len(game_ids):
            raise WagerValidationError("Parlay cannot contain duplicate games")

        now = self._clock()
        legs = [(self._validate_game(game, now), selection) for game, selection in legs]

        quote = parlay_payout(units, [selection.odds for _, selection in legs])
        wager = Wager(
            wager_id=str(uuid.uuid4()),
            user_id=user_id,
            bet_type=BetType.PARLAY,
            stake=units,
            potential_payout=quote.potential_payout,
            legs=tuple(Leg(game=game, selection=selection) for game, selection in legs),
            combined_odds=quote.combined_odds,
            placed_at=now,
            odds_source=odds_source or "unknown",
        )
        with self._repository.atomic():
            self._ledger.debit(
                user_id,
                units,
                REASON_WAGER,
                f"{len(legs)}-leg parlay",
                {"bet_type": BetType.PARLAY.value, "leg_count": len(legs)},
            )
            self._repository.add(wager)
        logger.info(
            "Placed {}-leg parlay {} for {}: {} at {}",
            len(legs),
            wager.wager_id,
            user_id,
            units,
            quote.combined_odds,
        )
        return wager

    @staticmethod
    def _validate_stake(stake: float) -> int:
        if isinstance(stake, bool) or not isinstance(stake, (int, float)) or not math.isfinite(stake):
            raise WagerValidationError("Invalid wager amount")
        units = math.floor(stake)
        if units <= 0:
            raise WagerValidationError("Invalid wager amount")
        return units

    def _validate_game(self, game: GameRef, now: datetime) -> GameRef:
        """Check a game can take bets and return it with its sport resolved."""

        if not game.game_id or not game.home_team or not game.away_team:
            raise WagerValidationError("Each game needs an id and both teams")
        if game.commence_time is None:
            raise WagerValidationError(f"{game.matchup} has no commence time")
        if game.commence_time <= now:
            raise WagerValidationError(f"Cannot bet on {game.matchup}: game has already started")
        sport = resolve_sport(game, self._sport_key_map)
        if sport is None:
            raise WagerValidationError(f"Cannot determine the sport for {game.matchup}")
        return replace(game, sport=sport)


__all__ = ["PlacementService", "REASON_WAGER"]
