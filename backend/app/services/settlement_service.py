"""Settle pending wagers against final game results and pay out winners."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.domain import (
    FinalScore,
    Found,
    GameRef,
    GameResult,
    Leg,
    LegStatus,
    MalformedWagerError,
    NotFinal,
    Outcome,
    ScoreSnapshot,
    SettlementLoadError,
    Wager,
    WagerAlreadySettledError,
    WagerNotFoundError,
    WagerStatus,
    WagerUpdate,
    WagerValidationError,
)
from app.repositories import CoinLedger, Ledger, ResultFeed, WagerRepository, WagerStore
from app.settlement import (
    FetchKey,
    LegPrice,
    TeamResolver,
    default_team_aliases,
    evaluate,
    fetch_key_for,
    find_result,
    recalculate_after_push,
    resolve_sport,
)

Clock = Callable[[], datetime]

REASON_WIN = "bet_win"
REASON_PUSH = "bet_push"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SettlementSummary:
    processed: int = 0
    settled: int = 0
    errors: int = 0
    deferred: int = 0
    failed_fetches: int = 0
    credited: float = 0.0

    def record(self, outcome: "SettlementOutcome") -> None:
        if outcome.status is WagerStatus.PENDING:
            self.deferred += 1
        elif outcome.applied:
            self.settled += 1
        if outcome.credited:
            self.credited = round(self.credited + outcome.payout, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "settled": self.settled,
            "errors": self.errors,
            "deferred": self.deferred,
            "failed_fetches": self.failed_fetches,
            "credited": self.credited,
        }


@dataclass(slots=True, frozen=True)
class SettlementOutcome:
    """What one settlement attempt did to one wager."""

    wager_id: str
    status: WagerStatus
    payout: float = 0.0
    applied: bool = False
    credited: bool = False
    reason: str | None = None
    legs_resolved: int = 0


@dataclass(slots=True, frozen=True)
class GameDebugInfo:
    home_team: str
    away_team: str
    home_normalized: str
    away_normalized: str
    sport: str | None
    feed_date: date | None
    leg_index: int | None = None
    leg_status: LegStatus | None = None


@dataclass(slots=True, frozen=True)
class WagerDebugInfo:
    wager: Wager
    games: list[GameDebugInfo] = field(default_factory=list)


def _describe_key(key: FetchKey) -> str:
    sport, on_date = key
    return f"{sport} {on_date.isoformat()}"


def _single_payout(wager: Wager, outcome: Outcome) -> float:
    if outcome is Outcome.WON:
        return float(wager.potential_payout)
    if outcome is Outcome.PUSH:
        return float(wager.stake)
    return 0.0


def _single_description(wager: Wager, status: WagerStatus) -> str:
    if status is WagerStatus.WON:
        return f"Won bet: {wager.describe()}"
    return f"Push: {wager.describe()}"


def _parlay_description(wager: Wager, status: WagerStatus) -> str:
    leg_count = len(wager.legs)
    if status is WagerStatus.WON:
        return f"Won {leg_count}-leg parlay"
    if status is WagerStatus.PARTIAL:
        return f"Partial parlay payout ({leg_count} legs, some pushed)"
    return f"Push: {leg_count}-leg parlay"


def derive_parlay_status(wager: Wager, legs: Sequence[Leg]) -> tuple[WagerStatus, float]:
    """Parlay status and payout implied by the current leg statuses."""

    statuses = [leg.status for leg in legs]
    if LegStatus.LOST in statuses:
        return WagerStatus.LOST, 0.0
    if LegStatus.PENDING in statuses:
        return WagerStatus.PENDING, 0.0
    if LegStatus.PUSH in statuses:
        recalculated = recalculate_after_push(
            wager.stake,
            [LegPrice(status=leg.status, odds=leg.selection.odds) for leg in legs],
        )
        return recalculated.status, recalculated.payout
    return WagerStatus.WON, float(wager.potential_payout)


class SettlementService:
    """Runs settlement passes and the admin actions built on them.

    Every wager is settled inside its own ``store.atomic()`` block: the guarded
    status transition and the ledger credit it triggers commit together or not
    at all. Failures are contained per wager and per fetched ``(sport, date)``
    pair; only a failure to load the pending list aborts a pass.
    """

    def __init__(
        self,
        store: WagerStore,
        feed: ResultFeed,
        ledger: Ledger,
        resolver: TeamResolver,
        *,
        sport_key_map: Mapping[str, str] | None = None,
        feed_zone: ZoneInfo | None = None,
        max_fetch_workers: int = 4,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._feed = feed
        self._ledger = ledger
        self._resolver = resolver
        self._sport_key_map = dict(sport_key_map or {})
        self._feed_zone = feed_zone or ZoneInfo("America/New_York")
        self._max_fetch_workers = max(1, max_fetch_workers)
        self._clock = clock or _utcnow

    @classmethod
    def from_session(
        cls,
        session: Session,
        feed: ResultFeed,
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> "SettlementService":
        settings = settings or get_settings()
        return cls(
            WagerRepository(session),
            feed,
            CoinLedger(session),
            TeamResolver(default_team_aliases(settings.team_aliases_path)),
            sport_key_map=settings.sport_key_map,
            feed_zone=settings.feed_zone,
            max_fetch_workers=settings.settlement_fetch_concurrency,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Entry points

    def run_settlement_pass(self) -> SettlementSummary:
        summary = SettlementSummary()

        def _skip_undecodable(wager_id: str, exc: Exception) -> None:
            summary.processed += 1
            summary.errors += 1
            logger.opt(exception=exc).error("Skipping undecodable wager {}", wager_id)

        try:
            wagers = self._store.list_pending(on_error=_skip_undecodable)
        except Exception as exc:
            logger.exception("Unable to load pending wagers")
            raise SettlementLoadError("Unable to load pending wagers") from exc

        logger.info("Settlement pass starting with {} pending wagers", len(wagers))
        self._settle_batch(wagers, summary)
        logger.info("Settlement pass finished: {}", summary.to_dict())
        return summary

    def rescore_wager(self, wager_id: str) -> SettlementOutcome:
        """Settle one pending wager immediately, as a pass would."""

        wager = self._require_pending(wager_id)
        results, failed = self._fetch_all(self._fetch_keys([wager]))
        if failed:
            logger.warning("Rescore of {} ran with {} failed fetches", wager_id, failed)
        with self._store.atomic():
            outcome = self._settle_one(wager, results, self._clock())
        logger.info("Rescored wager {}: {}", wager_id, outcome)
        return outcome

    def manual_settle(
        self,
        wager_id: str,
        outcome: Outcome | str,
        *,
        home_score: int | None = None,
        away_score: int | None = None,
    ) -> SettlementOutcome:
        """Settle a pending single wager with an administrator supplied outcome."""

        try:
            chosen = Outcome(outcome)
        except ValueError as exc:
            raise WagerValidationError(
                f"Invalid outcome {outcome!r}; use won, lost, or push"
            ) from exc

        wager = self._require_pending(wager_id)
        if wager.is_parlay:
            raise WagerValidationError("Manual settlement is only supported for single wagers")

        now = self._clock()
        snapshot = ScoreSnapshot(
            home_score=home_score,
            away_score=away_score,
            scored_at=now,
            manually_settled=True,
        )
        with self._store.atomic():
            result = self._apply_single(wager, chosen, snapshot, now)
            if not result.applied:
                raise WagerAlreadySettledError(f"Wager {wager_id} was settled concurrently")
        logger.info("Manually settled wager {} as {}", wager_id, chosen.value)
        return result

    def describe_wager(self, wager_id: str) -> WagerDebugInfo:
        """Report the normalized identities and feed keys used to match a wager."""

        wager = self._store.get(wager_id)
        if wager is None:
            raise WagerNotFoundError(f"Wager {wager_id} not found")

        games: list[GameDebugInfo] = []
        if wager.is_parlay:
            for index, leg in enumerate(wager.legs):
                games.append(self._debug_game(leg.game, leg_index=index, leg_status=leg.status))
        elif wager.game is not None:
            games.append(self._debug_game(wager.game))
        return WagerDebugInfo(wager=wager, games=games)

    # ------------------------------------------------------------------
    # Batch plumbing

    def _require_pending(self, wager_id: str) -> Wager:
        wager = self._store.get(wager_id)
        if wager is None:
            raise WagerNotFoundError(f"Wager {wager_id} not found")
        if wager.status is not WagerStatus.PENDING:
            raise WagerAlreadySettledError(
                f"Wager {wager_id} is already {wager.status.value}"
            )
        return wager

    def _settle_batch(self, wagers: Sequence[Wager], summary: SettlementSummary) -> None:
        results, failed = self._fetch_all(self._fetch_keys(wagers))
        summary.failed_fetches += failed
        summary.errors += failed

        now = self._clock()
        for wager in wagers:
            summary.processed += 1
            try:
                with self._store.atomic():
                    outcome = self._settle_one(wager, results, now)
            except Exception:
                logger.exception(
                    "Failed to settle wager {} ({}) [{}]",
                    wager.wager_id,
                    wager.describe(),
                    self._log_context(wager),
                )
                summary.errors += 1
                continue
            summary.record(outcome)
            if outcome.status is WagerStatus.PENDING and outcome.reason:
                logger.debug("Wager {} deferred: {}", wager.wager_id, outcome.reason)

    def _games_to_fetch(self, wager: Wager) -> Iterable[GameRef]:
        if wager.is_parlay:
            return [leg.game for leg in wager.legs if leg.status is LegStatus.PENDING]
        return [wager.game] if wager.game is not None else []

    def _fetch_keys(self, wagers: Iterable[Wager]) -> list[FetchKey]:
        keys: set[FetchKey] = set()
        for wager in wagers:
            for game in self._games_to_fetch(wager):
                try:
                    keys.add(fetch_key_for(game, self._sport_key_map, self._feed_zone))
                except MalformedWagerError:
                    # Reported when the wager itself is settled.
                    continue
        return sorted(keys)

    def _fetch_all(
        self, keys: Sequence[FetchKey]
    ) -> tuple[dict[FetchKey, list[GameResult]], int]:
        results: dict[FetchKey, list[GameResult]] = {}
        if not keys:
            return results, 0

        failed = 0
        workers = min(self._max_fetch_workers, len(keys))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scores") as executor:
            futures = {
                executor.submit(self._feed.fetch_results, sport, on_date): (sport, on_date)
                for sport, on_date in keys
            }
            for future in as_completed(futures):
                key = futures[future]
                try:
                    results[key] = list(future.result())
                except Exception:
                    failed += 1
                    logger.exception("Failed to fetch results for {}", _describe_key(key))
        logger.info("Fetched results for {}/{} sport-date pairs", len(results), len(keys))
        return results, failed

    def _log_context(self, wager: Wager) -> str:
        parts: list[str] = []
        for game in self._games_to_fetch(wager):
            sport = resolve_sport(game, self._sport_key_map) or "?"
            when = (
                game.commence_time.astimezone(self._feed_zone).date().isoformat()
                if game.commence_time
                else "?"
            )
            parts.append(f"{sport} {when}")
        return ", ".join(parts) or "no pending games"

    def _debug_game(
        self,
        game: GameRef,
        *,
        leg_index: int | None = None,
        leg_status: LegStatus | None = None,
    ) -> GameDebugInfo:
        sport = resolve_sport(game, self._sport_key_map)
        feed_date = (
            game.commence_time.astimezone(self._feed_zone).date() if game.commence_time else None
        )
        return GameDebugInfo(
            home_team=game.home_team,
            away_team=game.away_team,
            home_normalized=self._resolver.normalize(game.home_team, sport),
            away_normalized=self._resolver.normalize(game.away_team, sport),
            sport=sport,
            feed_date=feed_date,
            leg_index=leg_index,
            leg_status=leg_status,
        )

    # ------------------------------------------------------------------
    # Per-wager settlement

    def _settle_one(
        self,
        wager: Wager,
        results: Mapping[FetchKey, Sequence[GameResult]],
        now: datetime,
    ) -> SettlementOutcome:
        if wager.is_parlay:
            return self._settle_parlay(wager, results, now)
        return self._settle_single(wager, results, now)

    def _lookup(
        self, game: GameRef, results: Mapping[FetchKey, Sequence[GameResult]]
    ) -> tuple[FinalScore | None, str]:
        key = fetch_key_for(game, self._sport_key_map, self._feed_zone)
        batch = results.get(key)
        if batch is None:
            return None, f"results unavailable for {_describe_key(key)}"
        match = find_result(game, key[0], batch, self._resolver)
        if isinstance(match, Found):
            return match.score, ""
        if isinstance(match, NotFinal):
            return None, f"{game.matchup} not final ({match.status or 'unknown status'})"
        return None, f"no result for {game.matchup} on {_describe_key(key)}"

    def _settle_single(
        self,
        wager: Wager,
        results: Mapping[FetchKey, Sequence[GameResult]],
        now: datetime,
    ) -> SettlementOutcome:
        if wager.game is None or wager.selection is None:
            raise MalformedWagerError(f"Single wager {wager.wager_id} has no game or selection")

        score, reason = self._lookup(wager.game, results)
        if score is None:
            return SettlementOutcome(wager_id=wager.wager_id, status=WagerStatus.PENDING, reason=reason)

        outcome = evaluate(wager.selection, score)
        return self._apply_single(wager, outcome, ScoreSnapshot.from_score(score, now), now)

    def _apply_single(
        self,
        wager: Wager,
        outcome: Outcome,
        snapshot: ScoreSnapshot,
        now: datetime,
    ) -> SettlementOutcome:
        status = WagerStatus(outcome.value)
        changes = WagerUpdate(
            status=status,
            actual_payout=_single_payout(wager, outcome),
            result=snapshot,
            settled_at=now,
        )
        return self._commit(wager, changes, _single_description(wager, status))

    def _settle_parlay(
        self,
        wager: Wager,
        results: Mapping[FetchKey, Sequence[GameResult]],
        now: datetime,
    ) -> SettlementOutcome:
        if not wager.legs:
            raise MalformedWagerError(f"Parlay {wager.wager_id} has no legs")

        legs = list(wager.legs)
        waiting: list[str] = []
        resolved = 0
        for index, leg in enumerate(legs):
            if leg.status is not LegStatus.PENDING:
                continue
            score, reason = self._lookup(leg.game, results)
            if score is None:
                waiting.append(reason)
                continue
            outcome = evaluate(leg.selection, score)
            legs[index] = replace(
                leg,
                status=LegStatus(outcome.value),
                result=ScoreSnapshot.from_score(score, now),
            )
            resolved += 1

        updated_legs = tuple(legs)
        status, amount = derive_parlay_status(wager, updated_legs)

        if status is WagerStatus.PENDING:
            reason = "; ".join(waiting) or None
            if not resolved:
                return SettlementOutcome(
                    wager_id=wager.wager_id, status=WagerStatus.PENDING, reason=reason
                )
            applied = self._store.compare_and_update(
                wager.wager_id,
                WagerStatus.PENDING,
                WagerUpdate(legs=updated_legs),
                expected_revision=wager.revision,
            )
            if not applied:
                logger.info(
                    "Parlay {} changed since it was loaded; leaving its legs to the other run",
                    wager.wager_id,
                )
            return SettlementOutcome(
                wager_id=wager.wager_id,
                status=WagerStatus.PENDING,
                applied=applied,
                reason=reason,
                legs_resolved=resolved,
            )

        changes = WagerUpdate(
            status=status,
            actual_payout=amount,
            legs=updated_legs,
            settled_at=now,
        )
        result = self._commit(
            wager,
            changes,
            _parlay_description(wager, status),
            expected_revision=wager.revision,
        )
        return replace(result, legs_resolved=resolved)

    def _commit(
        self,
        wager: Wager,
        changes: WagerUpdate,
        description: str,
        *,
        expected_revision: int | None = None,
    ) -> SettlementOutcome:
        status = changes.status or WagerStatus.PENDING
        amount = changes.actual_payout or 0.0

        if not self._store.compare_and_update(
            wager.wager_id, WagerStatus.PENDING, changes, expected_revision=expected_revision
        ):
            logger.info("Wager {} was already settled elsewhere; skipping", wager.wager_id)
            return SettlementOutcome(wager_id=wager.wager_id, status=status, applied=False)

        credited = False
        if amount > 0:
            self._ledger.credit(
                wager.user_id,
                amount,
                REASON_WIN if status is WagerStatus.WON else REASON_PUSH,
                description,
                {"wager_id": wager.wager_id},
            )
            credited = True

        logger.info(
            "Settled wager {} ({}) as {} paying {}",
            wager.wager_id,
            wager.describe(),
            status.value,
            amount,
        )
        return SettlementOutcome(
            wager_id=wager.wager_id,
            status=status,
            payout=amount,
            applied=True,
            credited=credited,
        )


__all__ = [
    "GameDebugInfo",
    "SettlementOutcome",
    "SettlementService",
    "SettlementSummary",
    "WagerDebugInfo",
    "derive_parlay_status",
]
