from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from loguru import logger

from ingestion.service import ScoresFeed

from . import crud, schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import (
    BetType,
    InsufficientBalanceError,
    LedgerAccountNotFound,
    SettlementLoadError,
    WagerAlreadySettledError,
    WagerNotFoundError,
    WagerStatus,
)
from .services.placement_service import PlacementService
from .services.settlement_service import SettlementService

app = FastAPI(title="Wager Settlement API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database connections when the API boots."""

    init_db()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _scores_feed() -> Iterator[ScoresFeed]:
    with ScoresFeed() as feed:
        yield feed


def _placement_service(db=Depends(get_db)) -> PlacementService:
    return PlacementService.from_session(db)


def _settlement_service(db=Depends(get_db), feed=Depends(_scores_feed)) -> SettlementService:
    """Provide the settlement service wired with a session and the scores feed."""

    return SettlementService.from_session(db, feed)


def _status_filter(status: str | None) -> str | None:
    if not status or status == "all":
        return None
    try:
        return WagerStatus(status).value
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}") from exc


@app.post("/wagers", response_model=schemas.Wager, status_code=201, tags=["wagers"])
def place_wager(
    payload: schemas.WagerCreate,
    service: PlacementService = Depends(_placement_service),
):
    """Place a single or parlay wager and debit the stake."""

    try:
        if payload.bet_type is BetType.SINGLE:
            if payload.game is None or payload.selection is None:
                raise HTTPException(status_code=400, detail="Single wagers need a game and selection")
            wager = service.place_single(
                payload.user_id,
                payload.stake,
                payload.game.to_domain(),
                payload.selection.to_domain(),
                odds_source=payload.odds_source,
            )
        else:
            if not payload.legs:
                raise HTTPException(status_code=400, detail="Parlay requires legs")
            wager = service.place_parlay(
                payload.user_id,
                payload.stake,
                [(leg.to_domain(), leg.selection.to_domain()) for leg in payload.legs],
                odds_source=payload.odds_source,
            )
    except LedgerAccountNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InsufficientBalanceError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return schemas.Wager.from_domain(wager)


@app.get("/wagers", response_model=schemas.WagerList, tags=["wagers"])
def list_wagers(
    *,
    status: Annotated[str | None, Query(description="Wager status filter", example="pending")] = None,
    sport: Annotated[str | None, Query(description="Sport code filter", example="NFL")] = None,
    user_id: Annotated[str | None, Query(description="Owner filter")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    db=Depends(get_db),
):
    wagers = crud.list_wagers(
        db, status=_status_filter(status), sport=sport, user_id=user_id, limit=limit
    )
    return schemas.WagerList(
        total=len(wagers), items=[schemas.Wager.from_domain(wager) for wager in wagers]
    )


@app.get("/accounts/{user_id}", response_model=schemas.Account, tags=["accounts"])
def get_account(
    user_id: str,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
    db=Depends(get_db),
):
    """Current coin balance with the most recent ledger entries."""

    try:
        balance = crud.get_balance(db, user_id)
    except LedgerAccountNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    transactions = crud.list_transactions(db, user_id, limit=limit)
    return schemas.Account(
        user_id=user_id,
        balance=balance,
        transactions=[schemas.CoinTransaction.model_validate(item) for item in transactions],
    )


@app.get("/admin/wagers", response_model=schemas.AdminWagerList, tags=["admin"])
def admin_list_wagers(
    *,
    status: Annotated[str | None, Query(description="Wager status filter")] = None,
    sport: Annotated[str | None, Query(description="Sport code filter")] = None,
    user_id: Annotated[str | None, Query(description="Owner filter")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    db=Depends(get_db),
):
    """List wagers alongside per-status totals."""

    wagers = crud.list_wagers(
        db, status=_status_filter(status), sport=sport, user_id=user_id, limit=limit
    )
    return schemas.AdminWagerList(
        total=len(wagers),
        items=[schemas.Wager.from_domain(wager) for wager in wagers],
        summary=crud.wager_status_counts(db).to_dict(),
    )


@app.get("/admin/wagers/{wager_id}/debug", response_model=schemas.WagerDebug, tags=["admin"])
def debug_wager(wager_id: str, service: SettlementService = Depends(_settlement_service)):
    """Show the normalized team identities and feed date used to match a wager."""

    try:
        info = service.describe_wager(wager_id)
    except WagerNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Wager not found") from exc
    return schemas.WagerDebug(
        wager=schemas.Wager.from_domain(info.wager),
        games=[schemas.GameDebug.model_validate(game) for game in info.games],
    )


@app.post(
    "/admin/wagers/{wager_id}/rescore",
    response_model=schemas.SettlementOutcome,
    tags=["admin"],
)
def rescore_wager(wager_id: str, service: SettlementService = Depends(_settlement_service)):
    try:
        outcome = service.rescore_wager(wager_id)
    except WagerNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Wager not found") from exc
    except WagerAlreadySettledError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return schemas.SettlementOutcome.model_validate(outcome)


@app.post(
    "/admin/wagers/{wager_id}/manual-settle",
    response_model=schemas.SettlementOutcome,
    tags=["admin"],
)
def manual_settle_wager(
    wager_id: str,
    payload: schemas.ManualSettleRequest,
    service: SettlementService = Depends(_settlement_service),
):
    """Settle a pending single wager with an administrator supplied outcome."""

    try:
        outcome = service.manual_settle(
            wager_id,
            payload.outcome,
            home_score=payload.home_score,
            away_score=payload.away_score,
        )
    except WagerNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Wager not found") from exc
    except WagerAlreadySettledError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return schemas.SettlementOutcome.model_validate(outcome)


@app.post("/admin/settlement/run", response_model=schemas.SettlementRunSummary, tags=["admin"])
def run_settlement(service: SettlementService = Depends(_settlement_service)):
    """Run one settlement pass over every pending wager."""

    try:
        summary = service.run_settlement_pass()
    except SettlementLoadError as exc:
        logger.error("Settlement pass aborted: {}", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return schemas.SettlementRunSummary(**summary.to_dict())
