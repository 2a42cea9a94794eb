from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from conftest import GAME_DAY, NOW, make_single
from fastapi.testclient import TestClient

from app.db import get_db
from app.domain import (
    GameRef,
    InsufficientBalanceError,
    Outcome,
    Selection,
    SettlementLoadError,
    WagerAlreadySettledError,
    WagerNotFoundError,
    WagerStatus,
)
from app.main import _placement_service, _settlement_service, app
from app.repositories import CoinLedger, WagerRepository
from app.services.settlement_service import (
    GameDebugInfo,
    SettlementOutcome,
    SettlementSummary,
    WagerDebugInfo,
)


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_db(session_factory):
    session = session_factory()
    CoinLedger(session).open_account("user-1", initial_balance=250)
    repo = WagerRepository(session)
    with repo.atomic():
        repo.add(make_single("w-1"))
        repo.add(make_single("w-2", status=WagerStatus.WON))
    app.dependency_overrides[get_db] = lambda: session
    yield session
    session.close()


def _single_payload(**overrides):
    payload = {
        "user_id": "user-1",
        "bet_type": "single",
        "stake": 100,
        "game": {
            "game_id": "g-1",
            "home_team": "Philadelphia Eagles",
            "away_team": "Dallas Cowboys",
            "commence_time": (NOW + timedelta(days=1)).isoformat(),
            "sport_key": "americanfootball_nfl",
        },
        "selection": {"type": "moneyline", "side": "away", "odds": -110},
    }
    payload.update(overrides)
    return payload


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_place_single_wager(client):
    mock_service = MagicMock()
    mock_service.place_single.return_value = make_single()
    app.dependency_overrides[_placement_service] = lambda: mock_service

    response = client.post("/wagers", json=_single_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["wager_id"] == "w-1"
    assert body["selection"]["odds_display"] == "-110"
    args, kwargs = mock_service.place_single.call_args
    assert args[0] == "user-1"
    assert isinstance(args[2], GameRef) and args[2].sport_key == "americanfootball_nfl"
    assert isinstance(args[3], Selection)


def test_place_wager_rejects_bad_selection(client):
    app.dependency_overrides[_placement_service] = lambda: MagicMock()
    payload = _single_payload(selection={"type": "total", "side": "home", "odds": -110, "point": 40})

    response = client.post("/wagers", json=payload)

    assert response.status_code == 400


def test_place_wager_requires_selection_for_singles(client):
    app.dependency_overrides[_placement_service] = lambda: MagicMock()
    response = client.post("/wagers", json=_single_payload(selection=None))
    assert response.status_code == 400


def test_place_wager_insufficient_balance(client):
    mock_service = MagicMock()
    mock_service.place_single.side_effect = InsufficientBalanceError("Insufficient balance")
    app.dependency_overrides[_placement_service] = lambda: mock_service

    response = client.post("/wagers", json=_single_payload())

    assert response.status_code == 400
    assert response.json()["detail"] == "Insufficient balance"


def test_list_wagers_filters_by_status(client, seeded_db):
    response = client.get("/wagers", params={"status": "pending"})

    assert response.status_code == 200
    assert [item["wager_id"] for item in response.json()["items"]] == ["w-1"]


def test_list_wagers_rejects_unknown_status(client, seeded_db):
    assert client.get("/wagers", params={"status": "void"}).status_code == 400


def test_admin_listing_includes_summary(client, seeded_db):
    response = client.get("/admin/wagers")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["summary"]["pending"] == 1
    assert body["summary"]["won"] == 1


def test_account_view(client, seeded_db):
    response = client.get("/accounts/user-1")
    assert response.status_code == 200
    assert response.json() == {"user_id": "user-1", "balance": 250.0, "transactions": []}
    assert client.get("/accounts/nobody").status_code == 404


def test_debug_wager(client):
    mock_service = MagicMock()
    mock_service.describe_wager.return_value = WagerDebugInfo(
        wager=make_single(),
        games=[
            GameDebugInfo(
                home_team="Philadelphia Eagles",
                away_team="Dallas Cowboys",
                home_normalized="PHI",
                away_normalized="DAL",
                sport="NFL",
                feed_date=GAME_DAY,
            )
        ],
    )
    app.dependency_overrides[_settlement_service] = lambda: mock_service

    response = client.get("/admin/wagers/w-1/debug")

    assert response.status_code == 200
    game = response.json()["games"][0]
    assert (game["home_normalized"], game["away_normalized"]) == ("PHI", "DAL")
    assert game["feed_date"] == "2025-10-12"


@pytest.mark.parametrize(
    ("error", "status_code"),
    [(WagerNotFoundError("missing"), 404), (WagerAlreadySettledError("already won"), 409)],
)
def test_rescore_errors(client, error, status_code):
    mock_service = MagicMock()
    mock_service.rescore_wager.side_effect = error
    app.dependency_overrides[_settlement_service] = lambda: mock_service

    response = client.post("/admin/wagers/w-1/rescore")

    assert response.status_code == status_code


def test_manual_settle(client):
    mock_service = MagicMock()
    mock_service.manual_settle.return_value = SettlementOutcome(
        wager_id="w-1", status=WagerStatus.WON, payout=190.91, applied=True, credited=True
    )
    app.dependency_overrides[_settlement_service] = lambda: mock_service

    response = client.post(
        "/admin/wagers/w-1/manual-settle",
        json={"outcome": "won", "home_score": 21, "away_score": 17},
    )

    assert response.status_code == 200
    assert response.json()["payout"] == 190.91
    mock_service.manual_settle.assert_called_once_with(
        "w-1", Outcome.WON, home_score=21, away_score=17
    )


def test_manual_settle_rejects_unknown_outcome(client):
    app.dependency_overrides[_settlement_service] = lambda: MagicMock()
    response = client.post("/admin/wagers/w-1/manual-settle", json={"outcome": "void"})
    assert response.status_code == 422


def test_run_settlement(client):
    mock_service = MagicMock()
    mock_service.run_settlement_pass.return_value = SettlementSummary(
        processed=3, settled=2, errors=0, deferred=1
    )
    app.dependency_overrides[_settlement_service] = lambda: mock_service

    response = client.post("/admin/settlement/run")

    assert response.status_code == 200
    assert response.json() == {
        "processed": 3,
        "settled": 2,
        "errors": 0,
        "deferred": 1,
        "failed_fetches": 0,
        "credited": 0.0,
    }


def test_run_settlement_load_failure(client):
    mock_service = MagicMock()
    mock_service.run_settlement_pass.side_effect = SettlementLoadError("db down")
    app.dependency_overrides[_settlement_service] = lambda: mock_service

    response = client.post("/admin/settlement/run")

    assert response.status_code == 500
