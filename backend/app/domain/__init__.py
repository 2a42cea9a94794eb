"""Domain models describing wagers, selections, and game results."""

from .errors import (
    InsufficientBalanceError,
    LedgerAccountNotFound,
    MalformedSelectionError,
    MalformedWagerError,
    SettlementLoadError,
    WagerAlreadySettledError,
    WagerNotFoundError,
    WagerValidationError,
)
from .models import (
    BetType,
    FinalScore,
    Found,
    GameRef,
    GameResult,
    Leg,
    LegStatus,
    MatchOutcome,
    NotFinal,
    NotFound,
    Outcome,
    ScoreSnapshot,
    Selection,
    SelectionKind,
    Side,
    Wager,
    WagerStatus,
    WagerUpdate,
)

__all__ = [
    "BetType",
    "FinalScore",
    "Found",
    "GameRef",
    "GameResult",
    "InsufficientBalanceError",
    "LedgerAccountNotFound",
    "Leg",
    "LegStatus",
    "MalformedSelectionError",
    "MalformedWagerError",
    "MatchOutcome",
    "NotFinal",
    "NotFound",
    "Outcome",
    "ScoreSnapshot",
    "Selection",
    "SelectionKind",
    "SettlementLoadError",
    "Side",
    "Wager",
    "WagerAlreadySettledError",
    "WagerNotFoundError",
    "WagerStatus",
    "WagerUpdate",
    "WagerValidationError",
]
