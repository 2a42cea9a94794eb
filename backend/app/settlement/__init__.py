"""Pure settlement logic: odds math, team identity, result matching, grading."""

from .evaluation import evaluate
from .matching import FetchKey, fetch_key_for, find_result, game_date, resolve_sport
from .odds import (
    LegPrice,
    ParlayQuote,
    PushRecalculation,
    american_to_decimal,
    format_odds,
    format_point,
    parlay_payout,
    payout,
    profit,
    recalculate_after_push,
)
from .teams import TeamAliasTable, TeamResolver, default_team_aliases, load_team_aliases

__all__ = [
    "FetchKey",
    "LegPrice",
    "ParlayQuote",
    "PushRecalculation",
    "TeamAliasTable",
    "TeamResolver",
    "american_to_decimal",
    "default_team_aliases",
    "evaluate",
    "fetch_key_for",
    "find_result",
    "format_odds",
    "format_point",
    "game_date",
    "load_team_aliases",
    "parlay_payout",
    "payout",
    "profit",
    "recalculate_after_push",
    "resolve_sport",
]
