"""Team name normalisation across odds providers and the results feed.

Odds providers send full names ("Philadelphia Eagles"), the results feed sends
abbreviations ("PHI") and hand-entered wagers use nicknames or cities. Every
representation is folded onto the feed's abbreviation using a per-sport alias
table that is loaded from versioned JSON and injected into the resolver.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

_DEFAULT_ALIAS_PATH = Path(__file__).resolve().parent / "data" / "team_aliases.json"
_ABBREVIATION_MAX_LENGTH = 3
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _alias_key(value: str) -> str:
    return _WHITESPACE.sub(" ", value.replace(".", "").strip().lower())


@dataclass(frozen=True)
class TeamAliasTable:
    """Immutable per-sport mapping of alias keys onto feed abbreviations."""

    sports: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    version: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> TeamAliasTable:
        raw_sports = payload.get("sports", payload)
        if not isinstance(raw_sports, Mapping):
            raise TypeError("Team alias payload must map sports to teams")

        sports: dict[str, Mapping[str, str]] = {}
        for sport, teams in raw_sports.items():
            if not isinstance(teams, Mapping):
                continue
            aliases: dict[str, str] = {}
            for abbreviation, names in teams.items():
                code = str(abbreviation).strip().upper()
                candidates = [code]
                if isinstance(names, (list, tuple)):
                    candidates.extend(str(name) for name in names)
                for name in candidates:
                    key = _alias_key(name)
                    if not key:
                        continue
                    existing = aliases.get(key)
                    if existing is not None and existing != code:
                        raise ValueError(
                            f"Alias {name!r} maps to both {existing} and {code} in {sport}"
                        )
                    aliases[key] = code
            sports[str(sport).upper()] = MappingProxyType(aliases)

        version = payload.get("version")
        return cls(sports=MappingProxyType(sports), version=str(version) if version else None)

    def lookup(self, sport: str | None, name: str) -> str | None:
        if not sport:
            return None
        table = self.sports.get(sport.upper())
        if table is None:
            return None
        return table.get(_alias_key(name))


def load_team_aliases(path: str | Path | None = None) -> TeamAliasTable:
    """Load an alias table from disk, defaulting to the bundled table."""

    target = Path(path) if path else _DEFAULT_ALIAS_PATH
    with target.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, Mapping):
        raise TypeError("Team alias file must contain a mapping")
    return TeamAliasTable.from_mapping(payload)


@lru_cache(maxsize=4)
def default_team_aliases(path: str | None = None) -> TeamAliasTable:
    return load_team_aliases(path)


class TeamResolver:
    """Normalise raw team names to canonical identifiers for result matching."""

    def __init__(self, aliases: TeamAliasTable) -> None:
        self._aliases = aliases

    @property
    def aliases(self) -> TeamAliasTable:
        return self._aliases

    def normalize(self, raw_name: str | None, sport: str | None) -> str:
        if not raw_name:
            return ""
        name = _WHITESPACE.sub(" ", raw_name.strip())
        if not name:
            return ""

        mapped = self._aliases.lookup(sport, name)
        if mapped:
            return mapped

        lowered = name.lower()
        if lowered.startswith("the "):
            name = name[4:].strip()
            mapped = self._aliases.lookup(sport, name)
            if mapped:
                return mapped

        if len(name) <= _ABBREVIATION_MAX_LENGTH:
            return name.upper()

        # Last-word fallback: may collide when unrelated teams share a nickname.
        last_token = name.lower().split(" ")[-1]
        return _NON_ALNUM.sub("", last_token)

    def same_team(self, left: str | None, right: str | None, sport: str | None) -> bool:
        left_id = self.normalize(left, sport)
        return bool(left_id) and left_id == self.normalize(right, sport)


__all__ = [
    "TeamAliasTable",
    "TeamResolver",
    "default_team_aliases",
    "load_team_aliases",
]
