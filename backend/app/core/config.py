import json
from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FEED_ENDPOINTS: dict[str, str] = {
    "NFL": "nfl",
    "NBA": "nba",
    "MLB": "mlb",
    "NHL": "nhl",
    "NCAAF": "cfb",
    "NCAAB": "cbb",
}

DEFAULT_SPORT_KEY_MAP: dict[str, str] = {
    "americanfootball_nfl": "NFL",
    "americanfootball_ncaaf": "NCAAF",
    "basketball_nba": "NBA",
    "basketball_ncaab": "NCAAB",
    "baseball_mlb": "MLB",
    "icehockey_nhl": "NHL",
}


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


def _parse_mapping(value: Any, *, name: str) -> Any:
    """Accept JSON objects or ``KEY=VALUE`` comma lists for mapping settings."""

    if not isinstance(value, str):
        return value
    candidate = value.strip()
    if not candidate:
        return {}
    if candidate.startswith("{"):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name} must be valid JSON") from exc
    mapping: dict[str, str] = {}
    for part in candidate.split(","):
        if not part.strip():
            continue
        if "=" not in part:
            raise ValueError(f"{name} entries must be formatted as KEY=VALUE")
        key, raw = part.split("=", 1)
        mapping[key.strip()] = raw.strip()
    return mapping


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/wagers.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: AnyUrl | str | None = Field(
        default=None,
        description="Pooled Postgres connection string used when ENVIRONMENT=production",
    )
    results_feed_base_url: AnyUrl = Field(
        default="https://api.sportsdata.io/v3",
        description="Base URL for the final-score results feed",
    )
    results_feed_api_key: str | None = Field(
        default=None,
        description="API key appended to results feed requests",
    )
    results_feed_timeout_seconds: float = Field(
        default=10.0,
        description="Per-request timeout for results feed fetches",
        gt=0,
    )
    results_feed_timezone: str = Field(
        default="America/New_York",
        description="Timezone the results feed uses to bucket games by date",
    )
    results_feed_endpoints: dict[str, str] | str = Field(
        default_factory=lambda: dict(DEFAULT_FEED_ENDPOINTS),
        description="Sport code to results feed path segment",
    )
    sport_key_map: dict[str, str] | str = Field(
        default_factory=lambda: dict(DEFAULT_SPORT_KEY_MAP),
        description="Odds-provider sport keys mapped onto results feed sport codes",
    )
    team_aliases_path: str | None = Field(
        default=None,
        description="Optional JSON file replacing the bundled team alias table",
    )
    settlement_fetch_concurrency: int = Field(
        default=4,
        description="Maximum number of (sport, date) result fetches issued in parallel",
        ge=1,
    )
    parlay_min_legs: int = Field(default=2, ge=2)
    parlay_max_legs: int = Field(default=10, ge=2)

    @field_validator("results_feed_endpoints", "sport_key_map", mode="before")
    @classmethod
    def _parse_mappings(cls, value: Any, info) -> Any:
        return _parse_mapping(value, name=info.field_name.upper())

    @field_validator("results_feed_endpoints", mode="after")
    @classmethod
    def _uppercase_sports(cls, value: dict[str, str]) -> dict[str, str]:
        return {str(key).upper(): str(path).strip("/") for key, path in value.items()}

    @field_validator("sport_key_map", mode="after")
    @classmethod
    def _normalize_sport_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {str(key).lower(): str(sport).upper() for key, sport in value.items()}

    @field_validator("results_feed_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone for RESULTS_FEED_TIMEZONE: {value}") from exc
        return value

    @field_validator("parlay_max_legs")
    @classmethod
    def _validate_leg_bounds(cls, value: int, info) -> int:
        minimum = info.data.get("parlay_min_legs", 2)
        if value < minimum:
            raise ValueError("PARLAY_MAX_LEGS must not be lower than PARLAY_MIN_LEGS")
        return value

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def feed_zone(self) -> ZoneInfo:
        return ZoneInfo(self.results_feed_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
