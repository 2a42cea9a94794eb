import pytest
from pydantic import ValidationError

from app.core.config import Settings


def test_mappings_accept_key_value_lists():
    settings = Settings(
        sport_key_map="Soccer_EPL=epl, basketball_wnba=wnba",
        results_feed_endpoints='{"epl": "/soccer/"}',
    )
    assert settings.sport_key_map == {"soccer_epl": "EPL", "basketball_wnba": "WNBA"}
    assert settings.results_feed_endpoints == {"EPL": "soccer"}


def test_malformed_mapping_is_rejected():
    with pytest.raises(ValidationError):
        Settings(sport_key_map="americanfootball_nfl")


def test_unknown_timezone_is_rejected():
    with pytest.raises(ValidationError):
        Settings(results_feed_timezone="Mars/Olympus")


def test_parlay_bounds_are_checked():
    with pytest.raises(ValidationError):
        Settings(parlay_min_legs=4, parlay_max_legs=3)


def test_postgres_urls_gain_driver_and_ssl():
    settings = Settings(database_url="postgres://user:pw@db.example.com/wagers")
    assert settings.resolved_database_url == (
        "postgresql+psycopg://user:pw@db.example.com/wagers?sslmode=require"
    )


def test_production_requires_pooled_url():
    settings = Settings(environment="production", production_database_url=None)
    with pytest.raises(ValueError):
        settings.resolved_database_url
