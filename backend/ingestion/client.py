from __future__ import annotations

from datetime import date
from typing import Any, Mapping

import httpx
from loguru import logger

from app.core.config import settings


class ScoresFeedError(RuntimeError):
    """The scores provider could not serve a request."""


class SportsDataClient:
    """Thin wrapper around the provider's scores-by-date endpoints."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        endpoints: Mapping[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or str(settings.results_feed_base_url)).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.results_feed_api_key
        self.endpoints = {
            sport.upper(): path
            for sport, path in (endpoints or settings.results_feed_endpoints).items()
        }
        self.timeout = timeout or settings.results_feed_timeout_seconds
        client_kwargs: dict[str, Any] = {"base_url": self.base_url, "timeout": self.timeout}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    def _scores_path(self, sport: str, on_date: date) -> str:
        endpoint = self.endpoints.get(sport.upper())
        if not endpoint:
            raise ScoresFeedError(f"Unsupported sport: {sport}")
        return f"/{endpoint}/scores/json/ScoresByDate/{on_date.isoformat()}"

    def fetch_scores_by_date(self, sport: str, on_date: date) -> list[dict[str, Any]]:
        if not self.api_key:
            raise ScoresFeedError("RESULTS_FEED_API_KEY not configured")

        path = self._scores_path(sport, on_date)
        logger.info("Scores GET {}", path)
        response = self.client.get(path, params={"key": self.api_key})
        response.raise_for_status()

        payload = response.json()
        if isinstance(payload, list):
            return [item for item in payload if isinstance(item, dict)]
        if isinstance(payload, dict):
            for key in ("games", "data", "scores"):
                value = payload.get(key)
                if isinstance(value, list):
                    return [item for item in value if isinstance(item, dict)]
        logger.warning("Unexpected scores payload shape for {} {}: {}", sport, on_date, type(payload))
        return []

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SportsDataClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
