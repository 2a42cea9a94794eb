"""Standalone job that settles pending wagers against final scores."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import init_db
from app.repositories import ResultFeed
from app.services.settlement_service import SettlementService, SettlementSummary
from ingestion.client import SportsDataClient
from ingestion.service import ScoresFeed, session_scope


class SettlementPipeline:
    """Run one settlement pass as an independent, schedulable job."""

    def __init__(self, settings: Settings | None = None, feed: ResultFeed | None = None) -> None:
        self.settings = settings or get_settings()
        self._owned_feed: ScoresFeed | None = None
        if feed is None:
            self._owned_feed = ScoresFeed(
                SportsDataClient(
                    base_url=str(self.settings.results_feed_base_url),
                    api_key=self.settings.results_feed_api_key,
                    endpoints=self.settings.results_feed_endpoints,
                    timeout=self.settings.results_feed_timeout_seconds,
                )
            )
            feed = self._owned_feed
        self._feed = feed

    def run(self) -> SettlementSummary:
        init_db()
        with session_scope() as session:
            service = SettlementService.from_session(session, self._feed, settings=self.settings)
            summary = service.run_settlement_pass()
        logger.info(
            "Settlement run complete: processed={} settled={} deferred={} errors={}",
            summary.processed,
            summary.settled,
            summary.deferred,
            summary.errors,
        )
        return summary

    def close(self) -> None:
        if self._owned_feed is not None:
            self._owned_feed.close()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Settle pending wagers whose games have final results",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: SettlementSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Settlement summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> SettlementSummary:
    args = _parse_args(argv)
    pipeline = SettlementPipeline(get_settings())
    try:
        summary = pipeline.run()
    finally:
        pipeline.close()

    if args.summary_path:
        _write_summary(summary, args.summary_path)
    return summary


if __name__ == "__main__":
    main()
