"""Import pipeline driving fetch, parse, canonicalize and merge per feed."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from pipeline.config import PipelineConfig
from processor.event_processor import EventProcessor
from processor.models import RunSummary, StoreCapabilities
from scraper.feed_fetcher import ICSFeedFetcher
from scraper.ics_parser import ICSCalendarParser, ICSParseError
from storage.dynamodb_manager import DynamoDBManager
from storage.merge_engine import MergeEngine
from storage.sweep import sweep_past_events

logger = logging.getLogger(__name__)


class ImportPipeline:
    """
    Runs one import sweep over the configured feeds.

    Feeds are processed sequentially; a failing feed is logged and skipped
    and never stops the remaining ones. Store capabilities are probed once
    per run and shared by every merge.
    """

    def __init__(
        self,
        fetcher: ICSFeedFetcher,
        parser: ICSCalendarParser,
        processor: EventProcessor,
        store: DynamoDBManager,
        past_grace: timedelta = timedelta(hours=24)
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.processor = processor
        self.store = store
        self.past_grace = past_grace

    @classmethod
    def from_config(cls, config: PipelineConfig) -> 'ImportPipeline':
        return cls(
            fetcher=ICSFeedFetcher(timeout=config.timeout_seconds),
            parser=ICSCalendarParser(default_timezone=config.timezone),
            processor=EventProcessor(
                timezone=config.timezone,
                city=config.city,
                past_grace=config.past_grace
            ),
            store=DynamoDBManager(table_name=config.table_name),
            past_grace=config.past_grace
        )

    def run(self, feed_urls: Iterable[str], now: Optional[datetime] = None) -> RunSummary:
        """
        Import every feed, then sweep past events.

        Args:
            feed_urls: Feed URLs in processing order
            now: Reference time, defaults to the current UTC time

        Returns:
            RunSummary with per-run counters and error messages
        """
        now = now or datetime.now(timezone.utc)
        summary = RunSummary()
        engine = MergeEngine(self.store, self._probe_capabilities(summary))

        for url in feed_urls:
            try:
                self._import_feed(url, engine, summary, now)
                summary.feeds_processed += 1
            except (requests.RequestException, ICSParseError) as e:
                summary.feeds_failed += 1
                summary.errors.append(f"Feed {url}: {e}")
                logger.warning(f"Skipping feed {url}: {e}")
            except Exception as e:
                summary.feeds_failed += 1
                summary.errors.append(f"Feed {url}: {e}")
                logger.error(f"Unexpected error processing feed {url}: {e}", exc_info=True)

        try:
            summary.marked_past = sweep_past_events(self.store, now, self.past_grace)
        except (ClientError, BotoCoreError) as e:
            summary.errors.append(f"Sweep: {e}")
            logger.error(f"Past-event sweep failed: {e}")

        logger.info(
            f"Import run complete: {summary.feeds_processed} feeds processed, "
            f"{summary.feeds_failed} failed, {summary.inserted} inserted, "
            f"{summary.updated} updated, {summary.unchanged} unchanged, "
            f"{summary.skipped} skipped, {summary.marked_past} marked past"
        )
        return summary

    def _probe_capabilities(self, summary: RunSummary) -> StoreCapabilities:
        """Store capabilities for this run; an unreachable store counts as degraded."""
        try:
            return self.store.probe_capabilities()
        except (ClientError, BotoCoreError) as e:
            summary.errors.append(f"Capability probe: {e}")
            logger.warning(f"Capability probe failed, using title/start/venue matching: {e}")
            return StoreCapabilities(source_uid_lookup=False, canonical_key_lookup=False)

    def _import_feed(
        self,
        url: str,
        engine: MergeEngine,
        summary: RunSummary,
        now: datetime
    ) -> None:
        ics_text = self.fetcher.fetch(url)
        raw_events = self.parser.parse(ics_text)

        seen = 0
        for raw_event in raw_events:
            seen += 1
            try:
                event = self.processor.process_event(raw_event, now)
            except Exception as e:
                summary.skipped += 1
                logger.warning(f"Failed to process event '{raw_event.title}' from {url}: {e}")
                continue

            try:
                summary.record(engine.merge(event))
            except (ClientError, BotoCoreError) as e:
                summary.errors.append(f"Event '{event.title}': {e}")
                logger.error(f"Failed to store event '{event.title}' from {url}: {e}")

        summary.skipped += self.parser.skipped
        logger.info(
            f"Feed {url}: {seen} events parsed, {self.parser.skipped} blocks dropped"
        )
