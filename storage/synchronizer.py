"""Synchronizer applying normalized calendar events to storage."""
import logging
from typing import Any, Dict, List, Optional, Set

from processor.event_normalizer import EventNormalizer, NormalizationError
from processor.models import CalendarEvent, Exam, SyncResult
from scraper.calendar_fetcher import CalendarFetcher
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class CalendarSynchronizer:
    """Idempotent per-record upsert of calendar events and exams."""

    def __init__(
        self,
        normalizer: EventNormalizer,
        storage: DynamoDBManager,
        fetcher: Optional[CalendarFetcher] = None,
        prune_stale: bool = False
    ):
        """
        Initialize the synchronizer.

        Args:
            normalizer: Normalizer configured with the target section
            storage: Storage manager
            fetcher: Calendar fetcher used by run()
            prune_stale: Delete stored events missing from a complete pass
        """
        self.normalizer = normalizer
        self.storage = storage
        self.fetcher = fetcher
        self.prune_stale = prune_stale

    def run(self) -> SyncResult:
        """
        Fetch the calendar and synchronize it.

        A payload that decodes to zero events is a valid, empty sync; a
        fetch or decode failure propagates.

        Returns:
            SyncResult summary

        Raises:
            CalendarFetchError: If the calendar could not be fetched or decoded
            StorageError: If a write fails
        """
        if self.fetcher is None:
            raise RuntimeError('No calendar fetcher configured')

        logger.info("Starting calendar sync")
        raw_events = self.fetcher.fetch_events()
        return self.sync_events(raw_events)

    def sync_events(self, raw_events: List[Dict[str, Any]]) -> SyncResult:
        """
        Normalize and upsert raw backend records.

        Each record is written independently; a StorageError stops the
        pass and leaves earlier writes in place.

        Args:
            raw_events: Raw backend records

        Returns:
            SyncResult with upserted, exam and skipped counts

        Raises:
            StorageError: If a write fails
        """
        result = SyncResult()
        seen_ids: Set[str] = set()

        for raw in raw_events:
            try:
                event = self.normalizer.normalize(raw)
            except NormalizationError as e:
                logger.warning(f"Skipping unparseable event: {e}")
                result.skipped += 1
                continue

            if event is None:
                continue

            if event.cancelled:
                result.skipped += 1
                if event.event_id and self._remove(event.event_id):
                    result.removed += 1
                continue

            if not event.event_id:
                logger.debug(f"Skipping event without identifier: '{event.title}'")
                result.skipped += 1
                continue

            self._upsert(event)
            seen_ids.add(event.event_id)
            result.upserted += 1
            if event.is_exam:
                result.exam_count += 1

        if self.prune_stale and seen_ids:
            result.pruned = self._prune(seen_ids)

        logger.info(
            f"Sync complete: {result.upserted} upserted, {result.exam_count} exams, "
            f"{result.skipped} skipped",
            extra=result.to_dict()
        )
        return result

    def _upsert(self, event: CalendarEvent) -> None:
        # Event first so an Exam row never outlives a failed Event write
        self.storage.put_event(event)
        if event.is_exam:
            self.storage.put_exam(Exam.from_event(event))
        else:
            self.storage.delete_exam(event.event_id)

    def _remove(self, event_id: str) -> bool:
        self.storage.delete_exam(event_id)
        removed = self.storage.delete_event(event_id)
        if removed:
            logger.info(f"Removed cancelled event {event_id}")
        return removed

    def _prune(self, seen_ids: Set[str]) -> int:
        stale_ids = [
            event_id for event_id in self.storage.get_all_events()
            if event_id not in seen_ids
        ]
        if not stale_ids:
            return 0
        logger.info(f"Pruning {len(stale_ids)} stale events")
        return self.storage.batch_delete_events(stale_ids)
