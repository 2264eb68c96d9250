"""Construction of the long-lived components shared by the entry points."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from notifier.commands import CommandRouter
from notifier.digest import DigestFormatter
from notifier.jobs import NotificationJobs
from notifier.telegram_channel import TelegramChannel
from processor.event_normalizer import EventNormalizer
from scraper.calendar_fetcher import CalendarFetcher
from settings import Settings
from storage.dynamodb_manager import DynamoDBManager
from storage.synchronizer import CalendarSynchronizer
from utils.time_window import TimeWindow

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Explicitly constructed dependencies, built once per process."""
    settings: Settings
    storage: DynamoDBManager
    time_window: TimeWindow
    channel: TelegramChannel
    formatter: DigestFormatter
    synchronizer: CalendarSynchronizer
    jobs: NotificationJobs
    commands: CommandRouter
    scheduler: Any = None

    def close(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            logger.info("Shutting down scheduler")
            self.scheduler.shutdown(wait=False)
        self.scheduler = None


def build_application(
    settings: Settings,
    dynamodb=None,
    clock: Optional[Callable[[], datetime]] = None,
    playwright_factory: Optional[Callable[[], Any]] = None
) -> Application:
    """
    Wire every component from settings.

    Args:
        settings: Process settings
        dynamodb: Existing boto3 DynamoDB resource to reuse
        clock: Clock override for the time window
        playwright_factory: Playwright factory override for the fetcher

    Returns:
        Application holding the constructed components
    """
    time_window = TimeWindow(settings.timezone, clock=clock)
    storage = DynamoDBManager(
        table_prefix=settings.table_prefix,
        region_name=settings.aws_region,
        dynamodb=dynamodb
    )
    channel = TelegramChannel(
        token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        timeout=settings.timeout_seconds,
        dry_run=settings.dry_run
    )
    formatter = DigestFormatter(
        time_window,
        date_style=settings.date_style,
        cancellation_marker=settings.cancellation_marker,
        reserved_subject=settings.reserved_subject
    )
    fetcher = CalendarFetcher(
        calendar_url=settings.calendar_url,
        timeout=settings.timeout_seconds,
        settle_seconds=settings.settle_seconds,
        callback_pattern=settings.callback_pattern,
        playwright_factory=playwright_factory
    )
    normalizer = EventNormalizer(
        section=settings.section,
        time_window=time_window,
        exam_color=settings.exam_color,
        cancellation_marker=settings.cancellation_marker
    )
    synchronizer = CalendarSynchronizer(
        normalizer=normalizer,
        storage=storage,
        fetcher=fetcher,
        prune_stale=settings.prune_stale
    )
    jobs = NotificationJobs(
        storage=storage,
        channel=channel,
        time_window=time_window,
        formatter=formatter,
        synchronizer=synchronizer,
        exam_alert_days=settings.exam_alert_days,
        recent_files_days=settings.recent_files_days
    )
    commands = CommandRouter(storage, time_window, formatter, synchronizer)

    return Application(
        settings=settings,
        storage=storage,
        time_window=time_window,
        channel=channel,
        formatter=formatter,
        synchronizer=synchronizer,
        jobs=jobs,
        commands=commands
    )
