"""Operator command surface: schedule lookups and manual sync."""
import logging
from typing import Optional

from notifier.digest import DigestFormatter
from storage.dynamodb_manager import DynamoDBManager
from storage.synchronizer import CalendarSynchronizer
from utils.time_window import TimeWindow

logger = logging.getLogger(__name__)

HELP_TEXT = """🤖 *Academic Schedule Assistant*

*Commands:*
/today - today's schedule
/tomorrow - tomorrow's schedule
/week - this week's schedule
/exams - all exams with countdown
/tasks - pending tasks
/sync - sync the calendar now
/help - show this help"""


class CommandRouter:
    """Maps chat commands to reply text."""

    def __init__(
        self,
        storage: DynamoDBManager,
        time_window: TimeWindow,
        formatter: DigestFormatter,
        synchronizer: Optional[CalendarSynchronizer] = None
    ):
        self.storage = storage
        self.time_window = time_window
        self.formatter = formatter
        self.synchronizer = synchronizer

    def handle(self, text: str) -> Optional[str]:
        """
        Reply to one command message.

        Args:
            text: Raw message text, e.g. "/today" or "/today@my_bot"

        Returns:
            Reply text, or None when the text is not a known command
        """
        if not text or not text.startswith('/'):
            return None

        command = text.split()[0].split('@')[0].lower()
        handler = {
            '/today': self.today,
            '/tomorrow': self.tomorrow,
            '/week': self.week,
            '/exams': self.exams,
            '/tasks': self.tasks,
            '/sync': self.sync,
            '/help': self.help,
            '/start': self.help,
        }.get(command)

        if handler is None:
            return None

        logger.info(f"Handling command {command}")
        try:
            return handler()
        except Exception as e:
            logger.error(f"Command {command} failed: {e}", exc_info=True)
            return f"❌ Error: {e}"

    def today(self) -> str:
        date_str = self.time_window.today()
        events = self.storage.get_events_by_date(date_str)
        return self.formatter.build_day_listing("☀️ *Today*", date_str, events)

    def tomorrow(self) -> str:
        date_str = self.time_window.tomorrow()
        events = self.storage.get_events_by_date(date_str)
        return self.formatter.build_day_listing("📅 *Tomorrow*", date_str, events)

    def week(self) -> str:
        start, end = self.time_window.this_week()
        events = self.storage.get_events_for_dates(self.time_window.dates_between(start, end))
        return self.formatter.build_week_listing(start, end, events)

    def exams(self) -> str:
        return self.formatter.build_exam_listing(self.storage.get_all_exams())

    def tasks(self) -> str:
        return self.formatter.build_task_listing(self.storage.get_pending_tasks())

    def sync(self) -> str:
        if self.synchronizer is None:
            return '❌ Sync failed: calendar sync is not configured'
        try:
            result = self.synchronizer.run()
        except Exception as e:
            logger.error(f"Manual sync failed: {e}", exc_info=True)
            return f"❌ Sync failed: {e}"
        return self.formatter.build_sync_summary(result)

    def help(self) -> str:
        return HELP_TEXT
