"""Scheduled notification jobs with per-occurrence idempotency."""
import logging
from datetime import timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from notifier.digest import DigestFormatter
from notifier.telegram_channel import NotificationDispatchError, TelegramChannel
from processor.models import Exam, SyncResult, Task
from storage.dynamodb_manager import DynamoDBManager
from storage.synchronizer import CalendarSynchronizer
from utils.time_window import CIVIL_DATE_FORMAT, TimeWindow

logger = logging.getLogger(__name__)

EVENING_PREPARATION = 'evening_preparation'
MORNING_BRIEFING = 'morning_briefing'
EXAM_ALERT = 'exam_alert'


class NotificationJobs:
    """
    The time-triggered jobs of the reminder engine.

    Every public job catches its own failures, logs them and attempts a
    best-effort error notification, so one failing job never affects the
    next firing of any other job.

    Digests are claimed in the notification ledger before they are sent
    (one claim per category per civil day; one per exam per threshold for
    staged alerts). A claim that already exists suppresses the send; a
    claim whose delivery fails is released so a later firing can retry.
    """

    def __init__(
        self,
        storage: DynamoDBManager,
        channel: TelegramChannel,
        time_window: TimeWindow,
        formatter: DigestFormatter,
        synchronizer: Optional[CalendarSynchronizer] = None,
        exam_alert_days: Sequence[int] = (3, 2, 1),
        upcoming_exam_limit: int = 5,
        recent_files_days: int = 7
    ):
        self.storage = storage
        self.channel = channel
        self.time_window = time_window
        self.formatter = formatter
        self.synchronizer = synchronizer
        self.exam_alert_days = tuple(exam_alert_days)
        self.upcoming_exam_limit = upcoming_exam_limit
        self.recent_files_days = recent_files_days

    # ========== Jobs ==========

    def send_preparation_notification(self) -> bool:
        """
        Evening preview of tomorrow's schedule.

        Returns:
            True if a message was sent by this call
        """
        logger.info("Running job: evening preparation")
        try:
            tomorrow = self.time_window.tomorrow()
            events = self.storage.get_events_by_date(tomorrow)
            tasks = [
                task for task in self.storage.get_pending_tasks()
                if self._task_due_within(task, 1)
            ]
            exams = self._upcoming_exams(self.upcoming_exam_limit)
            files = self.storage.get_recent_files(self._files_since())

            text = self.formatter.build_preparation_message(
                tomorrow, events, tasks, exams, files, self.recent_files_days
            )
            sent = self._deliver_once(
                f"{EVENING_PREPARATION}#{self.time_window.today()}",
                text,
                {'category': EVENING_PREPARATION}
            )
            if sent:
                logger.info("Preparation notification sent")
            return sent
        except Exception as e:
            logger.error(f"Preparation notification failed: {e}", exc_info=True)
            self.send_error_notification('Evening preparation notification', e)
            return False

    def send_daily_briefing(self) -> bool:
        """
        Morning briefing for today.

        Returns:
            True if a message was sent by this call
        """
        logger.info("Running job: morning briefing")
        try:
            today = self.time_window.today()
            events = self.storage.get_events_by_date(today)
            tasks = [
                task for task in self.storage.get_pending_tasks()
                if task.deadline and self._task_days(task) == 0
            ]
            exams = self._upcoming_exams(self.upcoming_exam_limit)

            text = self.formatter.build_daily_briefing(today, events, tasks, exams)
            sent = self._deliver_once(
                f"{MORNING_BRIEFING}#{today}",
                text,
                {'category': MORNING_BRIEFING}
            )
            if sent:
                logger.info("Daily briefing sent")
            return sent
        except Exception as e:
            logger.error(f"Daily briefing failed: {e}", exc_info=True)
            self.send_error_notification('Morning briefing', e)
            return False

    def check_exam_alerts(self) -> int:
        """
        Send staged countdown alerts for exams at each threshold.

        Returns:
            Number of alerts sent by this call
        """
        logger.info("Running job: exam alerts")
        sent = 0
        try:
            for exam in self._alert_candidates():
                days = self.time_window.days_until(exam.exam_date)
                if days not in self.exam_alert_days:
                    continue

                alert_key = f"{EXAM_ALERT}#{exam.event_id}#{days}"
                text = self.formatter.build_exam_alert(exam, days)
                try:
                    delivered = self._deliver_once(
                        alert_key,
                        text,
                        {
                            'category': EXAM_ALERT,
                            'event_id': exam.event_id,
                            'days_left': days
                        }
                    )
                except NotificationDispatchError as e:
                    logger.error(f"Exam alert for {exam.subject} failed: {e}")
                    self.send_error_notification(f"Exam alert for {exam.subject}", e)
                    continue

                if delivered:
                    sent += 1
                    logger.info(f"Exam alert sent for {exam.subject} ({days} days left)")
        except Exception as e:
            logger.error(f"Exam alert check failed: {e}", exc_info=True)
            self.send_error_notification('Exam alert check', e)

        return sent

    def run_calendar_sync(self) -> Optional[SyncResult]:
        """
        Periodic resync; failures are reported, success only logged.

        Returns:
            SyncResult, or None if the sync failed
        """
        logger.info("Running job: calendar sync")
        if self.synchronizer is None:
            logger.warning("Calendar sync requested but no synchronizer is configured")
            return None
        try:
            return self.synchronizer.run()
        except Exception as e:
            logger.error(f"Calendar sync failed: {e}", exc_info=True)
            self.send_error_notification('Calendar sync', e)
            return None

    def send_error_notification(self, title: str, error: BaseException) -> None:
        """Best-effort error report; delivery failures are only logged."""
        try:
            self.channel.send(self.formatter.build_error_message(title, error))
        except Exception as e:
            logger.warning(f"Failed to deliver error notification: {e}")

    # ========== Helpers ==========

    def _deliver_once(self, alert_key: str, text: str, details: Dict[str, Any]) -> bool:
        if not self.storage.claim_notification(alert_key, details):
            logger.info(f"Notification {alert_key} already sent, skipping")
            return False
        try:
            self.channel.send(text)
        except Exception:
            self.storage.release_notification(alert_key)
            raise
        return True

    def _upcoming_exams(self, limit: int) -> List[Exam]:
        from_time = f"{self.time_window.today()} 00:00:00"
        return self.storage.get_upcoming_exams(from_time, limit)

    def _alert_candidates(self) -> List[Exam]:
        # Civil days today+min(threshold) .. today+max(threshold), no count limit
        if not self.exam_alert_days:
            return []
        today = self.time_window.today_date()
        first = today + timedelta(days=max(0, min(self.exam_alert_days)))
        last = today + timedelta(days=max(self.exam_alert_days) + 1)
        return self.storage.get_exams_between(
            f"{first.strftime(CIVIL_DATE_FORMAT)} 00:00:00",
            f"{last.strftime(CIVIL_DATE_FORMAT)} 00:00:00"
        )

    def _files_since(self) -> str:
        since = self.time_window.now() - timedelta(days=self.recent_files_days)
        return since.astimezone(timezone.utc).isoformat()

    def _task_days(self, task: Task) -> Optional[int]:
        try:
            return self.time_window.days_until(task.deadline)
        except (TypeError, ValueError):
            logger.warning(f"Task '{task.title}' has an unreadable deadline: {task.deadline}")
            return None

    def _task_due_within(self, task: Task, days: int) -> bool:
        # Undated tasks always surface in the evening preview
        if not task.deadline:
            return True
        remaining = self._task_days(task)
        return remaining is None or remaining <= days
