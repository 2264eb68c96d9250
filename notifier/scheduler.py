"""APScheduler wiring for the notification jobs."""
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from notifier.jobs import NotificationJobs
from settings import Settings

logger = logging.getLogger(__name__)


def build_scheduler(jobs: NotificationJobs, settings: Settings, scheduler=None):
    """
    Register every job on a scheduler running in the configured timezone.

    Args:
        jobs: Notification jobs
        settings: Job times, sync interval and timezone
        scheduler: Scheduler to populate (default: new BlockingScheduler)

    Returns:
        The populated scheduler, not yet started
    """
    tz = settings.timezone
    scheduler = scheduler or BlockingScheduler(timezone=tz)
    job_defaults = {'max_instances': 1, 'coalesce': True, 'misfire_grace_time': 600}

    hour, minute = settings.evening_preparation_time
    scheduler.add_job(
        jobs.send_preparation_notification,
        CronTrigger(hour=hour, minute=minute, timezone=tz),
        id='evening_preparation',
        **job_defaults
    )

    hour, minute = settings.morning_briefing_time
    scheduler.add_job(
        jobs.send_daily_briefing,
        CronTrigger(hour=hour, minute=minute, timezone=tz),
        id='morning_briefing',
        **job_defaults
    )

    hour, minute = settings.exam_alert_time
    scheduler.add_job(
        jobs.check_exam_alerts,
        CronTrigger(hour=hour, minute=minute, timezone=tz),
        id='exam_alerts',
        **job_defaults
    )

    scheduler.add_job(
        jobs.run_calendar_sync,
        IntervalTrigger(hours=settings.sync_interval_hours, timezone=tz),
        id='calendar_sync',
        **job_defaults
    )

    logger.info(
        f"Scheduled jobs in {tz}: preparation {settings.evening_preparation_time}, "
        f"briefing {settings.morning_briefing_time}, exam alerts {settings.exam_alert_time}, "
        f"sync every {settings.sync_interval_hours}h"
    )
    return scheduler
