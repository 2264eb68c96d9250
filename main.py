"""Long-running entry point: scheduled reminders plus one-shot commands."""
import argparse
import logging
import sys
from typing import List, Optional

import boto3

from app import build_application
from lambda_function import setup_logging
from notifier.scheduler import build_scheduler
from scraper.calendar_fetcher import CalendarFetchError
from settings import ConfigurationError, Settings
from storage.dynamodb_manager import StorageError
from storage.tables import create_tables

logger = logging.getLogger(__name__)

COMMANDS = ('run', 'sync', 'morning', 'evening', 'exam-alerts', 'init-tables')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Academic schedule sync and reminders')
    parser.add_argument('command', nargs='?', default='run', choices=COMMANDS)
    parser.add_argument('--dry-run', action='store_true',
                        help='log notifications instead of sending them')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2
    if args.dry_run:
        settings.dry_run = True

    setup_logging(settings.log_level)

    if args.command == 'init-tables':
        dynamodb = boto3.resource('dynamodb', region_name=settings.aws_region)
        created = create_tables(dynamodb, settings.table_prefix)
        logger.info(f"Tables created: {created or 'none'}")
        return 0

    try:
        settings.validate(
            need_calendar=args.command in ('run', 'sync'),
            need_channel=args.command != 'sync'
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    application = build_application(settings)
    try:
        if args.command == 'sync':
            try:
                result = application.synchronizer.run()
            except (CalendarFetchError, StorageError) as e:
                logger.error(f"Sync failed: {e}", exc_info=True)
                return 1
            logger.info(f"Sync result: {result.to_dict()}")
        elif args.command == 'morning':
            application.jobs.send_daily_briefing()
        elif args.command == 'evening':
            application.jobs.send_preparation_notification()
        elif args.command == 'exam-alerts':
            application.jobs.check_exam_alerts()
        else:
            logger.info(f"Starting scheduler (timezone {settings.timezone}, section {settings.section})")
            application.jobs.run_calendar_sync()
            application.scheduler = build_scheduler(application.jobs, settings)
            application.scheduler.start()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        application.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
