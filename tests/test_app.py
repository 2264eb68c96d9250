"""Tests for application wiring and the command line entry point."""
from unittest.mock import patch

import main
from app import build_application
from scraper.calendar_fetcher import CalendarFetchError
from settings import Settings


def test_build_application_wires_settings(dynamodb):
    """Test that settings flow into every component."""
    settings = Settings(
        calendar_url='https://school.example.com/calendar',
        section='2A',
        timezone='Asia/Tokyo',
        table_prefix='test-schedule',
        exam_alert_days=(5, 1),
        prune_stale=True,
        dry_run=True
    )

    application = build_application(settings, dynamodb=dynamodb)

    assert application.time_window.tz_name == 'Asia/Tokyo'
    assert application.synchronizer.normalizer.section == '2A'
    assert application.synchronizer.prune_stale is True
    assert application.synchronizer.fetcher.calendar_url == settings.calendar_url
    assert application.jobs.exam_alert_days == (5, 1)
    assert application.channel.dry_run is True
    assert application.storage.events_table.name == 'test-schedule-events'
    assert application.commands.synchronizer is application.synchronizer


def test_main_sync_failure_exit_code(monkeypatch):
    """Test that a failed one-shot sync exits non-zero."""
    monkeypatch.setenv('SCHOOL_CALENDAR_URL', 'https://school.example.com/calendar')
    with patch('main.build_application') as build:
        build.return_value.synchronizer.run.side_effect = CalendarFetchError('no frame')

        assert main.main(['sync']) == 1
        build.return_value.close.assert_called_once()


def test_main_missing_configuration(monkeypatch):
    monkeypatch.delenv('SCHOOL_CALENDAR_URL', raising=False)
    assert main.main(['sync']) == 2


def test_main_evening_job(monkeypatch):
    monkeypatch.setenv('DRY_RUN', 'true')
    with patch('main.build_application') as build:
        assert main.main(['evening']) == 0
        build.return_value.jobs.send_preparation_notification.assert_called_once_with()
