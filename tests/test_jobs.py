"""Unit tests for NotificationJobs."""
from unittest.mock import Mock

import pytest

from notifier.jobs import NotificationJobs
from notifier.telegram_channel import NotificationDispatchError
from processor.models import CalendarEvent, Exam, SharedFile, SyncResult, Task
from storage.dynamodb_manager import StorageError


def make_event(event_id, start, subject='Anatomy'):
    return CalendarEvent(
        event_id=event_id,
        title=subject,
        subject=subject,
        activity='Lecture',
        start_time=start,
        end_time=None,
        room='R101',
        faculty=None,
        topic=None,
        department=None,
        color=None,
        is_exam=False
    )


def make_exam(event_id, exam_date, subject='Pharmacology'):
    return Exam(event_id, subject, exam_date, 'Hall A', None, None, '#FF6666')


@pytest.fixture
def channel():
    return Mock()


@pytest.fixture
def jobs(storage, channel, time_window, formatter):
    return NotificationJobs(storage, channel, time_window, formatter)


class TestPreparationNotification:
    """Test cases for the evening preparation job."""

    def test_previews_tomorrow(self, jobs, storage, channel):
        """Test that tomorrow's events, due tasks and files are included."""
        storage.put_event(make_event('E1', '2024-02-16 08:00:00', subject='Physiology'))
        storage.put_event(make_event('E2', '2024-02-15 13:00:00', subject='Today only'))
        storage.put_task(Task('T1', 'Due tomorrow', deadline='2024-02-16'))
        storage.put_task(Task('T2', 'Due next week', deadline='2024-02-22'))
        storage.put_task(Task('T3', 'Undated'))
        storage.put_shared_file(SharedFile('F1', 'slides.pdf', '2024-02-14T00:00:00+00:00'))
        storage.put_shared_file(SharedFile('F2', 'ancient.pdf', '2024-01-01T00:00:00+00:00'))

        assert jobs.send_preparation_notification() is True

        text = channel.send.call_args[0][0]
        assert 'Physiology' in text
        assert 'Today only' not in text
        assert 'Due tomorrow' in text
        assert 'Undated' in text
        assert 'Due next week' not in text
        assert 'slides.pdf' in text
        assert 'ancient.pdf' not in text

    def test_sent_once_per_day(self, jobs, clock, channel):
        """Test that repeated firings on one day send a single digest."""
        assert jobs.send_preparation_notification() is True
        clock.set(2024, 2, 15, 22, 5)
        assert jobs.send_preparation_notification() is False
        assert channel.send.call_count == 1

        clock.set(2024, 2, 16, 22, 0)
        assert jobs.send_preparation_notification() is True
        assert channel.send.call_count == 2

    def test_failed_delivery_releases_claim(self, jobs, storage, channel):
        """Test that a failed send can be retried by a later firing."""
        channel.send.side_effect = [NotificationDispatchError('down'), None, None]

        assert jobs.send_preparation_notification() is False
        assert storage.has_notification('evening_preparation#2024-02-15') is False

        assert jobs.send_preparation_notification() is True
        assert storage.has_notification('evening_preparation#2024-02-15') is True

    def test_storage_failure_reports_error(self, channel, time_window, formatter):
        """Test that a job failure is reported and not raised."""
        storage = Mock()
        storage.get_events_by_date.side_effect = StorageError('table missing')
        jobs = NotificationJobs(storage, channel, time_window, formatter)

        assert jobs.send_preparation_notification() is False
        channel.send.assert_called_once()
        assert 'table missing' in channel.send.call_args[0][0]


class TestDailyBriefing:
    """Test cases for the morning briefing job."""

    def test_briefing_lists_today(self, jobs, storage, channel, clock):
        clock.set(2024, 2, 15, 7, 0)
        storage.put_event(make_event('E1', '2024-02-15 08:00:00'))
        storage.put_task(Task('T1', 'Due today', deadline='2024-02-15 17:00:00'))
        storage.put_task(Task('T2', 'Due tomorrow', deadline='2024-02-16'))
        storage.put_task(Task('T3', 'Undated'))
        storage.put_exam(make_exam('X1', '2024-02-17 09:00:00'))

        assert jobs.send_daily_briefing() is True

        text = channel.send.call_args[0][0]
        assert 'Anatomy' in text
        assert 'Due today' in text
        assert 'Due tomorrow' not in text
        assert 'Undated' not in text
        assert 'Pharmacology EXAM: 2 day(s) left' in text

    def test_briefing_once_per_day(self, jobs, channel):
        jobs.send_daily_briefing()
        jobs.send_daily_briefing()
        assert channel.send.call_count == 1

    def test_delivery_failure_is_reported(self, jobs, channel):
        """Test that the error notification follows a failed briefing."""
        channel.send.side_effect = [NotificationDispatchError('timeout'), None]

        assert jobs.send_daily_briefing() is False
        assert channel.send.call_count == 2
        assert 'Morning briefing' in channel.send.call_args[0][0]


class TestExamAlerts:
    """Test cases for staged exam alerts."""

    def test_alerts_at_each_threshold_exactly_once(self, jobs, storage, channel, clock):
        """Test the staged countdown across several days and repeated firings."""
        storage.put_exam(make_exam('X1', '2024-02-20 09:00:00'))
        sent_per_day = []

        for day in range(15, 22):
            for hour in (20, 21):
                clock.set(2024, 2, day, hour, 0)
                sent_per_day.append((day, hour, jobs.check_exam_alerts()))

        sent_days = [(day, hour) for day, hour, sent in sent_per_day if sent]
        assert sent_days == [(17, 20), (18, 20), (19, 20)]
        texts = [call[0][0] for call in channel.send.call_args_list]
        assert [t.splitlines()[0] for t in texts] == [
            '🚨 *Exam in 3 day(s)*',
            '🚨 *Exam in 2 day(s)*',
            '🚨 *Exam in 1 day(s)*',
        ]

    def test_threshold_missed_is_not_back_filled(self, jobs, storage, channel, clock):
        """Test that only the current countdown value is alerted."""
        storage.put_exam(make_exam('X1', '2024-02-17 09:00:00'))

        assert jobs.check_exam_alerts() == 1
        assert channel.send.call_args[0][0].startswith('🚨 *Exam in 2 day(s)*')

    def test_exam_day_and_far_exams_are_silent(self, jobs, storage, channel):
        storage.put_exam(make_exam('X1', '2024-02-15 13:00:00'))
        storage.put_exam(make_exam('X2', '2024-02-25 09:00:00'))

        assert jobs.check_exam_alerts() == 0
        channel.send.assert_not_called()

    def test_one_failing_exam_does_not_block_others(self, jobs, storage, channel):
        """Test per-exam failure isolation."""
        storage.put_exam(make_exam('X1', '2024-02-16 09:00:00', subject='Anatomy'))
        storage.put_exam(make_exam('X2', '2024-02-17 09:00:00', subject='Histology'))

        def send(text):
            if 'Anatomy MODULE EXAM' in text:
                raise NotificationDispatchError('rejected')

        channel.send.side_effect = send

        assert jobs.check_exam_alerts() == 1
        assert storage.has_notification('exam_alert#X1#1') is False
        assert storage.has_notification('exam_alert#X2#2') is True
        assert any('Exam alert for Anatomy' in call[0][0] for call in channel.send.call_args_list)

    def test_many_nearer_exams_do_not_hide_threshold_exam(self, jobs, storage, channel):
        """Test that exams today or tomorrow never crowd out a 3-day alert."""
        for i in range(10):
            storage.put_exam(make_exam(f"T{i}", f"2024-02-15 {8 + i:02d}:00:00", subject=f"Quiz{i}"))
        for i in range(4):
            storage.put_exam(make_exam(f"S{i}", '2024-02-16 08:00:00', subject=f"Tomorrow{i}"))
        storage.put_exam(make_exam('X1', '2024-02-18 09:00:00', subject='Pathology'))

        assert jobs.check_exam_alerts() == 5
        assert storage.has_notification('exam_alert#X1#3') is True
        assert not any(
            storage.has_notification(f"exam_alert#T{i}#0") for i in range(10)
        )

    def test_custom_thresholds(self, storage, channel, time_window, formatter):
        jobs = NotificationJobs(storage, channel, time_window, formatter, exam_alert_days=(7,))
        storage.put_exam(make_exam('X1', '2024-02-22 09:00:00'))

        assert jobs.check_exam_alerts() == 1


class TestCalendarSync:
    """Test cases for the periodic sync job."""

    def test_success_is_silent(self, jobs, channel):
        jobs.synchronizer = Mock()
        jobs.synchronizer.run.return_value = SyncResult(upserted=3)

        assert jobs.run_calendar_sync().upserted == 3
        channel.send.assert_not_called()

    def test_failure_is_reported(self, jobs, channel):
        jobs.synchronizer = Mock()
        jobs.synchronizer.run.side_effect = RuntimeError('no frame')

        assert jobs.run_calendar_sync() is None
        assert 'Calendar sync' in channel.send.call_args[0][0]

    def test_without_synchronizer(self, jobs, channel):
        assert jobs.run_calendar_sync() is None
        channel.send.assert_not_called()


def test_error_notification_failure_is_swallowed(jobs, channel):
    channel.send.side_effect = NotificationDispatchError('down')
    jobs.send_error_notification('Anything', RuntimeError('x'))
