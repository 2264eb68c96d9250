"""Unit tests for CalendarSynchronizer."""
from unittest.mock import Mock

import pytest

from helpers import build_frame
from processor.event_normalizer import EventNormalizer
from scraper.calendar_fetcher import CalendarFetchError
from scraper.wire_decoder import decode
from storage.dynamodb_manager import StorageError
from storage.synchronizer import CalendarSynchronizer


@pytest.fixture
def normalizer(time_window):
    return EventNormalizer('3B', time_window)


@pytest.fixture
def synchronizer(normalizer, storage):
    return CalendarSynchronizer(normalizer, storage)


class TestSyncEvents:
    """Test cases for sync_events()."""

    def test_upserts_events_and_exams(self, synchronizer, storage, raw_event):
        """Test that events are stored and exams projected."""
        result = synchronizer.sync_events([
            raw_event('E1'),
            raw_event('E2', activity='Exam', subject='Pharmacology',
                      start='2024-02-18T01:00:00Z', end='2024-02-18T03:00:00Z'),
        ])

        assert result.upserted == 2
        assert result.exam_count == 1
        assert result.skipped == 0
        assert set(storage.get_all_events()) == {'E1', 'E2'}
        exam = storage.get_exam('E2')
        assert exam.subject == 'Pharmacology'
        assert exam.exam_date == '2024-02-18 09:00:00'

    def test_sync_is_idempotent(self, synchronizer, storage, raw_event):
        """Test that repeating the same input leaves one row per id."""
        raw = [raw_event('E1'), raw_event('E2', color='#FF6666')]

        first = synchronizer.sync_events(raw)
        second = synchronizer.sync_events(raw)

        assert first.to_dict() == second.to_dict()
        assert len(storage.get_all_events()) == 2
        assert len(storage.get_all_exams()) == 1

    def test_rescheduled_event_moves_day(self, synchronizer, storage, raw_event):
        """Test that a changed start time updates the row in place."""
        synchronizer.sync_events([raw_event('E1')])
        synchronizer.sync_events([raw_event('E1', start='2024-02-16T05:00:00Z', end=None)])

        assert storage.get_events_by_date('2024-02-15') == []
        moved = storage.get_events_by_date('2024-02-16')
        assert [e.start_time for e in moved] == ['2024-02-16 13:00:00']

    def test_other_sections_are_ignored(self, synchronizer, storage, raw_event):
        """Test that foreign sections are neither stored nor counted."""
        result = synchronizer.sync_events([raw_event('E1', section='3A')])

        assert result.to_dict() == {
            'upserted': 0, 'exam_count': 0, 'skipped': 0, 'removed': 0, 'pruned': 0
        }
        assert storage.get_all_events() == {}

    def test_records_without_id_are_skipped(self, synchronizer, storage, raw_event):
        result = synchronizer.sync_events([raw_event(None), raw_event('E2')])

        assert result.skipped == 1
        assert result.upserted == 1
        assert set(storage.get_all_events()) == {'E2'}

    def test_unparseable_records_are_skipped(self, synchronizer, storage, raw_event):
        """Test that a bad timestamp does not abort the pass."""
        result = synchronizer.sync_events([raw_event('E1', start='garbage'), raw_event('E2')])

        assert result.skipped == 1
        assert result.upserted == 1

    def test_cancelled_class_is_removed(self, synchronizer, storage, raw_event):
        """Test that a class later marked cancelled disappears from storage."""
        synchronizer.sync_events([raw_event('E1', color='#FF6666')])

        result = synchronizer.sync_events([
            raw_event('E1', color='#FF6666', topic='[CLASS CANCELLED] Upper limb')
        ])

        assert result.skipped == 1
        assert result.removed == 1
        assert storage.get_event('E1') is None
        assert storage.get_exam('E1') is None

    def test_cancelled_unknown_class_is_only_skipped(self, synchronizer, raw_event):
        result = synchronizer.sync_events([raw_event('E9', topic='[CLASS CANCELLED]')])

        assert result.skipped == 1
        assert result.removed == 0

    def test_exam_reclassified_as_regular(self, synchronizer, storage, raw_event):
        """Test that the exam projection is dropped when classification changes."""
        synchronizer.sync_events([raw_event('E1', activity='Exam')])
        result = synchronizer.sync_events([raw_event('E1', activity='Lecture')])

        assert result.exam_count == 0
        assert storage.get_exam('E1') is None
        assert storage.get_event('E1').is_exam is False

    def test_empty_input_changes_nothing(self, synchronizer, storage, raw_event):
        """Test that an empty pass keeps existing rows."""
        synchronizer.sync_events([raw_event('E1')])

        result = synchronizer.sync_events([])

        assert result.upserted == 0
        assert set(storage.get_all_events()) == {'E1'}

    def test_stale_rows_are_kept_by_default(self, synchronizer, storage, raw_event):
        synchronizer.sync_events([raw_event('E1'), raw_event('E2')])
        result = synchronizer.sync_events([raw_event('E2')])

        assert result.pruned == 0
        assert set(storage.get_all_events()) == {'E1', 'E2'}

    def test_prune_stale_rows(self, normalizer, storage, raw_event):
        """Test that pruning removes rows missing from a complete pass."""
        synchronizer = CalendarSynchronizer(normalizer, storage, prune_stale=True)
        synchronizer.sync_events([raw_event('E1'), raw_event('E2', activity='Exam')])

        result = synchronizer.sync_events([raw_event('E1')])

        assert result.pruned == 1
        assert set(storage.get_all_events()) == {'E1'}
        assert storage.get_exam('E2') is None

    def test_prune_skipped_when_nothing_seen(self, normalizer, storage, raw_event):
        """Test that an empty pass never wipes the store."""
        synchronizer = CalendarSynchronizer(normalizer, storage, prune_stale=True)
        synchronizer.sync_events([raw_event('E1')])

        result = synchronizer.sync_events([])

        assert result.pruned == 0
        assert set(storage.get_all_events()) == {'E1'}

    def test_storage_failure_keeps_earlier_writes(self, normalizer, storage, raw_event):
        """Test that a failing write aborts the pass without undoing prior rows."""
        real_put = storage.put_event
        calls = []

        def flaky_put(event):
            calls.append(event.event_id)
            if event.event_id == 'E2':
                raise StorageError('throttled')
            real_put(event)

        storage.put_event = flaky_put
        synchronizer = CalendarSynchronizer(normalizer, storage)

        with pytest.raises(StorageError):
            synchronizer.sync_events([raw_event('E1'), raw_event('E2'), raw_event('E3')])

        assert calls == ['E1', 'E2']
        assert set(storage.get_all_events()) == {'E1'}


class TestRun:
    """Test cases for run()."""

    def test_run_fetches_and_syncs(self, normalizer, storage, raw_event):
        fetcher = Mock()
        fetcher.fetch_events.return_value = [raw_event('E1')]
        synchronizer = CalendarSynchronizer(normalizer, storage, fetcher=fetcher)

        result = synchronizer.run()

        assert result.upserted == 1
        fetcher.fetch_events.assert_called_once_with()

    def test_run_propagates_fetch_failure(self, normalizer, storage, raw_event):
        """Test that a failed fetch never touches stored rows."""
        CalendarSynchronizer(normalizer, storage).sync_events([raw_event('E1')])
        fetcher = Mock()
        fetcher.fetch_events.side_effect = CalendarFetchError('no frame')
        synchronizer = CalendarSynchronizer(normalizer, storage, fetcher=fetcher, prune_stale=True)

        with pytest.raises(CalendarFetchError):
            synchronizer.run()
        assert set(storage.get_all_events()) == {'E1'}

    def test_run_without_fetcher(self, synchronizer):
        with pytest.raises(RuntimeError):
            synchronizer.run()


def test_lecture_and_manual_exam_end_to_end(time_window, storage, raw_event):
    """Test a decoded payload through normalization into storage."""
    payload = decode(build_frame([
        raw_event('L1', activity='Lecture'),
        raw_event('X1', activity='Exam (Manual)', color='#FF6666', subject='Pathology',
                  start='2024-02-19T01:00:00Z', end='2024-02-19T04:00:00Z'),
    ]))
    synchronizer = CalendarSynchronizer(EventNormalizer('3B', time_window), storage)

    result = synchronizer.sync_events(payload.events)

    assert (result.upserted, result.exam_count, result.skipped) == (2, 1, 0)
    assert len(storage.get_all_events()) == 2
    exam = storage.get_exam('X1')
    assert exam.exam_date == storage.get_event('X1').start_time
