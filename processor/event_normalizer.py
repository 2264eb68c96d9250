"""Normalizer mapping raw calendar backend records to CalendarEvent."""
from typing import Any, Dict, Optional

from processor.models import CalendarEvent
from utils.time_window import TimeWindow


class NormalizationError(ValueError):
    """Raised when a record carries an unusable timestamp."""


class EventNormalizer:
    """Normalizer for raw calendar backend records."""

    ACTIVITY_MAP = {
        'Lecture': 'Lecture',
        'SGD': 'SmallGroupDiscussion',
        'Clinics': 'Clinics',
        'Practical': 'Practical',
        'Reporting/Presentation': 'Presentation',
        'HOLIDAY': 'Holiday',
        'Exam': 'Exam',
        'Exam (Manual)': 'Exam',
        'Other': 'Other',
    }
    EXAM_ACTIVITIES = ('Exam', 'Exam (Manual)')
    DEFAULT_EXAM_COLOR = '#FF6666'
    DEFAULT_CANCELLATION_MARKER = '[CLASS CANCELLED]'
    MAX_TITLE_LENGTH = 200

    def __init__(
        self,
        section: str,
        time_window: TimeWindow,
        exam_color: str = DEFAULT_EXAM_COLOR,
        cancellation_marker: str = DEFAULT_CANCELLATION_MARKER
    ):
        """
        Initialize the normalizer.

        Args:
            section: Section identifier to keep (e.g. "3B")
            time_window: TimeWindow used to convert UTC instants to civil time
            exam_color: Backend color hex that marks an exam
            cancellation_marker: Topic substring that marks a cancelled class
        """
        self.section = section
        self.time_window = time_window
        self.exam_color = exam_color.upper()
        self.cancellation_marker = cancellation_marker

    def normalize(self, raw: Dict[str, Any]) -> Optional[CalendarEvent]:
        """
        Normalize a single backend record.

        Args:
            raw: Raw backend record

        Returns:
            CalendarEvent, or None if the record belongs to another section

        Raises:
            NormalizationError: If the start or end timestamp is unusable
        """
        ext = raw.get('extendedProps') or {}
        if ext.get('sectionID') != self.section:
            return None

        raw_activity = ext.get('activity') or ''
        color = raw.get('color') or None
        topic = ext.get('topic') or None
        title = (raw.get('title') or '')[:self.MAX_TITLE_LENGTH]

        start_time = self._convert_timestamp(raw.get('start'), title, 'start')
        end_time = None
        if raw.get('end'):
            end_time = self._convert_timestamp(raw.get('end'), title, 'end')

        event_id = ext.get('meuTTid')
        if event_id is not None and event_id != '':
            event_id = str(event_id)
        else:
            event_id = None

        return CalendarEvent(
            event_id=event_id,
            title=title,
            subject=ext.get('subjectID') or '',
            activity=self.normalize_activity(raw_activity),
            start_time=start_time,
            end_time=end_time,
            room=ext.get('roomID') or None,
            faculty=ext.get('faculty') or None,
            topic=topic,
            department=ext.get('departmentID') or None,
            color=color,
            is_exam=self.is_exam(raw_activity, color),
            cancelled=self.is_cancelled(topic)
        )

    def normalize_activity(self, activity: Optional[str]) -> str:
        """Map a backend activity label; unknown labels pass through."""
        if not activity:
            return 'Other'
        return self.ACTIVITY_MAP.get(activity, activity)

    def is_exam(self, activity: Optional[str], color: Optional[str]) -> bool:
        """Either the exam color or an exam activity label marks an exam."""
        if color and color.upper() == self.exam_color:
            return True
        return activity in self.EXAM_ACTIVITIES

    def is_cancelled(self, topic: Optional[str]) -> bool:
        return bool(topic) and self.cancellation_marker in topic

    def _convert_timestamp(self, value: Any, title: str, field_name: str) -> str:
        if not value:
            raise NormalizationError(f"Event '{title}' missing {field_name} time")
        try:
            return self.time_window.to_civil_string(value)
        except (TypeError, ValueError) as e:
            raise NormalizationError(
                f"Invalid {field_name} time for event '{title}': {value}"
            ) from e
