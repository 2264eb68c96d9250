"""Data models for calendar ingestion and notifications."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CalendarPayload:
    """Decoded calendar document carried inside the backend envelope."""
    events: List[Dict[str, Any]]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CalendarEvent:
    """Normalized calendar occurrence in local civil time."""
    event_id: Optional[str]
    title: str
    subject: str
    activity: str
    start_time: str
    end_time: Optional[str]
    room: Optional[str]
    faculty: Optional[str]
    topic: Optional[str]
    department: Optional[str]
    color: Optional[str]
    is_exam: bool
    cancelled: bool = False
    synced_at: Optional[str] = None

    @property
    def event_date(self) -> str:
        """Civil date (YYYY-MM-DD) of the start time."""
        return self.start_time[:10]

    @property
    def syncable(self) -> bool:
        return bool(self.event_id) and not self.cancelled


@dataclass
class Exam:
    """Exam projection of an exam-classified CalendarEvent."""
    event_id: str
    subject: str
    exam_date: str
    room: Optional[str]
    faculty: Optional[str]
    topic: Optional[str]
    color: Optional[str]

    @classmethod
    def from_event(cls, event: CalendarEvent) -> 'Exam':
        return cls(
            event_id=event.event_id,
            subject=event.subject or event.title,
            exam_date=event.start_time,
            room=event.room,
            faculty=event.faculty,
            topic=event.topic,
            color=event.color
        )


@dataclass
class Task:
    """Reminder candidate detected in chat text."""
    task_id: str
    title: str
    deadline: Optional[str] = None
    completed: bool = False
    description: Optional[str] = None
    group_name: Optional[str] = None
    source: Optional[str] = None


@dataclass
class SharedFile:
    """Attachment downloaded from a chat group."""
    file_id: str
    filename: str
    downloaded_at: str
    subject: Optional[str] = None
    group_name: Optional[str] = None


@dataclass
class SyncResult:
    """Result of sync operation."""
    upserted: int = 0
    exam_count: int = 0
    skipped: int = 0
    removed: int = 0
    pruned: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'upserted': self.upserted,
            'exam_count': self.exam_count,
            'skipped': self.skipped,
            'removed': self.removed,
            'pruned': self.pruned
        }
