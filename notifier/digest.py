"""Text rendering for digests, exam alerts and lookup replies."""
from typing import List, Optional

from processor.models import CalendarEvent, Exam, SharedFile, SyncResult, Task
from utils.time_window import TimeWindow

ACTIVITY_EMOJI = {
    'Lecture': '📖',
    'SmallGroupDiscussion': '👥',
    'Exam': '🔴',
    'Clinics': '🏥',
    'Practical': '🔬',
    'Presentation': '🎤',
    'Holiday': '🎌',
    'Other': '📌',
}

MARKDOWN_SPECIAL = ('\\', '_', '*', '`', '[')


def escape_markdown(text: Optional[str]) -> str:
    """Escape Telegram legacy Markdown markers in free text."""
    if not text:
        return ''
    for char in MARKDOWN_SPECIAL:
        text = text.replace(char, '\\' + char)
    return text


def activity_emoji(activity: Optional[str]) -> str:
    return ACTIVITY_EMOJI.get(activity or 'Other', '📌')


def urgency_emoji(days: int) -> str:
    if days <= 1:
        return '🚨'
    if days <= 3:
        return '🔴'
    if days <= 7:
        return '🟡'
    return '🟢'


class DigestFormatter:
    """Builds notification text in the configured timezone."""

    MAX_TASKS = 5
    MAX_FILES = 5
    MAX_EXAMS = 3
    MAX_TITLE_LENGTH = 80

    def __init__(
        self,
        time_window: TimeWindow,
        date_style: str = 'en',
        cancellation_marker: str = '[CLASS CANCELLED]',
        reserved_subject: str = 'Reserved Schedule'
    ):
        self.time_window = time_window
        self.date_style = date_style
        self.cancellation_marker = cancellation_marker
        self.reserved_subject = reserved_subject

    # ========== Building blocks ==========

    def time_range(self, event: CalendarEvent) -> str:
        start = self.time_window.format_time(event.start_time)
        if event.end_time:
            return f"{start}-{self.time_window.format_time(event.end_time)}"
        return start

    def is_cancelled(self, event: CalendarEvent) -> bool:
        return bool(event.topic) and self.cancellation_marker in event.topic

    def format_event_block(self, event: CalendarEvent) -> str:
        """
        Render one event.

        Cancelled classes and the reserved placeholder subject collapse to a
        single line; everything else gets a detail block.
        """
        name = escape_markdown(event.subject or event.title)
        if self.is_cancelled(event):
            return f"✖️ {self.time_range(event)} {name} (cancelled)"
        if event.subject == self.reserved_subject:
            return f"📌 {self.time_range(event)} {name}"

        emoji = '🔴' if event.is_exam else activity_emoji(event.activity)
        lines = [f"{emoji} {self.time_range(event)} [{event.activity or 'Other'}]"]
        detail = f"   📚 {name}"
        if event.topic:
            detail += f" - {escape_markdown(event.topic)}"
        lines.append(detail)
        if event.room:
            lines.append(f"   🏫 Room: {escape_markdown(event.room)}")
        if event.faculty:
            lines.append(f"   👨‍⚕️ {escape_markdown(event.faculty)}")
        return '\n'.join(lines)

    def format_exam_countdown(self, exam: Exam) -> Optional[str]:
        days = self.time_window.days_until(exam.exam_date)
        if days < 0:
            return None

        lines = [f"{urgency_emoji(days)} {escape_markdown(exam.subject)} EXAM: {days} day(s) left"]
        lines.append(
            f"   └ {self.time_window.format_localized_date(exam.exam_date, self.date_style)} "
            f"{self.time_window.format_time(exam.exam_date)}"
        )
        if exam.room:
            lines.append(f"   └ Room: {escape_markdown(exam.room)}")
        if exam.topic:
            lines.append(f"   └ Coverage: {escape_markdown(exam.topic)}")
        return '\n'.join(lines)

    def _event_lines(self, events: List[CalendarEvent], spaced: bool = False) -> List[str]:
        if not events:
            return ['No events scheduled.']
        lines = []
        for event in events:
            lines.append(self.format_event_block(event))
            if spaced:
                lines.append('')
        return lines

    def _countdown_lines(self, exams: List[Exam]) -> List[str]:
        blocks = []
        for exam in exams:
            block = self.format_exam_countdown(exam)
            if block:
                blocks.append(block)
            if len(blocks) >= self.MAX_EXAMS:
                break
        return blocks

    def _task_title(self, task: Task) -> str:
        return escape_markdown(task.title[:self.MAX_TITLE_LENGTH])

    # ========== Digests ==========

    def build_preparation_message(
        self,
        date_str: str,
        events: List[CalendarEvent],
        tasks: List[Task],
        exams: List[Exam],
        files: List[SharedFile],
        files_days: int = 7
    ) -> str:
        """
        Evening message previewing the next day.

        Sections other than the schedule are omitted when empty.
        """
        lines = [
            '📚 *Preparation for tomorrow*',
            f"📅 {self.time_window.format_localized_date(date_str, self.date_style)}",
            '',
        ]
        lines.extend(self._event_lines(events))

        if tasks:
            lines.append('')
            lines.append('⚠️ *Deadlines & tasks*')
            for task in tasks[:self.MAX_TASKS]:
                line = f"・{self._task_title(task)}"
                if task.deadline:
                    line += f" ({self.time_window.format_short_date(task.deadline)})"
                lines.append(line)

        if files:
            lines.append('')
            lines.append(f"📎 *Shared files (last {files_days} days)*")
            for shared_file in files[:self.MAX_FILES]:
                lines.append(f"✅ {escape_markdown(shared_file.filename)}")

        countdown = self._countdown_lines(exams)
        if countdown:
            lines.append('')
            lines.append('🔴 *Exam countdown*')
            lines.extend(countdown)

        return '\n'.join(lines)

    def build_daily_briefing(
        self,
        date_str: str,
        events: List[CalendarEvent],
        tasks: List[Task],
        exams: List[Exam]
    ) -> str:
        """Morning message for the current day."""
        lines = [
            '☀️ *Good morning*',
            f"📅 {self.time_window.format_localized_date(date_str, self.date_style)}",
            '',
            "━━━ Today's schedule ━━━",
            '',
        ]
        lines.extend(self._event_lines(events, spaced=True))

        if tasks:
            lines.append('')
            lines.append('━━━ Due today ━━━')
            for task in tasks:
                lines.append(f"⚠️ {self._task_title(task)}")

        countdown = self._countdown_lines(exams)
        if countdown:
            lines.append('')
            lines.append('━━━ Upcoming exams ━━━')
            lines.extend(countdown)

        return '\n'.join(lines).rstrip('\n')

    def build_exam_alert(self, exam: Exam, days_left: int) -> str:
        """Staged countdown alert for one exam."""
        subject = escape_markdown(exam.subject)
        lines = [
            f"🚨 *Exam in {days_left} day(s)*",
            '',
            f"🔴 {subject} MODULE EXAM",
            f"📅 {self.time_window.format_localized_date(exam.exam_date, self.date_style)} "
            f"{self.time_window.format_time(exam.exam_date)}",
        ]
        if exam.room:
            lines.append(f"🏫 Room: {escape_markdown(exam.room)}")
        lines.append(f"⏰ Days left: {days_left}")

        if exam.topic:
            lines.append('')
            lines.append('📚 Coverage:')
            lines.append(escape_markdown(exam.topic))

        lines.extend([
            '',
            '✅ Review plan',
            f"・Review sessions left: {days_left}",
            '・Recommended per session: 2-3 hours',
            '・Finish the first pass today',
            '',
            '⚠️ Checklist',
            '□ Past papers',
            '□ Full notes review',
            '□ SGD materials',
            '□ Shared group files',
        ])
        return '\n'.join(lines)

    def build_error_message(self, title: str, error: BaseException) -> str:
        detail = str(error).replace('`', "'")
        return f"⚠️ Error: {escape_markdown(title)}\n`{detail}`"

    # ========== Lookup replies ==========

    def build_day_listing(self, heading: str, date_str: str, events: List[CalendarEvent]) -> str:
        lines = [
            f"{heading} - {self.time_window.format_localized_date(date_str, self.date_style)}",
            '',
        ]
        lines.extend(self._event_lines(events))
        return '\n'.join(lines)

    def build_week_listing(self, start: str, end: str, events: List[CalendarEvent]) -> str:
        lines = [
            f"📅 *This week* ({self.time_window.format_short_date(start)} - "
            f"{self.time_window.format_short_date(end)})",
        ]
        if not events:
            lines.append('')
            lines.append('No events scheduled.')
            return '\n'.join(lines)

        last_date = ''
        for event in events:
            if event.event_date != last_date:
                lines.append('')
                lines.append(
                    f"*{self.time_window.format_localized_date(event.start_time, self.date_style)}*"
                )
                last_date = event.event_date
            emoji = '🔴' if event.is_exam else activity_emoji(event.activity)
            line = f"  {emoji} {self.time_range(event)} {escape_markdown(event.subject or event.title)}"
            if event.room:
                line += f" ({escape_markdown(event.room)})"
            lines.append(line)
        return '\n'.join(lines)

    def build_exam_listing(self, exams: List[Exam]) -> str:
        if not exams:
            return '🔴 *Exams*\n\nNo exams stored. Run /sync to refresh the calendar.'

        upcoming = []
        past = 0
        for exam in exams:
            days = self.time_window.days_until(exam.exam_date)
            if days < 0:
                past += 1
            else:
                upcoming.append((exam, days))

        lines = ['🔴 *Exams*', '']
        for exam, days in upcoming:
            label = 'Today!' if days == 0 else f"{days} day(s) left"
            lines.append(f"🔴 *{escape_markdown(exam.subject)}*")
            lines.append(
                f"   📅 {self.time_window.format_localized_date(exam.exam_date, self.date_style)} "
                f"{self.time_window.format_time(exam.exam_date)}"
            )
            lines.append(f"   ⏰ {label}")
            if exam.room:
                lines.append(f"   🏫 {escape_markdown(exam.room)}")
            if exam.topic:
                lines.append(f"   📚 {escape_markdown(exam.topic)}")
            lines.append('')
        if past:
            lines.append(f"Past exams: {past}")
        return '\n'.join(lines).rstrip('\n')

    def build_task_listing(self, tasks: List[Task]) -> str:
        lines = ['📝 *Pending tasks*', '']
        if not tasks:
            lines.append('No pending tasks.')
        for task in tasks:
            line = f"• {escape_markdown(task.title)}"
            if task.deadline:
                line += f" ({self.time_window.format_localized_date(task.deadline, self.date_style)})"
            if task.group_name:
                line += f"\n  📱 {escape_markdown(task.group_name)}"
            lines.append(line)
        return '\n'.join(lines)

    def build_sync_summary(self, result: SyncResult) -> str:
        lines = [
            '✅ Sync complete',
            f"・Updated: {result.upserted}",
            f"・Exams: {result.exam_count}",
            f"・Skipped: {result.skipped}",
        ]
        if result.removed:
            lines.append(f"・Removed (cancelled): {result.removed}")
        if result.pruned:
            lines.append(f"・Pruned (stale): {result.pruned}")
        return '\n'.join(lines)
