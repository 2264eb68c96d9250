"""Environment-driven configuration."""
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or malformed."""


def _bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _clock_time(value: str, name: str) -> Tuple[int, int]:
    try:
        hour_text, minute_text = value.strip().split(':')
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be HH:MM, got {value!r}") from e
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ConfigurationError(f"{name} is out of range: {value!r}")
    return hour, minute


def _int_list(value: str, name: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in value.split(',') if part.strip())
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a comma separated list of integers") from e


@dataclass
class Settings:
    """Process-wide settings, read once at startup."""
    calendar_url: str = ''
    section: str = '3B'
    timezone: str = 'Asia/Manila'
    telegram_bot_token: str = ''
    telegram_chat_id: str = ''
    table_prefix: str = 'academic-schedule'
    aws_region: Optional[str] = None
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    settle_seconds: float = 2
    callback_pattern: str = 'callback?'
    morning_briefing_time: Tuple[int, int] = (7, 0)
    evening_preparation_time: Tuple[int, int] = (22, 0)
    exam_alert_time: Tuple[int, int] = (20, 0)
    sync_interval_hours: int = 3
    exam_alert_days: Tuple[int, ...] = (3, 2, 1)
    exam_color: str = '#FF6666'
    cancellation_marker: str = '[CLASS CANCELLED]'
    reserved_subject: str = 'Reserved Schedule'
    recent_files_days: int = 7
    prune_stale: bool = False
    dry_run: bool = False
    date_style: str = 'en'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a value is malformed
        """
        env = os.environ if environ is None else environ
        try:
            timeout_seconds = int(env.get('TIMEOUT_SECONDS', '30'))
            settle_seconds = float(env.get('SETTLE_SECONDS', '2'))
            sync_interval_hours = int(env.get('SYNC_INTERVAL_HOURS', '3'))
            recent_files_days = int(env.get('RECENT_FILES_DAYS', '7'))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            calendar_url=env.get('SCHOOL_CALENDAR_URL', '').strip(),
            section=env.get('SECTION', '3B').strip() or '3B',
            timezone=env.get('TIMEZONE', 'Asia/Manila').strip() or 'Asia/Manila',
            telegram_bot_token=env.get('TELEGRAM_BOT_TOKEN', '').strip(),
            telegram_chat_id=env.get('TELEGRAM_CHAT_ID', '').strip(),
            table_prefix=env.get('TABLE_PREFIX', 'academic-schedule').strip(),
            aws_region=env.get('AWS_REGION') or None,
            log_level=env.get('LOG_LEVEL', 'INFO'),
            timeout_seconds=max(1, timeout_seconds),
            settle_seconds=max(0.0, settle_seconds),
            callback_pattern=env.get('CALLBACK_PATTERN', 'callback?'),
            morning_briefing_time=_clock_time(
                env.get('MORNING_BRIEFING_TIME', '07:00'), 'MORNING_BRIEFING_TIME'
            ),
            evening_preparation_time=_clock_time(
                env.get('EVENING_PREPARATION_TIME', '22:00'), 'EVENING_PREPARATION_TIME'
            ),
            exam_alert_time=_clock_time(env.get('EXAM_ALERT_TIME', '20:00'), 'EXAM_ALERT_TIME'),
            sync_interval_hours=max(1, sync_interval_hours),
            exam_alert_days=_int_list(env.get('EXAM_ALERT_DAYS', '3,2,1'), 'EXAM_ALERT_DAYS'),
            exam_color=env.get('EXAM_COLOR', '#FF6666'),
            cancellation_marker=env.get('CANCELLATION_MARKER', '[CLASS CANCELLED]'),
            reserved_subject=env.get('RESERVED_SUBJECT', 'Reserved Schedule'),
            recent_files_days=max(1, recent_files_days),
            prune_stale=_bool(env.get('PRUNE_STALE_EVENTS')),
            dry_run=_bool(env.get('DRY_RUN')),
            date_style=env.get('DATE_STYLE', 'en').strip().lower() or 'en'
        )

    def missing(self, need_calendar: bool = True, need_channel: bool = True) -> List[str]:
        names = []
        if need_calendar and not self.calendar_url:
            names.append('SCHOOL_CALENDAR_URL')
        if need_channel and not self.dry_run:
            if not self.telegram_bot_token:
                names.append('TELEGRAM_BOT_TOKEN')
            if not self.telegram_chat_id:
                names.append('TELEGRAM_CHAT_ID')
        return names

    def validate(self, need_calendar: bool = True, need_channel: bool = True) -> None:
        """
        Check that required values are present.

        Raises:
            ConfigurationError: Listing every missing variable
        """
        names = self.missing(need_calendar=need_calendar, need_channel=need_channel)
        if names:
            raise ConfigurationError(f"Missing required settings: {', '.join(names)}")
