"""Helpers shared by test modules."""
import json
from datetime import datetime
from zoneinfo import ZoneInfo

MANILA = ZoneInfo('Asia/Manila')


class MutableClock:
    """Clock returning a settable Manila wall-clock time."""

    def __init__(self, year, month, day, hour=0, minute=0):
        self.set(year, month, day, hour, minute)

    def set(self, year, month, day, hour=0, minute=0):
        self.current = datetime(year, month, day, hour, minute, tzinfo=MANILA)

    def __call__(self):
        return self.current


def build_frame(events, prefix=")]}'\n\n"):
    """Wrap an events list the way the calendar backend does."""
    inner = json.dumps({'events': events})
    outer = [['op.exec', [0, inner]], ['di', 42]]
    return prefix + json.dumps(outer)
