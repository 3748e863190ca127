"""
Clock Module

Supplies the current date and time so scheduler runs can be pinned to a fixed day in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo


class Clock(ABC):
    """Source of the current local time"""

    @abstractmethod
    def now(self) -> datetime:
        """Current local date and time"""
        pass

    def today(self) -> date:
        """Current local date"""
        return self.now().date()


class SystemClock(Clock):
    """Wall clock, optionally pinned to an IANA timezone"""

    def __init__(self, timezone: Optional[str] = None):
        self.tz = ZoneInfo(timezone) if timezone else None

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now()
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock frozen at a given moment; advance it explicitly"""

    def __init__(self, moment):
        self.set(moment)

    def set(self, moment) -> None:
        if isinstance(moment, datetime):
            self._now = moment
        else:
            self._now = datetime.combine(moment, time(9, 0))

    def now(self) -> datetime:
        return self._now
