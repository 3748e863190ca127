"""
Day Gate Module

Per-device record of the last local day the scheduler ran for each user. It
only lets repeat runs on the same day skip work cheaply; payment correctness
never depends on it.
"""

from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Union
import json
import logging

from .exceptions import GateError


logger = logging.getLogger(__name__)


class DayGateStore(ABC):
    """Last checked day per user"""

    @abstractmethod
    def get(self, user_id: str) -> Optional[date]:
        pass

    @abstractmethod
    def set(self, user_id: str, day: date) -> None:
        pass


class InMemoryDayGateStore(DayGateStore):

    def __init__(self):
        self._days: Dict[str, date] = {}

    def get(self, user_id: str) -> Optional[date]:
        return self._days.get(user_id)

    def set(self, user_id: str, day: date) -> None:
        self._days[user_id] = day


class JSONFileDayGateStore(DayGateStore):
    """Gate markers kept in a small JSON file on the local device"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise GateError(f"Day gate file {self.path} is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise GateError(f"Day gate file {self.path} has an invalid format")
        return data

    def get(self, user_id: str) -> Optional[date]:
        value = self._read().get(user_id)
        if not value:
            return None
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise GateError(f"Invalid day gate value {value!r} for user {user_id}") from e

    def set(self, user_id: str, day: date) -> None:
        try:
            data = self._read()
        except GateError:
            logger.warning(f"Resetting corrupt day gate file {self.path}")
            data = {}
        data[user_id] = day.isoformat()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            with open(tmp, "w") as f:
                json.dump(data, f, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise GateError(f"Failed to write day gate file {self.path}: {e}") from e
