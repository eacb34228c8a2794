"""Read-only application context and recent-stop history consumed by survey services."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Protocol

from survey_engine.config import settings
from survey_engine.survey_models import Coordinate, Stop


class SurveyApplicationContext(Protocol):
    """What the survey core needs to know about the running application."""

    @property
    def current_region_identifier(self) -> Optional[int]: ...

    @property
    def current_region_name(self) -> Optional[str]: ...

    @property
    def current_coordinate(self) -> Optional[Coordinate]: ...

    @property
    def is_cellular_data_restricted(self) -> bool: ...


@dataclass
class StaticApplicationContext:
    """Mutable holder used by hosts that push context changes in."""
    current_region_identifier: Optional[int] = None
    current_region_name: Optional[str] = None
    current_coordinate: Optional[Coordinate] = None
    is_cellular_data_restricted: bool = False


class RecentStopStore(Protocol):
    def recent_stop_ids(self) -> List[str]: ...


class InMemoryRecentStopStore:
    """Bounded most-recent-first list of visited stop ids."""

    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit if limit is not None else settings.recent_stops_limit
        self._stop_ids: Deque[str] = deque(maxlen=self.limit)

    def add_recent_stop(self, stop: Stop) -> None:
        if stop.id in self._stop_ids:
            self._stop_ids.remove(stop.id)
        self._stop_ids.appendleft(stop.id)

    def recent_stop_ids(self) -> List[str]:
        return list(self._stop_ids)
