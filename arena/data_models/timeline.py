"""
Competition timeline data models
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from arena.constants import TimelineConstants


@dataclass(frozen=True)
class TimelineEntry:
    """One phase on the competition timeline."""
    phase_id: Optional[int]
    name: str
    description: Optional[str]
    phase_type: Optional[str]
    order: int
    start_date: datetime
    end_date: datetime
    status: str
    progress: int


@dataclass(frozen=True)
class CompetitionTimeline:
    """Ordered phases of a competition with display status and progress."""
    competition_id: int
    name: str
    year: int
    status: str
    phases: List[TimelineEntry]

    @property
    def current_phase(self) -> Optional[TimelineEntry]:
        for entry in self.phases:
            if entry.status == TimelineConstants.DISPLAY_ACTIVE:
                return entry
        return None
