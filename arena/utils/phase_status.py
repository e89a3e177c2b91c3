import math
from datetime import datetime

from arena.constants import TimelineConstants
from arena.database.models import PhaseStatus
from arena.utils.clock import to_naive_utc

class PhaseStatusResolver:
    """Derives phase status and timeline progress from a phase's time box"""

    @staticmethod
    def resolve(start_date: datetime, end_date: datetime, now: datetime) -> PhaseStatus:
        """
        Compute the status of a phase at a given instant

        Args:
            start_date: Start of the phase (inclusive)
            end_date: End of the phase (inclusive)
            now: Instant to evaluate at

        Returns:
            COMPLETED if now is after end_date, IN_PROGRESS if now lies inside
            [start_date, end_date], otherwise PENDING
        """
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        now = to_naive_utc(now)

        if now > end_date:
            return PhaseStatus.COMPLETED
        if now >= start_date:
            return PhaseStatus.IN_PROGRESS
        return PhaseStatus.PENDING

    @staticmethod
    def progress(start_date: datetime, end_date: datetime, now: datetime) -> int:
        """Percentage of the time box elapsed at `now`, floored to an int in [0, 100]"""
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        now = to_naive_utc(now)

        if now < start_date:
            return 0
        if now >= end_date:
            return 100

        total = (end_date - start_date).total_seconds()
        elapsed = (now - start_date).total_seconds()
        return min(100, max(0, math.floor(elapsed / total * 100)))

    @staticmethod
    def display_status(status: PhaseStatus) -> str:
        """Timeline label for a stored phase status"""
        if status == PhaseStatus.COMPLETED:
            return TimelineConstants.DISPLAY_COMPLETED
        if status == PhaseStatus.IN_PROGRESS:
            return TimelineConstants.DISPLAY_ACTIVE
        return TimelineConstants.DISPLAY_UPCOMING


def resolve_phase_status(start_date: datetime, end_date: datetime, now: datetime) -> PhaseStatus:
    return PhaseStatusResolver.resolve(start_date, end_date, now)
