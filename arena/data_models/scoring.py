"""
Proficiency and removal data models
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ProficiencyBreakdown:
    """How a player's proficiency score was put together."""
    user_id: int
    competition_id: int
    self_average: Optional[float]
    peer_average: Optional[float]
    self_count: int
    peer_count: int
    combined: Optional[float]
    score: int
    categories: List[Dict] = field(default_factory=list)

    @property
    def has_ratings(self) -> bool:
        return self.combined is not None


@dataclass(frozen=True)
class RemovalSummary:
    """Row counts touched by a player removal."""
    player_id: int
    competition_id: int
    registrations_deleted: int
    self_scores_deleted: int
    ratings_given_deleted: int
    ratings_received_deleted: int
    votes_cast_deleted: int
    votes_received_deleted: int
    captaincies_cleared: int

    @property
    def total_rows(self) -> int:
        return (self.registrations_deleted + self.self_scores_deleted
                + self.ratings_given_deleted + self.ratings_received_deleted
                + self.votes_cast_deleted + self.votes_received_deleted
                + self.captaincies_cleared)
