"""
Captain voting data models

Immutable data transfer objects returned by captain vote tallies.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class CandidateTally:
    """Vote count for one captain candidate."""
    player_id: int
    display_name: str
    vote_count: int
    is_member: bool = True


@dataclass(frozen=True)
class TallyResult:
    """Ranked captain votes for a team."""
    team_id: int
    team_name: str
    captain_id: Optional[int]
    per_candidate: List[CandidateTally] = field(default_factory=list)
    total_votes: int = 0
    total_members: int = 0
    voters_distinct: int = 0
    voting_percentage: int = 0

    @property
    def leader(self) -> Optional[CandidateTally]:
        """Top current member with at least one vote"""
        for candidate in self.per_candidate:
            if candidate.is_member and candidate.vote_count > 0:
                return candidate
        return None


@dataclass(frozen=True)
class VotingOutcome:
    """Captain chosen for one team when a voting phase is concluded."""
    team_id: int
    team_name: str
    captain_id: int
    vote_count: int
    total_votes: int
