import asyncio
from datetime import datetime
from typing import Dict, Mapping, Optional

from arena.config import Config
from arena.data_models.scoring import RemovalSummary
from arena.data_models.voting import TallyResult
from arena.database.database import Database
from arena.database.models import PhaseStatus
from arena.operations.captain_voting import CaptainVotingOperations
from arena.operations.competition_operations import CompetitionOperations
from arena.operations.phase_operations import PhaseOperations
from arena.operations.player_operations import PlayerOperations
from arena.operations.player_removal import PlayerRemovalOperations
from arena.operations.scoring_operations import ScoringOperations
from arena.operations.team_operations import TeamOperations
from arena.services.proficiency_service import ProficiencyService
from arena.utils.clock import Clock
from arena.utils.logger import setup_logger
from arena.utils.phase_status import resolve_phase_status


class CompetitionEngine:
    """
    Entry point for callers of the competition engine.

    Wires every operations class and service to one Database and one Clock.
    Callers are expected to have authorised the acting user already; the
    engine enforces data rules (phase windows, membership, uniqueness), not
    roles.
    """

    def __init__(self, database: Database, clock: Optional[Clock] = None):
        self.db = database
        self.clock = clock or Clock()
        self.logger = setup_logger(__name__)

        self.competitions = CompetitionOperations(database, self.clock)
        self.players = PlayerOperations(database, self.clock)
        self.teams = TeamOperations(database, self.clock)
        self.phases = PhaseOperations(database, self.clock)
        self.scoring = ScoringOperations(database, self.clock)
        self.captain_voting = CaptainVotingOperations(database, self.clock)
        self.removal = PlayerRemovalOperations(database, self.clock)
        self.proficiency = ProficiencyService(database.session_factory)

    @staticmethod
    def resolve_phase_status(start_date: datetime, end_date: datetime, now: datetime) -> PhaseStatus:
        return resolve_phase_status(start_date, end_date, now)

    async def update_phase_dates(self, phase_id: int, start_date: datetime, end_date: datetime):
        return await self.phases.update_phase_dates(phase_id, start_date, end_date)

    async def upsert_self_score(self, user_id: int, competition_id: int, phase_id: int,
                                scores: Mapping[str, int]) -> None:
        await self.scoring.upsert_self_score(user_id, competition_id, phase_id, scores)

    async def upsert_peer_rating(self, rater_id: int, rated_id: int, competition_id: int,
                                 phase_id: int, scores: Mapping[str, int]) -> None:
        await self.scoring.upsert_peer_rating(rater_id, rated_id, competition_id, phase_id, scores)

    async def upsert_peer_ratings(self, rater_id: int, competition_id: int, phase_id: int,
                                  ratings: Dict[int, Mapping[str, int]]) -> int:
        return await self.scoring.upsert_peer_ratings(rater_id, competition_id, phase_id, ratings)

    async def compute_proficiency(self, user_id: int, competition_id: int,
                                  fallback: Optional[int] = None) -> int:
        return await self.proficiency.compute_proficiency(user_id, competition_id, fallback)

    async def commit_proficiency(self, user_id: int, competition_id: int) -> int:
        return await self.proficiency.commit_proficiency(user_id, competition_id)

    async def cast_captain_vote(self, voter_id: int, captain_id: int, team_id: int, phase_id: int) -> None:
        await self.captain_voting.cast_vote(voter_id, captain_id, team_id, phase_id)

    async def tally_captain_votes(self, team_id: int, phase_id: Optional[int] = None) -> TallyResult:
        return await self.captain_voting.tally(team_id, phase_id)

    async def reset_captain_voting(self, team_id: int) -> None:
        await self.captain_voting.reset_voting(team_id)

    async def remove_player(self, player_id: int, competition_id: int) -> RemovalSummary:
        return await self.removal.remove_player(player_id, competition_id)

    async def refresh_active_competition(self):
        """Bring the stored phase statuses of the active competition up to date"""
        competition = await self.competitions.get_active_competition()
        if competition is None:
            self.logger.info("No active competition")
            return None

        changed = await self.phases.refresh_phase_statuses(competition.id)
        self.logger.info(f"Refreshed competition {competition.id}: {len(changed)} phase statuses changed")
        return competition


async def main():
    """Main entry point"""
    Config.validate()
    logger = setup_logger(__name__)

    db = Database()
    await db.initialize()

    try:
        engine = CompetitionEngine(db)
        competition = await engine.refresh_active_competition()
        if competition is not None:
            timeline = await engine.phases.get_competition_timeline(competition.id)
            for entry in timeline.phases:
                logger.info(f"  {entry.order}. {entry.name}: {entry.status} ({entry.progress}%)")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await db.close()

if __name__ == "__main__":
    asyncio.run(main())
