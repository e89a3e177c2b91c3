"""
Captain Voting Operations Module

Team members vote for their captain during a captain_voting phase. A voter
holds at most one vote per (phase, team); voting again replaces the choice.

Key functionality:
- cast_vote(): validated upsert of a member's vote
- tally(): ranked candidate counts and participation for a team
- reset_voting(): wipe a team's votes and captain in one transaction
- conclude_voting(): appoint each team's leading candidate and close the phase
"""

from datetime import timedelta
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.data_models.voting import TallyResult, VotingOutcome
from arena.database.models import CaptainVote, PhaseType, PlayerRole, Team
from arena.database.repositories import CaptainVoteRepository, PlayerRepository, TeamRepository
from arena.operations.base import BaseOperations
from arena.operations.phase_operations import PhaseOperations
from arena.utils.exceptions import ConflictError, ForbiddenError, NotFoundError
from arena.utils.vote_counting import VoteCounter


class CaptainVotingOperations(BaseOperations):
    """Business logic operations for captain votes."""

    def __init__(self, database, clock=None):
        super().__init__(database, clock)
        self.phases = PhaseOperations(database, self.clock)

    async def cast_vote(
        self,
        voter_id: int,
        captain_id: int,
        team_id: int,
        phase_id: int,
        session: Optional[AsyncSession] = None
    ) -> CaptainVote:
        """
        Record a member's captain choice for their team.

        Raises:
            NotFoundError: Phase or team does not exist
            PhaseInactiveError: Phase is not an in-progress captain_voting phase
            ConflictError: Team is from another competition, or captain is not a member
            ForbiddenError: Voter is not a member of the team
        """
        async with self._get_session_context(session, "cast_vote") as s:
            phase = await self.phases.require_active_phase(s, phase_id, PhaseType.CAPTAIN_VOTING)

            teams = TeamRepository(s)
            team = await teams.get(team_id)
            if team is None:
                raise NotFoundError("Team", team_id)
            if team.competition_id != phase.competition_id:
                raise ConflictError(
                    f"Team {team_id} is not part of competition {phase.competition_id}",
                    "❌ This team does not take part in this voting phase."
                )
            if not await teams.is_member(team_id, voter_id):
                raise ForbiddenError(
                    f"Player {voter_id} is not a member of team {team_id}",
                    "❌ Only team members can vote for their captain."
                )
            if not await teams.is_member(team_id, captain_id):
                raise ConflictError(
                    f"Player {captain_id} is not a member of team {team_id}",
                    "❌ You can only vote for a member of your team."
                )

            vote = await self._upsert_vote(s, voter_id, captain_id, team_id, phase)
            self.logger.info(f"Player {voter_id} voted for {captain_id} as captain of team {team_id}")
            return vote

    async def _upsert_vote(self, session: AsyncSession, voter_id: int, captain_id: int,
                           team_id: int, phase) -> CaptainVote:
        votes = CaptainVoteRepository(session)
        now = self.clock.now()

        existing = await votes.get(voter_id, phase.id, team_id)
        if existing is None:
            vote = CaptainVote(
                voter_id=voter_id,
                captain_id=captain_id,
                team_id=team_id,
                competition_id=phase.competition_id,
                phase_id=phase.id,
                created_at=now,
                updated_at=now
            )
            try:
                async with session.begin_nested():
                    session.add(vote)
                return vote
            except IntegrityError:
                # Lost an insert race for the same key; update the winner's row
                existing = await votes.get(voter_id, phase.id, team_id)
                if existing is None:
                    raise

        existing.captain_id = captain_id
        existing.updated_at = now
        await session.flush()
        return existing

    async def get_my_vote(
        self,
        voter_id: int,
        phase_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[CaptainVote]:
        async with self._get_session_context(session, "get_my_vote") as s:
            return await CaptainVoteRepository(s).get_for_voter_in_phase(voter_id, phase_id)

    async def _tally(self, session: AsyncSession, team_id: int, phase_id: Optional[int]) -> TallyResult:
        team = await TeamRepository(session).get_with_members(team_id)
        if team is None:
            raise NotFoundError("Team", team_id)

        members = [
            (m.player_id, m.player.display_name or m.player.username) for m in team.memberships
        ]
        votes = [
            (vote.voter_id, vote.captain_id)
            for vote in await CaptainVoteRepository(session).list_for_team(team_id, phase_id)
        ]

        member_ids = {player_id for player_id, _ in members}
        outsiders = {captain_id for _, captain_id in votes if captain_id not in member_ids}
        names = {
            player.id: player.display_name or player.username
            for player in await PlayerRepository(session).get_many(outsiders)
        }

        voters_distinct = VoteCounter.distinct_voters(votes)
        return TallyResult(
            team_id=team.id,
            team_name=team.name,
            captain_id=team.captain_id,
            per_candidate=VoteCounter.count(members, votes, names),
            total_votes=len(votes),
            total_members=len(members),
            voters_distinct=voters_distinct,
            voting_percentage=VoteCounter.voting_percentage(voters_distinct, len(members))
        )

    async def tally(
        self,
        team_id: int,
        phase_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> TallyResult:
        """
        Count a team's captain votes.

        A team without votes yields a tally with zero counts, not an error.

        Args:
            phase_id: Only count votes from this phase (default: all phases)
        """
        async with self._get_session_context(session, "tally") as s:
            result = await self._tally(s, team_id, phase_id)
            self.logger.debug(
                f"Tallied {result.total_votes} votes for team {team_id} "
                f"({result.voting_percentage}% participation)"
            )
            return result

    async def reset_voting(self, team_id: int, session: Optional[AsyncSession] = None) -> int:
        """
        Delete all of a team's votes and clear its captain, atomically.

        Returns:
            Number of votes deleted
        """
        async with self._get_session_context(session, "reset_voting") as s:
            teams = TeamRepository(s)
            if await teams.get(team_id) is None:
                raise NotFoundError("Team", team_id)

            deleted = await CaptainVoteRepository(s).delete_for_team(team_id)
            await teams.set_captain(team_id, None)

            self.logger.info(f"Reset captain voting for team {team_id}: {deleted} votes deleted")
            return deleted

    async def conclude_voting(self, phase_id: int, session: Optional[AsyncSession] = None) -> List[VotingOutcome]:
        """
        Close a captain voting phase and appoint the winners.

        Each team with votes in the phase gets its top candidate as captain
        (ties go to the earlier member). Votes for players who have since
        left the team are ignored; a team with no votes for a current member
        keeps its captain. The phase ends immediately.
        """
        async with self._get_session_context(session, "conclude_voting") as s:
            phase = await self.phases.require_active_phase(s, phase_id, PhaseType.CAPTAIN_VOTING)
            players = PlayerRepository(s)

            outcomes = []
            for team_id in await CaptainVoteRepository(s).team_ids_with_votes(phase_id):
                result = await self._tally(s, team_id, phase_id)
                leader = result.leader
                if leader is None:
                    continue

                team = await s.get(Team, team_id)
                team.captain_id = leader.player_id
                captain = await players.get(leader.player_id)
                if captain is not None and captain.role == PlayerRole.PLAYER:
                    captain.role = PlayerRole.CAPTAIN

                outcomes.append(VotingOutcome(
                    team_id=team_id,
                    team_name=result.team_name,
                    captain_id=leader.player_id,
                    vote_count=leader.vote_count,
                    total_votes=result.total_votes
                ))
                self.logger.info(f"Player {leader.player_id} elected captain of team {team_id}")

            # End the phase just before now so it reads as completed from here on
            phase.end_date = max(phase.start_date, self.clock.now() - timedelta(microseconds=1))
            self.phases.apply_status(phase)
            await s.flush()

            self.logger.info(f"Concluded captain voting phase {phase_id} for {len(outcomes)} teams")
            return outcomes
