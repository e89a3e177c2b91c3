"""
Per-entity repositories over a request-scoped AsyncSession.

Each repository owns the queries for exactly one table. They never commit:
the caller decides the transaction boundary (Database.transaction() for
writes, Database.get_session() for reads), so several repositories can take
part in one atomic unit of work by sharing the same session.
"""

from typing import Iterable, List, Optional, Set
from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from arena.database.models import (
    Competition, CompetitionPhase, CompetitionStatus, Player, Team, TeamMembership,
    UserCompetition, PlayerSelfScore, PlayerRating, CaptainVote
)


class BaseRepository:
    """Holds the session shared by all repositories in one unit of work"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, row):
        self.session.add(row)
        await self.session.flush()
        return row


class CompetitionRepository(BaseRepository):

    async def get(self, competition_id: int) -> Optional[Competition]:
        return await self.session.get(Competition, competition_id)

    async def get_first_by_status(self, status: CompetitionStatus) -> Optional[Competition]:
        """Earliest-starting competition with the given status"""
        result = await self.session.execute(
            select(Competition)
            .where(Competition.status == status)
            .order_by(Competition.start_date.asc(), Competition.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Competition]:
        result = await self.session.execute(
            select(Competition).order_by(Competition.year.desc(), Competition.id.desc())
        )
        return list(result.scalars().all())


class PhaseRepository(BaseRepository):

    async def get(self, phase_id: int) -> Optional[CompetitionPhase]:
        return await self.session.get(CompetitionPhase, phase_id)

    async def list_for_competition(self, competition_id: int) -> List[CompetitionPhase]:
        """Phases in ascending `order`"""
        result = await self.session.execute(
            select(CompetitionPhase)
            .where(CompetitionPhase.competition_id == competition_id)
            .order_by(CompetitionPhase.order.asc())
        )
        return list(result.scalars().all())

    async def get_by_order(self, competition_id: int, order: int) -> Optional[CompetitionPhase]:
        result = await self.session.execute(
            select(CompetitionPhase).where(
                and_(
                    CompetitionPhase.competition_id == competition_id,
                    CompetitionPhase.order == order
                )
            )
        )
        return result.scalar_one_or_none()

    async def delete(self, phase_id: int) -> int:
        """Delete a phase; its scores, ratings and votes go with it via ON DELETE CASCADE"""
        result = await self.session.execute(
            delete(CompetitionPhase).where(CompetitionPhase.id == phase_id)
        )
        return result.rowcount


class PlayerRepository(BaseRepository):

    async def get(self, player_id: int) -> Optional[Player]:
        return await self.session.get(Player, player_id)

    async def get_by_username(self, username: str) -> Optional[Player]:
        result = await self.session.execute(
            select(Player).where(Player.username == username)
        )
        return result.scalar_one_or_none()

    async def get_many(self, player_ids: Iterable[int]) -> List[Player]:
        ids = list(player_ids)
        if not ids:
            return []
        result = await self.session.execute(select(Player).where(Player.id.in_(ids)))
        return list(result.scalars().all())


class TeamRepository(BaseRepository):

    async def get(self, team_id: int) -> Optional[Team]:
        return await self.session.get(Team, team_id)

    async def get_with_members(self, team_id: int) -> Optional[Team]:
        """Team with memberships (join order) and their players eagerly loaded"""
        result = await self.session.execute(
            select(Team)
            .where(Team.id == team_id)
            .options(selectinload(Team.memberships).selectinload(TeamMembership.player))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_competition(self, competition_id: int) -> List[Team]:
        result = await self.session.execute(
            select(Team).where(Team.competition_id == competition_id).order_by(Team.id.asc())
        )
        return list(result.scalars().all())

    async def ids_for_competition(self, competition_id: int) -> List[int]:
        result = await self.session.execute(
            select(Team.id).where(Team.competition_id == competition_id)
        )
        return list(result.scalars().all())

    async def member_ids(self, team_id: int) -> List[int]:
        """Member ids in join order"""
        result = await self.session.execute(
            select(TeamMembership.player_id)
            .where(TeamMembership.team_id == team_id)
            .order_by(TeamMembership.id.asc())
        )
        return list(result.scalars().all())

    async def is_member(self, team_id: int, player_id: int) -> bool:
        result = await self.session.execute(
            select(TeamMembership.id).where(
                and_(TeamMembership.team_id == team_id, TeamMembership.player_id == player_id)
            )
        )
        return result.scalar_one_or_none() is not None

    async def get_team_of_player(self, competition_id: int, player_id: int) -> Optional[Team]:
        """The team a player belongs to within a competition, if any"""
        result = await self.session.execute(
            select(Team)
            .join(TeamMembership, TeamMembership.team_id == Team.id)
            .where(
                and_(Team.competition_id == competition_id, TeamMembership.player_id == player_id)
            )
        )
        return result.scalars().first()

    async def add_member(self, team_id: int, player_id: int) -> TeamMembership:
        return await self.add(TeamMembership(team_id=team_id, player_id=player_id))

    async def remove_member(self, team_id: int, player_id: int) -> int:
        result = await self.session.execute(
            delete(TeamMembership).where(
                and_(TeamMembership.team_id == team_id, TeamMembership.player_id == player_id)
            )
        )
        return result.rowcount

    async def set_captain(self, team_id: int, captain_id: Optional[int]) -> int:
        result = await self.session.execute(
            update(Team).where(Team.id == team_id).values(captain_id=captain_id)
        )
        return result.rowcount

    async def clear_captaincy(self, player_id: int, team_ids: List[int]) -> int:
        """Null captain_id on the given teams where player_id is captain"""
        if not team_ids:
            return 0
        result = await self.session.execute(
            update(Team)
            .where(and_(Team.id.in_(team_ids), Team.captain_id == player_id))
            .values(captain_id=None)
        )
        return result.rowcount


class RegistrationRepository(BaseRepository):

    async def get(self, user_id: int, competition_id: int) -> Optional[UserCompetition]:
        result = await self.session.execute(
            select(UserCompetition).where(
                and_(UserCompetition.user_id == user_id, UserCompetition.competition_id == competition_id)
            )
        )
        return result.scalar_one_or_none()

    async def list_for_competition(self, competition_id: int) -> List[UserCompetition]:
        result = await self.session.execute(
            select(UserCompetition)
            .where(UserCompetition.competition_id == competition_id)
            .order_by(UserCompetition.id.asc())
        )
        return list(result.scalars().all())

    async def delete(self, user_id: int, competition_id: int) -> int:
        result = await self.session.execute(
            delete(UserCompetition).where(
                and_(UserCompetition.user_id == user_id, UserCompetition.competition_id == competition_id)
            )
        )
        return result.rowcount


class SelfScoreRepository(BaseRepository):

    async def get_for_phase(self, user_id: int, phase_id: int) -> Optional[PlayerSelfScore]:
        result = await self.session.execute(
            select(PlayerSelfScore).where(
                and_(PlayerSelfScore.user_id == user_id, PlayerSelfScore.phase_id == phase_id)
            )
        )
        return result.scalar_one_or_none()

    async def list_for_player(self, user_id: int, competition_id: int) -> List[PlayerSelfScore]:
        result = await self.session.execute(
            select(PlayerSelfScore)
            .where(
                and_(PlayerSelfScore.user_id == user_id, PlayerSelfScore.competition_id == competition_id)
            )
            .order_by(PlayerSelfScore.id.asc())
        )
        return list(result.scalars().all())

    async def delete_for_player(self, user_id: int, competition_id: int) -> int:
        result = await self.session.execute(
            delete(PlayerSelfScore).where(
                and_(PlayerSelfScore.user_id == user_id, PlayerSelfScore.competition_id == competition_id)
            )
        )
        return result.rowcount


class PeerRatingRepository(BaseRepository):

    async def get(self, rater_id: int, rated_id: int, phase_id: int) -> Optional[PlayerRating]:
        result = await self.session.execute(
            select(PlayerRating).where(
                and_(
                    PlayerRating.rater_id == rater_id,
                    PlayerRating.rated_id == rated_id,
                    PlayerRating.phase_id == phase_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def list_received(self, rated_id: int, competition_id: int) -> List[PlayerRating]:
        result = await self.session.execute(
            select(PlayerRating)
            .where(
                and_(PlayerRating.rated_id == rated_id, PlayerRating.competition_id == competition_id)
            )
            .order_by(PlayerRating.id.asc())
        )
        return list(result.scalars().all())

    async def rated_ids_for_phase(self, rater_id: int, phase_id: int) -> Set[int]:
        result = await self.session.execute(
            select(PlayerRating.rated_id).where(
                and_(PlayerRating.rater_id == rater_id, PlayerRating.phase_id == phase_id)
            )
        )
        return set(result.scalars().all())

    async def delete_given(self, rater_id: int, competition_id: int) -> int:
        result = await self.session.execute(
            delete(PlayerRating).where(
                and_(PlayerRating.rater_id == rater_id, PlayerRating.competition_id == competition_id)
            )
        )
        return result.rowcount

    async def delete_received(self, rated_id: int, competition_id: int) -> int:
        result = await self.session.execute(
            delete(PlayerRating).where(
                and_(PlayerRating.rated_id == rated_id, PlayerRating.competition_id == competition_id)
            )
        )
        return result.rowcount


class CaptainVoteRepository(BaseRepository):

    async def get(self, voter_id: int, phase_id: int, team_id: int) -> Optional[CaptainVote]:
        result = await self.session.execute(
            select(CaptainVote).where(
                and_(
                    CaptainVote.voter_id == voter_id,
                    CaptainVote.phase_id == phase_id,
                    CaptainVote.team_id == team_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_for_voter_in_phase(self, voter_id: int, phase_id: int) -> Optional[CaptainVote]:
        result = await self.session.execute(
            select(CaptainVote)
            .where(and_(CaptainVote.voter_id == voter_id, CaptainVote.phase_id == phase_id))
            .order_by(CaptainVote.id.asc())
        )
        return result.scalars().first()

    async def list_for_team(self, team_id: int, phase_id: Optional[int] = None) -> List[CaptainVote]:
        stmt = select(CaptainVote).where(CaptainVote.team_id == team_id)
        if phase_id is not None:
            stmt = stmt.where(CaptainVote.phase_id == phase_id)
        result = await self.session.execute(stmt.order_by(CaptainVote.id.asc()))
        return list(result.scalars().all())

    async def team_ids_with_votes(self, phase_id: int) -> List[int]:
        result = await self.session.execute(
            select(CaptainVote.team_id)
            .where(CaptainVote.phase_id == phase_id)
            .group_by(CaptainVote.team_id)
            .order_by(CaptainVote.team_id.asc())
        )
        return list(result.scalars().all())

    async def delete_for_team(self, team_id: int) -> int:
        result = await self.session.execute(
            delete(CaptainVote).where(CaptainVote.team_id == team_id)
        )
        return result.rowcount

    async def delete_by_voter(self, voter_id: int, team_ids: List[int]) -> int:
        if not team_ids:
            return 0
        result = await self.session.execute(
            delete(CaptainVote).where(
                and_(CaptainVote.voter_id == voter_id, CaptainVote.team_id.in_(team_ids))
            )
        )
        return result.rowcount

    async def delete_for_captain(self, captain_id: int, team_ids: List[int]) -> int:
        if not team_ids:
            return 0
        result = await self.session.execute(
            delete(CaptainVote).where(
                and_(CaptainVote.captain_id == captain_id, CaptainVote.team_id.in_(team_ids))
            )
        )
        return result.rowcount
