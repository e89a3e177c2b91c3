"""
Team Operations Module

Teams, their membership (a player is on at most one team per competition)
and administrative captain assignment.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import Player, PlayerRole, Team
from arena.database.repositories import CompetitionRepository, PlayerRepository, TeamRepository
from arena.operations.base import BaseOperations
from arena.utils.exceptions import ConflictError, NotFoundError


class TeamOperations(BaseOperations):
    """Business logic operations for teams and team membership."""

    async def _get_team(self, session: AsyncSession, team_id: int) -> Team:
        team = await TeamRepository(session).get(team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    async def _get_player(self, session: AsyncSession, player_id: int) -> Player:
        player = await PlayerRepository(session).get(player_id)
        if player is None:
            raise NotFoundError("Player", player_id)
        return player

    async def _ensure_free_agent(self, session: AsyncSession, competition_id: int, player_id: int):
        current = await TeamRepository(session).get_team_of_player(competition_id, player_id)
        if current is not None:
            raise ConflictError(
                f"Player {player_id} is already on team {current.id} in competition {competition_id}",
                f"❌ This player is already on team {current.name}."
            )

    async def create_team(
        self,
        competition_id: int,
        name: str,
        captain_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Team:
        """
        Create a team, optionally with a captain who becomes its first member.

        Raises:
            NotFoundError: Competition or captain does not exist
            ConflictError: Name taken in this competition, or captain already on a team
        """
        async with self._get_session_context(session, "create_team") as s:
            if await CompetitionRepository(s).get(competition_id) is None:
                raise NotFoundError("Competition", competition_id)

            teams = TeamRepository(s)
            if any(existing.name == name for existing in await teams.list_for_competition(competition_id)):
                raise ConflictError(
                    f"Team name '{name}' already used in competition {competition_id}",
                    f"❌ A team named {name} already exists."
                )

            captain = None
            if captain_id is not None:
                captain = await self._get_player(s, captain_id)
                await self._ensure_free_agent(s, competition_id, captain_id)

            team = await teams.add(Team(competition_id=competition_id, name=name, captain_id=captain_id))
            if captain is not None:
                await teams.add_member(team.id, captain_id)
                if captain.role == PlayerRole.PLAYER:
                    captain.role = PlayerRole.CAPTAIN

            self.logger.info(f"Created team {team.id} '{name}' in competition {competition_id}")
            return team

    async def get_team(self, team_id: int, session: Optional[AsyncSession] = None) -> Team:
        async with self._get_session_context(session, "get_team") as s:
            return await self._get_team(s, team_id)

    async def list_teams(self, competition_id: int, session: Optional[AsyncSession] = None) -> List[Team]:
        async with self._get_session_context(session, "list_teams") as s:
            return await TeamRepository(s).list_for_competition(competition_id)

    async def add_team_member(
        self,
        team_id: int,
        player_id: int,
        session: Optional[AsyncSession] = None
    ) -> None:
        async with self._get_session_context(session, "add_team_member") as s:
            team = await self._get_team(s, team_id)
            await self._get_player(s, player_id)
            await self._ensure_free_agent(s, team.competition_id, player_id)
            await TeamRepository(s).add_member(team_id, player_id)
            self.logger.info(f"Added player {player_id} to team {team_id}")

    async def remove_team_member(
        self,
        team_id: int,
        player_id: int,
        session: Optional[AsyncSession] = None
    ) -> None:
        """Remove a member; a departing captain leaves the team without one"""
        async with self._get_session_context(session, "remove_team_member") as s:
            team = await self._get_team(s, team_id)
            teams = TeamRepository(s)
            if await teams.remove_member(team_id, player_id) == 0:
                raise NotFoundError("Team member", f"{player_id} in team {team_id}")
            if team.captain_id == player_id:
                team.captain_id = None
                await s.flush()
            self.logger.info(f"Removed player {player_id} from team {team_id}")

    async def get_team_members(self, team_id: int, session: Optional[AsyncSession] = None) -> List[Player]:
        """Members in join order"""
        async with self._get_session_context(session, "get_team_members") as s:
            team = await TeamRepository(s).get_with_members(team_id)
            if team is None:
                raise NotFoundError("Team", team_id)
            return [membership.player for membership in team.memberships]

    async def assign_captain(
        self,
        team_id: int,
        captain_id: int,
        session: Optional[AsyncSession] = None
    ) -> Team:
        """
        Admin override of a team's captain.

        Raises:
            NotFoundError: Team or player does not exist
            ConflictError: The player is not a member of the team
        """
        async with self._get_session_context(session, "assign_captain") as s:
            team = await self._get_team(s, team_id)
            captain = await self._get_player(s, captain_id)
            if not await TeamRepository(s).is_member(team_id, captain_id):
                raise ConflictError(
                    f"Player {captain_id} is not a member of team {team_id}",
                    "❌ The captain must be a member of the team."
                )

            team.captain_id = captain_id
            if captain.role == PlayerRole.PLAYER:
                captain.role = PlayerRole.CAPTAIN
            await s.flush()

            self.logger.info(f"Assigned player {captain_id} as captain of team {team_id}")
            return team
