"""
Player Operations Module

Player lifecycle: creation with unique usernames and idempotent lookup.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import Player, PlayerRole
from arena.database.repositories import PlayerRepository
from arena.operations.base import BaseOperations
from arena.utils.exceptions import ConflictError, NotFoundError


class PlayerOperations(BaseOperations):
    """Business logic operations for Player management."""

    async def create_player(
        self,
        username: str,
        display_name: Optional[str] = None,
        role: PlayerRole = PlayerRole.PLAYER,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Create a player.

        Raises:
            ConflictError: The username is already taken
        """
        async with self._get_session_context(session, "create_player") as s:
            players = PlayerRepository(s)
            if await players.get_by_username(username) is not None:
                raise ConflictError(
                    f"Username '{username}' already exists",
                    f"❌ The username {username} is already taken."
                )

            player = await players.add(Player(
                username=username,
                display_name=display_name or username,
                role=PlayerRole(role)
            ))
            self.logger.info(f"Created player {player.id} '{username}'")
            return player

    async def get_player(self, player_id: int, session: Optional[AsyncSession] = None) -> Player:
        async with self._get_session_context(session, "get_player") as s:
            player = await PlayerRepository(s).get(player_id)
            if player is None:
                raise NotFoundError("Player", player_id)
            return player

    async def get_or_create_player(
        self,
        username: str,
        display_name: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """Get existing Player by username or create a new one (idempotent)"""
        async with self._get_session_context(session, "get_or_create_player") as s:
            existing = await PlayerRepository(s).get_by_username(username)
            if existing:
                self.logger.debug(f"Found existing Player {existing.id} for '{username}'")
                return existing
            return await self.create_player(username, display_name, session=s)
