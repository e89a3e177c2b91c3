"""
Competition Operations Module

Competitions and player registrations. The manual proficiency override lives
here because it writes the same cached registration field that the
proficiency service commits to.
"""

import math
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from arena.constants import ScoringConstants
from arena.database.models import Competition, CompetitionStatus, RegistrationStatus, UserCompetition
from arena.database.repositories import CompetitionRepository, PlayerRepository, RegistrationRepository
from arena.operations.base import BaseOperations
from arena.utils.clock import to_naive_utc
from arena.utils.exceptions import ConflictError, InvalidDateRangeError, NotFoundError, ScoreValidationError
from arena.utils.proficiency import round_half_up


class CompetitionOperations(BaseOperations):
    """Business logic operations for competitions and registrations."""

    async def create_competition(
        self,
        name: str,
        year: int,
        start_date: datetime,
        end_date: datetime,
        status: CompetitionStatus = CompetitionStatus.UPCOMING,
        session: Optional[AsyncSession] = None
    ) -> Competition:
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        if start_date > end_date:
            raise InvalidDateRangeError(start_date, end_date)

        async with self._get_session_context(session, "create_competition") as s:
            competition = await CompetitionRepository(s).add(Competition(
                name=name,
                year=year,
                status=CompetitionStatus(status),
                start_date=start_date,
                end_date=end_date
            ))
            self.logger.info(f"Created competition {competition.id} '{name}' ({year})")
            return competition

    async def get_competition(self, competition_id: int, session: Optional[AsyncSession] = None) -> Competition:
        async with self._get_session_context(session, "get_competition") as s:
            competition = await CompetitionRepository(s).get(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            return competition

    async def get_active_competition(self, session: Optional[AsyncSession] = None) -> Optional[Competition]:
        async with self._get_session_context(session, "get_active_competition") as s:
            return await CompetitionRepository(s).get_first_by_status(CompetitionStatus.ACTIVE)

    async def set_competition_status(
        self,
        competition_id: int,
        status: CompetitionStatus,
        session: Optional[AsyncSession] = None
    ) -> Competition:
        async with self._get_session_context(session, "set_competition_status") as s:
            competition = await CompetitionRepository(s).get(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            competition.status = CompetitionStatus(status)
            await s.flush()
            self.logger.info(f"Competition {competition_id} is now {competition.status.value}")
            return competition

    async def register_player(
        self,
        player_id: int,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> UserCompetition:
        """
        Register a player for a competition.

        Raises:
            NotFoundError: Player or competition does not exist
            ConflictError: Player is already registered
        """
        async with self._get_session_context(session, "register_player") as s:
            if await PlayerRepository(s).get(player_id) is None:
                raise NotFoundError("Player", player_id)
            if await CompetitionRepository(s).get(competition_id) is None:
                raise NotFoundError("Competition", competition_id)

            registrations = RegistrationRepository(s)
            if await registrations.get(player_id, competition_id) is not None:
                raise ConflictError(
                    f"Player {player_id} is already registered for competition {competition_id}",
                    "❌ You are already registered for this competition."
                )

            registration = await registrations.add(UserCompetition(
                user_id=player_id,
                competition_id=competition_id,
                status=RegistrationStatus.REGISTERED,
                proficiency_score=0,
                proficiencies='[]'
            ))
            self.logger.info(f"Registered player {player_id} for competition {competition_id}")
            return registration

    async def get_registration(
        self,
        player_id: int,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[UserCompetition]:
        async with self._get_session_context(session, "get_registration") as s:
            return await RegistrationRepository(s).get(player_id, competition_id)

    async def list_registrations(
        self,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> List[UserCompetition]:
        async with self._get_session_context(session, "list_registrations") as s:
            return await RegistrationRepository(s).list_for_competition(competition_id)

    async def _require_registration(self, session: AsyncSession, player_id: int,
                                    competition_id: int) -> UserCompetition:
        registration = await RegistrationRepository(session).get(player_id, competition_id)
        if registration is None:
            raise NotFoundError("Registration", f"{player_id}/{competition_id}")
        return registration

    async def approve_registration(
        self,
        player_id: int,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> UserCompetition:
        async with self._get_session_context(session, "approve_registration") as s:
            registration = await self._require_registration(s, player_id, competition_id)
            registration.status = RegistrationStatus.APPROVED
            await s.flush()
            self.logger.info(f"Approved registration of player {player_id} for competition {competition_id}")
            return registration

    async def set_proficiency_score(
        self,
        player_id: int,
        competition_id: int,
        score,
        session: Optional[AsyncSession] = None
    ) -> UserCompetition:
        """
        Manually override a player's cached proficiency score.

        Args:
            score: Number in [0, 100]; stored rounded half-up

        Raises:
            ScoreValidationError: score is not a number in range
            NotFoundError: Player is not registered for the competition
        """
        if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
            raise ScoreValidationError(score, "Proficiency score must be a number.")
        if not ScoringConstants.MIN_PROFICIENCY <= score <= ScoringConstants.MAX_PROFICIENCY:
            raise ScoreValidationError(score, "Proficiency score must be between 0 and 100.")

        async with self._get_session_context(session, "set_proficiency_score") as s:
            registration = await self._require_registration(s, player_id, competition_id)
            registration.proficiency_score = round_half_up(score)
            await s.flush()
            self.logger.info(
                f"Set proficiency of player {player_id} in competition {competition_id} "
                f"to {registration.proficiency_score}"
            )
            return registration
