"""
Proficiency Service

Aggregates a player's self-assessments and received peer ratings within a
competition into a single 0-100 proficiency score. Aggregation always reads
the raw score records; the score cached on the registration is only written
by the explicit commit operations and only read as a fallback.
"""

import json
import logging
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import Config
from arena.data_models.scoring import ProficiencyBreakdown
from arena.database.repositories import (
    RegistrationRepository, SelfScoreRepository, PeerRatingRepository
)
from arena.services.base import BaseService
from arena.utils.exceptions import NotFoundError, StoreFailureError
from arena.utils.proficiency import ProficiencyCalculator

logger = logging.getLogger(__name__)


class ProficiencyService(BaseService):
    """Service for computing and caching proficiency scores."""

    async def _load_score_maps(self, session: AsyncSession, user_id: int, competition_id: int):
        self_rows = await SelfScoreRepository(session).list_for_player(user_id, competition_id)
        peer_rows = await PeerRatingRepository(session).list_received(user_id, competition_id)
        return [row.score_map for row in self_rows], [row.score_map for row in peer_rows]

    async def _resolve_fallback(self, session: AsyncSession, user_id: int, competition_id: int,
                                fallback: Optional[int]) -> int:
        if fallback is not None:
            return fallback
        registration = await RegistrationRepository(session).get(user_id, competition_id)
        if registration is not None and registration.proficiency_score is not None:
            return registration.proficiency_score
        return Config.DEFAULT_PROFICIENCY_FALLBACK

    async def compute_proficiency(self, user_id: int, competition_id: int,
                                  fallback: Optional[int] = None) -> int:
        """
        Compute a player's proficiency score for a competition.

        Args:
            user_id: Player being scored
            competition_id: Competition the ratings belong to
            fallback: Score to return when the player has no valid ratings.
                Defaults to the cached registration score, else 0.

        Returns:
            Proficiency score in [0, 100]
        """
        async def _compute():
            async with self.get_session() as session:
                self_maps, peer_maps = await self._load_score_maps(session, user_id, competition_id)
                default = await self._resolve_fallback(session, user_id, competition_id, fallback)
                return ProficiencyCalculator.calculate(self_maps, peer_maps, fallback=default)

        score = await self.execute_with_retry(_compute, "compute_proficiency")
        logger.debug(f"Proficiency for player {user_id} in competition {competition_id}: {score}")
        return score

    async def get_breakdown(self, user_id: int, competition_id: int,
                            fallback: Optional[int] = None) -> ProficiencyBreakdown:
        """Proficiency score together with the averages and categories behind it"""
        async def _breakdown():
            async with self.get_session() as session:
                self_maps, peer_maps = await self._load_score_maps(session, user_id, competition_id)
                default = await self._resolve_fallback(session, user_id, competition_id, fallback)
                return self._build_breakdown(user_id, competition_id, self_maps, peer_maps, default)

        return await self.execute_with_retry(_breakdown, "get_breakdown")

    @staticmethod
    def _build_breakdown(user_id: int, competition_id: int, self_maps: List[dict],
                         peer_maps: List[dict], fallback: int) -> ProficiencyBreakdown:
        self_avg = ProficiencyCalculator.mean_of_means(self_maps)
        peer_avg = ProficiencyCalculator.mean_of_means(peer_maps)
        combined = ProficiencyCalculator.combine(self_avg, peer_avg)
        return ProficiencyBreakdown(
            user_id=user_id,
            competition_id=competition_id,
            self_average=self_avg,
            peer_average=peer_avg,
            self_count=ProficiencyCalculator.count_valid(self_maps),
            peer_count=ProficiencyCalculator.count_valid(peer_maps),
            combined=combined,
            score=fallback if combined is None else ProficiencyCalculator.to_score(combined),
            categories=ProficiencyCalculator.category_breakdown(self_maps, peer_maps)
        )

    async def _commit_one(self, session: AsyncSession, registration) -> int:
        self_maps, peer_maps = await self._load_score_maps(
            session, registration.user_id, registration.competition_id
        )
        score = ProficiencyCalculator.calculate(
            self_maps, peer_maps, fallback=registration.proficiency_score or 0
        )
        registration.proficiency_score = score
        registration.proficiencies = json.dumps(
            ProficiencyCalculator.category_breakdown(self_maps, peer_maps)
        )
        return score

    async def commit_proficiency(self, user_id: int, competition_id: int) -> int:
        """
        Recompute a player's proficiency and store it on their registration.

        Raises:
            NotFoundError: If the player is not registered for the competition
            StoreFailureError: If the write fails (rolled back)
        """
        try:
            async with self.get_session() as session:
                registration = await RegistrationRepository(session).get(user_id, competition_id)
                if registration is None:
                    raise NotFoundError("Registration", f"{user_id}/{competition_id}")
                score = await self._commit_one(session, registration)
        except SQLAlchemyError as e:
            logger.error(f"Failed to commit proficiency for player {user_id}: {e}")
            raise StoreFailureError("commit_proficiency", str(e)) from e

        logger.info(f"Committed proficiency {score} for player {user_id} in competition {competition_id}")
        return score

    async def commit_competition_scores(self, competition_id: int) -> int:
        """
        Recompute and store proficiency for every registration in a competition.

        All registrations are updated in one transaction.

        Returns:
            Number of registrations updated
        """
        try:
            async with self.get_session() as session:
                registrations = await RegistrationRepository(session).list_for_competition(competition_id)
                for registration in registrations:
                    await self._commit_one(session, registration)
        except SQLAlchemyError as e:
            logger.error(f"Failed to commit scores for competition {competition_id}: {e}")
            raise StoreFailureError("commit_competition_scores", str(e)) from e

        logger.info(f"Committed proficiency for {len(registrations)} players in competition {competition_id}")
        return len(registrations)
