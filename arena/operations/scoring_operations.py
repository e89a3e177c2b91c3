"""
Scoring Operations Module

Write side of player scoring: self-assessments and peer ratings submitted
during a player_scoring phase. Both are idempotent by key; a resubmission
overwrites the stored score map and advances updated_at.

Validation order for every submission:
1. score map shape (non-empty, category -> integer 1-5)
2. phase exists, is a player_scoring phase, and is in progress now
3. phase belongs to the named competition
4. rated player exists (peer ratings)
5. rater is not the rated player (peer ratings)
"""

from typing import Awaitable, Callable, Dict, Mapping, Optional, Set
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.constants import ScoringConstants
from arena.database.models import CompetitionPhase, PhaseType, PlayerRating, PlayerSelfScore
from arena.database.repositories import PeerRatingRepository, PlayerRepository, SelfScoreRepository
from arena.operations.base import BaseOperations
from arena.operations.phase_operations import PhaseOperations
from arena.utils.exceptions import (
    ConflictError, NotFoundError, ScoreValidationError, SelfRatingForbiddenError
)


def validate_score_map(scores) -> Dict[str, int]:
    """
    Check a submitted category -> rating map and return a plain dict copy

    Raises:
        ScoreValidationError: Not a non-empty mapping of names to integers 1-5
    """
    if not isinstance(scores, Mapping) or not scores:
        raise ScoreValidationError(scores, "Scores must be a non-empty set of category ratings.")

    for category, value in scores.items():
        if not isinstance(category, str) or not category.strip():
            raise ScoreValidationError(category, "Category names must be non-empty text.")
        # bool is an int subclass; True must not pass as a 1
        if isinstance(value, bool) or not isinstance(value, int):
            raise ScoreValidationError(value, f"Rating for {category} must be a whole number.")
        if not ScoringConstants.MIN_CATEGORY_SCORE <= value <= ScoringConstants.MAX_CATEGORY_SCORE:
            raise ScoreValidationError(
                value,
                f"Rating for {category} must be between {ScoringConstants.MIN_CATEGORY_SCORE} "
                f"and {ScoringConstants.MAX_CATEGORY_SCORE}."
            )
    return dict(scores)


class ScoringOperations(BaseOperations):
    """Business logic operations for self-scores and peer ratings."""

    def __init__(self, database, clock=None):
        super().__init__(database, clock)
        self.phases = PhaseOperations(database, self.clock)

    async def _require_scoring_phase(self, session: AsyncSession, phase_id: int,
                                     competition_id: int) -> CompetitionPhase:
        phase = await self.phases.require_active_phase(session, phase_id, PhaseType.PLAYER_SCORING)
        if phase.competition_id != competition_id:
            raise ConflictError(
                f"Phase {phase_id} belongs to competition {phase.competition_id}, not {competition_id}",
                "❌ This phase belongs to a different competition."
            )
        return phase

    async def _upsert(self, session: AsyncSession, lookup: Callable[[], Awaitable],
                      build: Callable, scores: Dict[str, int]):
        """
        Update the row found by `lookup`, or insert the row from `build`

        The insert runs in a SAVEPOINT so that losing a race against a
        concurrent insert of the same key only undoes that insert; the
        winner's row is then updated instead.
        """
        now = self.clock.now()
        existing = await lookup()
        if existing is None:
            row = build()
            row.score_map = scores
            row.created_at = now
            row.updated_at = now
            try:
                async with session.begin_nested():
                    session.add(row)
                return row
            except IntegrityError:
                existing = await lookup()
                if existing is None:
                    raise

        existing.score_map = scores
        existing.updated_at = now
        await session.flush()
        return existing

    async def upsert_self_score(
        self,
        user_id: int,
        competition_id: int,
        phase_id: int,
        scores: Mapping[str, int],
        session: Optional[AsyncSession] = None
    ) -> PlayerSelfScore:
        """
        Store a player's self-assessment for a scoring phase.

        Raises:
            ScoreValidationError: Malformed score map
            NotFoundError: Phase or player does not exist
            PhaseInactiveError: Phase is not an in-progress player_scoring phase
            ConflictError: Phase belongs to another competition
        """
        scores = validate_score_map(scores)

        async with self._get_session_context(session, "upsert_self_score") as s:
            await self._require_scoring_phase(s, phase_id, competition_id)
            if await PlayerRepository(s).get(user_id) is None:
                raise NotFoundError("Player", user_id)

            repo = SelfScoreRepository(s)
            row = await self._upsert(
                s,
                lambda: repo.get_for_phase(user_id, phase_id),
                lambda: PlayerSelfScore(user_id=user_id, competition_id=competition_id, phase_id=phase_id),
                scores
            )
            self.logger.info(f"Stored self-score of player {user_id} for phase {phase_id}")
            return row

    async def _store_peer_rating(self, session: AsyncSession, rater_id: int, rated_id: int,
                                 competition_id: int, phase_id: int,
                                 scores: Dict[str, int]) -> PlayerRating:
        if await PlayerRepository(session).get(rated_id) is None:
            raise NotFoundError("Player", rated_id)
        if rater_id == rated_id:
            raise SelfRatingForbiddenError(rater_id)

        repo = PeerRatingRepository(session)
        return await self._upsert(
            session,
            lambda: repo.get(rater_id, rated_id, phase_id),
            lambda: PlayerRating(
                rater_id=rater_id, rated_id=rated_id, competition_id=competition_id, phase_id=phase_id
            ),
            scores
        )

    async def upsert_peer_rating(
        self,
        rater_id: int,
        rated_id: int,
        competition_id: int,
        phase_id: int,
        scores: Mapping[str, int],
        session: Optional[AsyncSession] = None
    ) -> PlayerRating:
        """
        Store one player's rating of another for a scoring phase.

        Raises:
            ScoreValidationError, NotFoundError, PhaseInactiveError, ConflictError:
                as for upsert_self_score
            SelfRatingForbiddenError: rater_id == rated_id
        """
        scores = validate_score_map(scores)

        async with self._get_session_context(session, "upsert_peer_rating") as s:
            await self._require_scoring_phase(s, phase_id, competition_id)
            row = await self._store_peer_rating(s, rater_id, rated_id, competition_id, phase_id, scores)
            self.logger.info(f"Stored rating of player {rated_id} by player {rater_id} for phase {phase_id}")
            return row

    async def upsert_peer_ratings(
        self,
        rater_id: int,
        competition_id: int,
        phase_id: int,
        ratings: Mapping[int, Mapping[str, int]],
        session: Optional[AsyncSession] = None
    ) -> int:
        """
        Store several peer ratings from one rater in one transaction.

        Either every rating is stored or none is.

        Args:
            ratings: rated player id -> score map

        Returns:
            Number of ratings stored
        """
        validated = {rated_id: validate_score_map(scores) for rated_id, scores in ratings.items()}

        async with self._get_session_context(session, "upsert_peer_ratings") as s:
            await self._require_scoring_phase(s, phase_id, competition_id)
            for rated_id, scores in validated.items():
                await self._store_peer_rating(s, rater_id, rated_id, competition_id, phase_id, scores)

            self.logger.info(f"Stored {len(validated)} ratings by player {rater_id} for phase {phase_id}")
            return len(validated)

    async def get_self_score(
        self,
        user_id: int,
        phase_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[PlayerSelfScore]:
        async with self._get_session_context(session, "get_self_score") as s:
            return await SelfScoreRepository(s).get_for_phase(user_id, phase_id)

    async def get_peer_rating(
        self,
        rater_id: int,
        rated_id: int,
        phase_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[PlayerRating]:
        async with self._get_session_context(session, "get_peer_rating") as s:
            return await PeerRatingRepository(s).get(rater_id, rated_id, phase_id)

    async def get_rated_player_ids(
        self,
        rater_id: int,
        phase_id: int,
        session: Optional[AsyncSession] = None
    ) -> Set[int]:
        """Players this rater has already rated in the phase"""
        async with self._get_session_context(session, "get_rated_player_ids") as s:
            return await PeerRatingRepository(s).rated_ids_for_phase(rater_id, phase_id)
