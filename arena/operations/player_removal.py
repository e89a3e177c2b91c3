"""
Player Removal Module

Removes everything a player left behind in one competition as a single
transaction script:

1. the registration (missing registration aborts with NotFoundError)
2. their self-scores
3. peer ratings they gave
4. peer ratings they received
5. captain votes they cast on this competition's teams
6. captain votes cast for them on this competition's teams
7. their captaincy of any of this competition's teams

The team ids of the competition are resolved once, inside the transaction,
and reused by steps 5-7. Any failure rolls every step back.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from arena.data_models.scoring import RemovalSummary
from arena.database.repositories import (
    CaptainVoteRepository, PeerRatingRepository, RegistrationRepository,
    SelfScoreRepository, TeamRepository
)
from arena.operations.base import BaseOperations
from arena.utils.exceptions import NotFoundError


class PlayerRemovalOperations(BaseOperations):
    """Coordinated, all-or-nothing removal of a player from a competition."""

    async def remove_player(
        self,
        player_id: int,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> RemovalSummary:
        """
        Remove a player's registration and every record depending on it.

        The registration delete goes first and doubles as the existence
        check, so of two concurrent removals only the first finds a row.

        Raises:
            NotFoundError: The player is not registered for the competition
            StoreFailureError: A store error occurred; nothing was changed
        """
        async with self._get_session_context(session, "remove_player") as s:
            registrations_deleted = await RegistrationRepository(s).delete(player_id, competition_id)
            if registrations_deleted == 0:
                raise NotFoundError("Registration", f"{player_id}/{competition_id}")

            self_scores_deleted = await SelfScoreRepository(s).delete_for_player(player_id, competition_id)

            ratings = PeerRatingRepository(s)
            ratings_given_deleted = await ratings.delete_given(player_id, competition_id)
            ratings_received_deleted = await ratings.delete_received(player_id, competition_id)

            teams = TeamRepository(s)
            team_ids = await teams.ids_for_competition(competition_id)

            votes = CaptainVoteRepository(s)
            votes_cast_deleted = await votes.delete_by_voter(player_id, team_ids)
            votes_received_deleted = await votes.delete_for_captain(player_id, team_ids)

            captaincies_cleared = await teams.clear_captaincy(player_id, team_ids)

            summary = RemovalSummary(
                player_id=player_id,
                competition_id=competition_id,
                registrations_deleted=registrations_deleted,
                self_scores_deleted=self_scores_deleted,
                ratings_given_deleted=ratings_given_deleted,
                ratings_received_deleted=ratings_received_deleted,
                votes_cast_deleted=votes_cast_deleted,
                votes_received_deleted=votes_received_deleted,
                captaincies_cleared=captaincies_cleared
            )

        self.logger.info(
            f"Removed player {player_id} from competition {competition_id}: "
            f"{summary.self_scores_deleted} self-scores, "
            f"{summary.ratings_given_deleted + summary.ratings_received_deleted} ratings, "
            f"{summary.votes_cast_deleted + summary.votes_received_deleted} votes, "
            f"{summary.captaincies_cleared} captaincies"
        )
        return summary
