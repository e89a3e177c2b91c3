"""Tests for transactional player removal."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from arena.data_models.scoring import RemovalSummary
from arena.database.models import CaptainVote, PhaseType, PlayerRating, PlayerSelfScore, UserCompetition
from arena.database.repositories import CaptainVoteRepository, SelfScoreRepository
from arena.utils.exceptions import NotFoundError, StoreFailureError

from conftest import seed_competition


async def build_footprint(engine):
    """
    Player A with 2 self-scores, 2 given ratings, 1 received rating,
    1 cast vote, 1 received vote and the team captaincy; plus records of
    other players that removal must leave alone.
    """
    seed = await seed_competition(engine)
    comp, team = seed.competition_id, seed.team_id
    scoring = seed.phase_ids[PhaseType.PLAYER_SCORING]
    voting = seed.phase_ids[PhaseType.CAPTAIN_VOTING]
    now = engine.clock.now()
    extra = await engine.phases.create_phase(
        comp, "Scoring Round 2", PhaseType.PLAYER_SCORING, 5, now - timedelta(hours=1), now + timedelta(hours=1)
    )
    a, b, c, d = seed.player_ids

    await engine.upsert_self_score(a, comp, scoring, {"Speed": 4})
    await engine.upsert_self_score(a, comp, extra.id, {"Speed": 5})
    await engine.upsert_peer_rating(a, b, comp, scoring, {"Speed": 3})
    await engine.upsert_peer_rating(a, c, comp, scoring, {"Speed": 2})
    await engine.upsert_peer_rating(b, a, comp, scoring, {"Speed": 4})
    await engine.cast_captain_vote(a, b, team, voting)
    await engine.cast_captain_vote(c, a, team, voting)
    await engine.teams.assign_captain(team, a)

    await engine.upsert_self_score(b, comp, scoring, {"Speed": 3})
    await engine.upsert_peer_rating(b, c, comp, scoring, {"Speed": 5})
    await engine.cast_captain_vote(d, b, team, voting)
    return seed


async def snapshot(engine, seed):
    async def count(model):
        async with engine.db.get_session() as session:
            return await session.scalar(select(func.count()).select_from(model))

    team = await engine.teams.get_team(seed.team_id)
    return {
        "registrations": await count(UserCompetition),
        "self_scores": await count(PlayerSelfScore),
        "ratings": await count(PlayerRating),
        "votes": await count(CaptainVote),
        "captain_id": team.captain_id,
    }


class TestRemovePlayer:

    def test_removes_whole_footprint(self, run):
        async def scenario(engine):
            seed = await build_footprint(engine)
            a = seed.player_ids[0]
            summary = await engine.remove_player(a, seed.competition_id)
            registration = await engine.competitions.get_registration(a, seed.competition_id)
            return summary, registration, await snapshot(engine, seed)

        summary, registration, after = run(scenario)
        assert registration is None
        assert summary.registrations_deleted == 1
        assert summary.self_scores_deleted == 2
        assert summary.ratings_given_deleted == 2
        assert summary.ratings_received_deleted == 1
        assert summary.votes_cast_deleted == 1
        assert summary.votes_received_deleted == 1
        assert summary.captaincies_cleared == 1
        assert summary.total_rows == 9
        assert after == {
            "registrations": 3,
            "self_scores": 1,
            "ratings": 1,
            "votes": 1,
            "captain_id": None,
        }

    def test_not_registered(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            stranger = await engine.players.create_player("stranger")
            with pytest.raises(NotFoundError):
                await engine.remove_player(stranger.id, seed.competition_id)

        run(scenario)

    def test_second_removal_fails(self, run):
        async def scenario(engine):
            seed = await build_footprint(engine)
            a = seed.player_ids[0]
            await engine.remove_player(a, seed.competition_id)
            with pytest.raises(NotFoundError):
                await engine.remove_player(a, seed.competition_id)

        run(scenario)

    def test_failure_rolls_everything_back(self, run, monkeypatch):
        async def failing_delete(self, captain_id, team_ids):
            raise OperationalError("DELETE FROM captain_votes", {}, Exception("disk I/O error"))

        async def scenario(engine):
            seed = await build_footprint(engine)
            before = await snapshot(engine, seed)
            monkeypatch.setattr(CaptainVoteRepository, "delete_for_captain", failing_delete)

            with pytest.raises(StoreFailureError):
                await engine.remove_player(seed.player_ids[0], seed.competition_id)

            monkeypatch.undo()
            after = await snapshot(engine, seed)
            registration = await engine.competitions.get_registration(seed.player_ids[0], seed.competition_id)
            return before, after, registration, seed.player_ids[0]

        before, after, registration, a = run(scenario)
        assert after == before
        assert before["captain_id"] == a
        assert before["self_scores"] == 3
        assert before["ratings"] == 4
        assert before["votes"] == 3
        assert registration is not None

    def test_concurrent_removals_serialize(self, run):
        async def scenario(engine):
            seed = await build_footprint(engine)
            a = seed.player_ids[0]
            results = await asyncio.gather(
                engine.remove_player(a, seed.competition_id),
                engine.remove_player(a, seed.competition_id),
                return_exceptions=True
            )
            return results, await snapshot(engine, seed)

        results, after = run(scenario)
        summaries = [r for r in results if isinstance(r, RemovalSummary)]
        failures = [r for r in results if isinstance(r, NotFoundError)]
        assert len(summaries) == 1
        assert len(failures) == 1
        assert summaries[0].total_rows == 9
        assert after["registrations"] == 3
        assert after["captain_id"] is None

    def test_cancellation_rolls_everything_back(self, run, monkeypatch):
        original_delete = SelfScoreRepository.delete_for_player

        async def scenario(engine):
            reached_second_step = asyncio.Event()

            async def stalled_delete(repo, player_id, competition_id):
                deleted = await original_delete(repo, player_id, competition_id)
                reached_second_step.set()
                await asyncio.Event().wait()
                return deleted

            seed = await build_footprint(engine)
            before = await snapshot(engine, seed)
            monkeypatch.setattr(SelfScoreRepository, "delete_for_player", stalled_delete)

            task = asyncio.create_task(engine.remove_player(seed.player_ids[0], seed.competition_id))
            await reached_second_step.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            monkeypatch.undo()
            after = await snapshot(engine, seed)
            registration = await engine.competitions.get_registration(seed.player_ids[0], seed.competition_id)
            return before, after, registration

        before, after, registration = run(scenario)
        assert after == before
        assert registration is not None
