"""Tests for self-score and peer-rating submission."""

import asyncio

import pytest
from sqlalchemy import func, select

from arena.database.models import PhaseType, PlayerRating, PlayerSelfScore
from arena.utils.exceptions import (
    ConflictError, NotFoundError, PhaseInactiveError, ScoreValidationError, SelfRatingForbiddenError
)

from conftest import seed_competition


async def count_rows(engine, model):
    async with engine.db.get_session() as session:
        return await session.scalar(select(func.count()).select_from(model))


class TestSelfScores:

    def test_upsert_is_idempotent_and_advances_updated_at(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1 = seed.player_ids[0]

            first = await engine.scoring.upsert_self_score(p1, comp, phase, {"Speed": 4, "Passing": 3})
            first_updated = first.updated_at
            clock.advance(minutes=5)
            second = await engine.scoring.upsert_self_score(p1, comp, phase, {"Speed": 4, "Passing": 3})
            stored = await engine.scoring.get_self_score(p1, phase)
            return first, first_updated, second, stored, await count_rows(engine, PlayerSelfScore)

        first, first_updated, second, stored, rows = run(scenario)
        assert rows == 1
        assert second.id == first.id
        assert stored.updated_at > first_updated
        assert stored.created_at == first.created_at
        assert stored.score_map == {"Speed": 4, "Passing": 3}

    def test_resubmission_overwrites_scores(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1 = seed.player_ids[0]
            await engine.upsert_self_score(p1, comp, phase, {"Speed": 2})
            await engine.upsert_self_score(p1, comp, phase, {"Speed": 5, "Defense": 1})
            return (await engine.scoring.get_self_score(p1, phase)).score_map

        assert run(scenario) == {"Speed": 5, "Defense": 1}

    def test_concurrent_submissions_for_one_key_all_succeed(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1 = seed.player_ids[0]
            submissions = [{"Speed": value} for value in range(1, 5)]
            await asyncio.gather(*(
                engine.upsert_self_score(p1, comp, phase, scores) for scores in submissions
            ))
            stored = await engine.scoring.get_self_score(p1, phase)
            return submissions, stored.score_map, await count_rows(engine, PlayerSelfScore)

        submissions, stored, rows = run(scenario)
        assert rows == 1
        assert stored in submissions

    @pytest.mark.parametrize("scores", [
        {},
        {"Speed": 0},
        {"Speed": 6},
        {"Speed": 3.5},
        {"Speed": True},
        {"Speed": "4"},
        {"": 3},
        [("Speed", 3)],
        None,
    ])
    def test_invalid_score_maps(self, run, scores):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(ScoreValidationError):
                await engine.upsert_self_score(
                    seed.player_ids[0], seed.competition_id,
                    seed.phase_ids[PhaseType.PLAYER_SCORING], scores
                )

        run(scenario)

    def test_phase_not_started(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            later = await engine.phases.create_phase(
                seed.competition_id, "Second Scoring", PhaseType.PLAYER_SCORING, 5,
                engine.clock.now().replace(year=2026), engine.clock.now().replace(year=2026)
            )
            with pytest.raises(PhaseInactiveError):
                await engine.upsert_self_score(seed.player_ids[0], seed.competition_id, later.id, {"A": 3})

        run(scenario)

    def test_phase_of_other_competition(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(ConflictError):
                await engine.upsert_self_score(
                    seed.player_ids[0], seed.competition_id + 1,
                    seed.phase_ids[PhaseType.PLAYER_SCORING], {"A": 3}
                )

        run(scenario)


class TestPeerRatings:

    def test_upsert_peer_rating_is_idempotent(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1, p2 = seed.player_ids[:2]
            await engine.upsert_peer_rating(p1, p2, comp, phase, {"A": 3})
            clock.advance(seconds=30)
            await engine.upsert_peer_rating(p1, p2, comp, phase, {"A": 4})
            rating = await engine.scoring.get_peer_rating(p1, p2, phase)
            return rating, await count_rows(engine, PlayerRating)

        rating, rows = run(scenario)
        assert rows == 1
        assert rating.score_map == {"A": 4}
        assert rating.updated_at > rating.created_at

    def test_concurrent_ratings_for_one_pair_all_succeed(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1, p2 = seed.player_ids[:2]
            await asyncio.gather(*(
                engine.upsert_peer_rating(p1, p2, comp, phase, {"A": value}) for value in (2, 3, 4)
            ))
            rating = await engine.scoring.get_peer_rating(p1, p2, phase)
            return rating.score_map, await count_rows(engine, PlayerRating)

        stored, rows = run(scenario)
        assert rows == 1
        assert stored["A"] in (2, 3, 4)

    def test_self_rating_forbidden(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            p1 = seed.player_ids[0]
            with pytest.raises(SelfRatingForbiddenError):
                await engine.upsert_peer_rating(
                    p1, p1, seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING], {"A": 5}
                )
            return await count_rows(engine, PlayerRating)

        assert run(scenario) == 0

    def test_unknown_rated_player(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(NotFoundError):
                await engine.upsert_peer_rating(
                    seed.player_ids[0], 999, seed.competition_id,
                    seed.phase_ids[PhaseType.PLAYER_SCORING], {"A": 5}
                )

        run(scenario)

    def test_rating_outside_scoring_phase(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            clock.advance(days=3)
            p1, p2 = seed.player_ids[:2]
            with pytest.raises(PhaseInactiveError):
                await engine.upsert_peer_rating(
                    p1, p2, seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING], {"A": 5}
                )

        run(scenario)

    def test_batch_ratings_and_rated_ids(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1, p2, p3, p4 = seed.player_ids
            stored = await engine.upsert_peer_ratings(p1, comp, phase, {p2: {"A": 3}, p3: {"A": 4}})
            rated = await engine.scoring.get_rated_player_ids(p1, phase)
            return stored, rated, (p2, p3)

        stored, rated, expected = run(scenario)
        assert stored == 2
        assert rated == set(expected)

    def test_batch_is_all_or_nothing(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            comp, phase = seed.competition_id, seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1, p2, p3 = seed.player_ids[:3]
            with pytest.raises(SelfRatingForbiddenError):
                await engine.upsert_peer_ratings(p1, comp, phase, {p2: {"A": 3}, p3: {"A": 4}, p1: {"A": 5}})
            return await count_rows(engine, PlayerRating)

        assert run(scenario) == 0
