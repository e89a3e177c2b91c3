"""Tests for phase status derivation and phase lifecycle operations."""

from datetime import datetime, timedelta

import pytest

from arena.database.models import PhaseStatus, PhaseType
from arena.utils.exceptions import (
    ConflictError, InvalidDateRangeError, NotFoundError, PhaseInactiveError
)
from arena.utils.phase_status import PhaseStatusResolver, resolve_phase_status

from conftest import START, seed_competition


class TestPhaseStatusResolver:

    start = datetime(2025, 1, 10)
    end = datetime(2025, 1, 20)

    def test_before_start_is_pending(self):
        assert resolve_phase_status(self.start, self.end, datetime(2025, 1, 9)) == PhaseStatus.PENDING

    def test_boundaries_are_in_progress(self):
        assert resolve_phase_status(self.start, self.end, self.start) == PhaseStatus.IN_PROGRESS
        assert resolve_phase_status(self.start, self.end, self.end) == PhaseStatus.IN_PROGRESS

    def test_after_end_is_completed(self):
        after = self.end + timedelta(microseconds=1)
        assert resolve_phase_status(self.start, self.end, after) == PhaseStatus.COMPLETED

    def test_single_instant_phase(self):
        instant = datetime(2025, 3, 1, 9, 0)
        assert resolve_phase_status(instant, instant, instant - timedelta(seconds=1)) == PhaseStatus.PENDING
        assert resolve_phase_status(instant, instant, instant) == PhaseStatus.IN_PROGRESS
        assert resolve_phase_status(instant, instant, instant + timedelta(seconds=1)) == PhaseStatus.COMPLETED

    def test_total_and_completed_iff_after_end(self):
        base = datetime(2025, 1, 1)
        for start_offset in range(0, 5):
            for length in range(0, 4):
                start = base + timedelta(days=start_offset)
                end = start + timedelta(days=length)
                for now_offset in range(-1, 10):
                    now = base + timedelta(days=now_offset)
                    status = resolve_phase_status(start, end, now)
                    assert status in set(PhaseStatus)
                    assert (status == PhaseStatus.COMPLETED) == (now > end)

    def test_progress(self):
        assert PhaseStatusResolver.progress(self.start, self.end, datetime(2025, 1, 1)) == 0
        assert PhaseStatusResolver.progress(self.start, self.end, datetime(2025, 1, 15)) == 50
        assert PhaseStatusResolver.progress(self.start, self.end, datetime(2025, 1, 12, 12)) == 25
        assert PhaseStatusResolver.progress(self.start, self.end, datetime(2025, 2, 1)) == 100

    def test_progress_floors(self):
        start = datetime(2025, 1, 1)
        end = start + timedelta(seconds=3)
        assert PhaseStatusResolver.progress(start, end, start + timedelta(seconds=2)) == 66

    def test_progress_single_instant(self):
        instant = datetime(2025, 3, 1)
        assert PhaseStatusResolver.progress(instant, instant, instant - timedelta(seconds=1)) == 0
        assert PhaseStatusResolver.progress(instant, instant, instant) == 100


class TestPhaseOperations:

    def test_create_phase_computes_status(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            phases = await engine.phases.get_phases(seed.competition_id)
            return [(p.phase_type, p.status) for p in phases]

        assert run(scenario) == [
            (PhaseType.REGISTRATION, PhaseStatus.COMPLETED),
            (PhaseType.CAPTAIN_VOTING, PhaseStatus.IN_PROGRESS),
            (PhaseType.PLAYER_SCORING, PhaseStatus.IN_PROGRESS),
            (PhaseType.AWARDS, PhaseStatus.PENDING),
        ]

    def test_create_phase_rejects_inverted_dates(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(InvalidDateRangeError):
                await engine.phases.create_phase(
                    seed.competition_id, "Backwards", PhaseType.COMPETITION, 9,
                    START + timedelta(days=2), START + timedelta(days=1)
                )

        run(scenario)

    def test_create_phase_rejects_duplicate_order(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(ConflictError):
                await engine.phases.create_phase(
                    seed.competition_id, "Clash", PhaseType.COMPETITION, 1, START, START
                )

        run(scenario)

    def test_create_phase_unknown_competition(self, run):
        async def scenario(engine):
            with pytest.raises(NotFoundError):
                await engine.phases.create_phase(999, "Nowhere", "competition", 1, START, START)

        run(scenario)

    def test_update_dates_recomputes_status(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            awards_id = seed.phase_ids[PhaseType.AWARDS]
            phase = await engine.update_phase_dates(
                awards_id, START - timedelta(hours=1), START + timedelta(hours=1)
            )
            assert phase.status == PhaseStatus.IN_PROGRESS

            phase = await engine.update_phase_dates(
                awards_id, START - timedelta(hours=2), START - timedelta(hours=1)
            )
            assert phase.status == PhaseStatus.COMPLETED

            with pytest.raises(InvalidDateRangeError):
                await engine.update_phase_dates(awards_id, START, START - timedelta(seconds=1))

        run(scenario)

    def test_refresh_persists_drifted_statuses(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            clock.advance(days=3)
            changed = await engine.phases.refresh_phase_statuses(seed.competition_id)
            again = await engine.phases.refresh_phase_statuses(seed.competition_id)
            phases = await engine.phases.get_phases(seed.competition_id)
            return changed, again, phases

        changed, again, phases = run(scenario)
        assert {p.phase_type for p in changed} == {PhaseType.CAPTAIN_VOTING, PhaseType.PLAYER_SCORING}
        assert again == []
        assert [p.status for p in phases] == [
            PhaseStatus.COMPLETED, PhaseStatus.COMPLETED, PhaseStatus.COMPLETED, PhaseStatus.PENDING
        ]

    def test_current_phase(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            first = await engine.phases.get_current_phase(seed.competition_id)
            clock.advance(days=5)
            none_active = await engine.phases.get_current_phase(seed.competition_id)
            return first.phase_type, none_active

        assert run(scenario) == (PhaseType.CAPTAIN_VOTING, None)

    def test_update_phase_fields(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            awards_id = seed.phase_ids[PhaseType.AWARDS]
            phase = await engine.phases.update_phase(
                awards_id, name="Prize Giving", description="Trophies", order=7
            )
            assert (phase.name, phase.description, phase.order) == ("Prize Giving", "Trophies", 7)

            with pytest.raises(ConflictError):
                await engine.phases.update_phase(awards_id, order=1)

        run(scenario)

    def test_delete_phase_cascades_scores(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            scoring_id = seed.phase_ids[PhaseType.PLAYER_SCORING]
            p1, p2 = seed.player_ids[:2]
            await engine.upsert_self_score(p1, seed.competition_id, scoring_id, {"Speed": 4})
            await engine.upsert_peer_rating(p1, p2, seed.competition_id, scoring_id, {"Speed": 3})

            await engine.phases.delete_phase(scoring_id)

            assert await engine.scoring.get_self_score(p1, scoring_id) is None
            assert await engine.scoring.get_peer_rating(p1, p2, scoring_id) is None
            with pytest.raises(NotFoundError):
                await engine.phases.delete_phase(scoring_id)

        run(scenario)


class TestRequireActivePhase:

    def test_wrong_type_is_inactive(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(PhaseInactiveError):
                await engine.upsert_self_score(
                    seed.player_ids[0], seed.competition_id,
                    seed.phase_ids[PhaseType.CAPTAIN_VOTING], {"Speed": 3}
                )

        run(scenario)

    def test_clock_beats_stored_status(self, run, clock):
        async def scenario(engine):
            seed = await seed_competition(engine)
            scoring_id = seed.phase_ids[PhaseType.PLAYER_SCORING]
            clock.advance(days=2, seconds=1)
            with pytest.raises(PhaseInactiveError):
                await engine.upsert_self_score(
                    seed.player_ids[0], seed.competition_id, scoring_id, {"Speed": 3}
                )

        run(scenario)

    def test_missing_phase(self, run):
        async def scenario(engine):
            seed = await seed_competition(engine)
            with pytest.raises(NotFoundError):
                await engine.upsert_self_score(seed.player_ids[0], seed.competition_id, 999, {"Speed": 3})

        run(scenario)


class TestCompetitionTimeline:

    def test_timeline_of_active_competition(self, run):
        async def scenario(engine):
            await seed_competition(engine)
            return await engine.phases.get_competition_timeline()

        timeline = run(scenario)
        assert timeline.name == "Summer League"
        assert timeline.status == "active"
        assert [entry.status for entry in timeline.phases] == ["completed", "active", "active", "upcoming"]
        assert [entry.order for entry in timeline.phases] == [1, 2, 3, 4]
        # captain voting runs from -1 to +1 day, so half of it has elapsed
        assert timeline.phases[1].progress == 50
        assert timeline.phases[0].progress == 100
        assert timeline.phases[3].progress == 0
        assert timeline.current_phase.phase_type == "captain_voting"

    def test_competition_without_phases(self, run):
        async def scenario(engine):
            competition = await engine.competitions.create_competition(
                "Winter Cup", 2026, START + timedelta(days=10), START + timedelta(days=20)
            )
            return await engine.phases.get_competition_timeline(competition.id)

        timeline = run(scenario)
        assert len(timeline.phases) == 1
        entry = timeline.phases[0]
        assert entry.name == "Competition Period"
        assert entry.phase_id is None
        assert entry.status == "upcoming"
        assert entry.progress == 0

    def test_no_competition(self, run):
        async def scenario(engine):
            with pytest.raises(NotFoundError):
                await engine.phases.get_competition_timeline()

        run(scenario)
