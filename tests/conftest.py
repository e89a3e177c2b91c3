"""Shared fixtures: a throwaway SQLite database and a controllable clock."""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List

import pytest

os.environ.setdefault("LOG_TO_FILE", "false")

from arena.database.database import Database
from arena.database.models import CompetitionStatus, PhaseType
from arena.main import CompetitionEngine
from arena.utils.clock import ManualClock

START = datetime(2025, 6, 1, 12, 0, 0)


@dataclass
class Seed:
    competition_id: int
    player_ids: List[int]
    team_id: int
    phase_ids: Dict[PhaseType, int] = field(default_factory=dict)


async def seed_competition(engine: CompetitionEngine, members: int = 4) -> Seed:
    """
    One active competition with `members` registered players on one team.

    Phases around the clock's current time:
    - registration: completed
    - captain_voting: in progress
    - player_scoring: in progress
    - awards: pending
    """
    now = engine.clock.now()
    competition = await engine.competitions.create_competition(
        "Summer League", 2025, now - timedelta(days=30), now + timedelta(days=30),
        status=CompetitionStatus.ACTIVE
    )

    player_ids = []
    for i in range(members):
        player = await engine.players.create_player(f"player{i + 1}", f"Player {i + 1}")
        await engine.competitions.register_player(player.id, competition.id)
        player_ids.append(player.id)

    team = await engine.teams.create_team(competition.id, "Red")
    for player_id in player_ids:
        await engine.teams.add_team_member(team.id, player_id)

    windows = [
        (PhaseType.REGISTRATION, now - timedelta(days=20), now - timedelta(days=10)),
        (PhaseType.CAPTAIN_VOTING, now - timedelta(days=1), now + timedelta(days=1)),
        (PhaseType.PLAYER_SCORING, now - timedelta(days=1), now + timedelta(days=2)),
        (PhaseType.AWARDS, now + timedelta(days=10), now + timedelta(days=11)),
    ]
    phase_ids = {}
    for order, (phase_type, start, end) in enumerate(windows, start=1):
        phase = await engine.phases.create_phase(
            competition.id, phase_type.value.replace('_', ' ').title(), phase_type, order, start, end
        )
        phase_ids[phase_type] = phase.id

    return Seed(competition.id, player_ids, team.id, phase_ids)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def run(tmp_path, clock):
    """
    Run an async scenario against a fresh database.

    The scenario receives a CompetitionEngine; the database is closed
    afterwards whatever the outcome.
    """
    def _run(scenario):
        async def _main():
            db = Database(f"sqlite:///{tmp_path / 'arena_test.db'}", echo=False)
            await db.initialize()
            try:
                return await scenario(CompetitionEngine(db, clock))
            finally:
                await db.close()

        return asyncio.run(_main())

    return _run
