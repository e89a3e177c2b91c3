"""
Phase Operations Module

Business logic for the lifecycle of competition phases: creation and date
changes (status is always derived from the time box, never defaulted),
status refresh against the clock, the shared "is this phase open for this
action" check used by scoring and voting, and the competition timeline view.
"""

from datetime import datetime
from typing import List, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession

from arena.constants import TimelineConstants
from arena.data_models.timeline import CompetitionTimeline, TimelineEntry
from arena.database.models import Competition, CompetitionPhase, CompetitionStatus, PhaseStatus, PhaseType
from arena.database.repositories import CompetitionRepository, PhaseRepository
from arena.operations.base import BaseOperations
from arena.utils.clock import to_naive_utc
from arena.utils.exceptions import (
    ConflictError, InvalidDateRangeError, NotFoundError, PhaseInactiveError
)
from arena.utils.phase_status import PhaseStatusResolver


def _coerce_phase_type(phase_type: Union[PhaseType, str]) -> PhaseType:
    try:
        return PhaseType(phase_type)
    except ValueError:
        raise ConflictError(
            f"Unknown phase type {phase_type!r}",
            f"❌ Unknown phase type: {phase_type}"
        )


def _check_date_range(start_date: datetime, end_date: datetime):
    if start_date > end_date:
        raise InvalidDateRangeError(start_date, end_date)


class PhaseOperations(BaseOperations):
    """
    Business logic operations for competition phases.

    Every write that touches a phase's dates recomputes and persists its
    status in the same transaction.
    """

    def apply_status(self, phase: CompetitionPhase) -> bool:
        """Recompute the cached status; returns True if it changed"""
        status = PhaseStatusResolver.resolve(phase.start_date, phase.end_date, self.clock.now())
        if phase.status != status:
            phase.status = status
            return True
        return False

    async def _get_phase(self, session: AsyncSession, phase_id: int) -> CompetitionPhase:
        phase = await PhaseRepository(session).get(phase_id)
        if phase is None:
            raise NotFoundError("Phase", phase_id)
        return phase

    async def create_phase(
        self,
        competition_id: int,
        name: str,
        phase_type: Union[PhaseType, str],
        order: int,
        start_date: datetime,
        end_date: datetime,
        description: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> CompetitionPhase:
        """
        Create a phase with its status computed from the supplied dates.

        Raises:
            NotFoundError: Competition does not exist
            InvalidDateRangeError: start_date is after end_date
            ConflictError: Another phase of the competition already uses `order`
        """
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        _check_date_range(start_date, end_date)
        phase_type = _coerce_phase_type(phase_type)

        async with self._get_session_context(session, "create_phase") as s:
            if await CompetitionRepository(s).get(competition_id) is None:
                raise NotFoundError("Competition", competition_id)

            phases = PhaseRepository(s)
            if await phases.get_by_order(competition_id, order) is not None:
                raise ConflictError(
                    f"Competition {competition_id} already has a phase at order {order}",
                    f"❌ Another phase already uses position {order}."
                )

            phase = CompetitionPhase(
                competition_id=competition_id,
                name=name,
                description=description,
                phase_type=phase_type,
                order=order,
                start_date=start_date,
                end_date=end_date,
                status=PhaseStatusResolver.resolve(start_date, end_date, self.clock.now())
            )
            await phases.add(phase)

            self.logger.info(
                f"Created phase {phase.id} '{name}' ({phase_type.value}) for competition "
                f"{competition_id}, status {phase.status.value}"
            )
            return phase

    async def update_phase_dates(
        self,
        phase_id: int,
        start_date: datetime,
        end_date: datetime,
        session: Optional[AsyncSession] = None
    ) -> CompetitionPhase:
        """Move a phase's time box and persist the recomputed status"""
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        _check_date_range(start_date, end_date)

        async with self._get_session_context(session, "update_phase_dates") as s:
            phase = await self._get_phase(s, phase_id)
            phase.start_date = start_date
            phase.end_date = end_date
            self.apply_status(phase)
            await s.flush()

            self.logger.info(
                f"Updated dates of phase {phase_id} to {start_date} - {end_date}, "
                f"status {phase.status.value}"
            )
            return phase

    async def update_phase(
        self,
        phase_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        phase_type: Optional[Union[PhaseType, str]] = None,
        order: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> CompetitionPhase:
        """Update the descriptive fields of a phase; omitted fields are left alone"""
        async with self._get_session_context(session, "update_phase") as s:
            phase = await self._get_phase(s, phase_id)

            if order is not None and order != phase.order:
                clash = await PhaseRepository(s).get_by_order(phase.competition_id, order)
                if clash is not None:
                    raise ConflictError(
                        f"Competition {phase.competition_id} already has a phase at order {order}",
                        f"❌ Another phase already uses position {order}."
                    )
                phase.order = order
            if name is not None:
                phase.name = name
            if description is not None:
                phase.description = description
            if phase_type is not None:
                phase.phase_type = _coerce_phase_type(phase_type)

            await s.flush()
            self.logger.info(f"Updated phase {phase_id}")
            return phase

    async def delete_phase(self, phase_id: int, session: Optional[AsyncSession] = None) -> None:
        """Delete a phase together with its self-scores, ratings and votes"""
        async with self._get_session_context(session, "delete_phase") as s:
            deleted = await PhaseRepository(s).delete(phase_id)
            if deleted == 0:
                raise NotFoundError("Phase", phase_id)
            self.logger.info(f"Deleted phase {phase_id}")

    async def refresh_phase_statuses(
        self,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> List[CompetitionPhase]:
        """
        Recompute every phase status of a competition against the clock.

        Returns:
            The phases whose stored status was out of date, after updating them
        """
        async with self._get_session_context(session, "refresh_phase_statuses") as s:
            changed = [
                phase for phase in await PhaseRepository(s).list_for_competition(competition_id)
                if self.apply_status(phase)
            ]
            await s.flush()

            for phase in changed:
                self.logger.info(f"Phase {phase.id} '{phase.name}' is now {phase.status.value}")
            return changed

    async def get_phases(self, competition_id: int, session: Optional[AsyncSession] = None) -> List[CompetitionPhase]:
        """Phases of a competition in ascending order"""
        async with self._get_session_context(session, "get_phases") as s:
            return await PhaseRepository(s).list_for_competition(competition_id)

    async def get_current_phase(
        self,
        competition_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[CompetitionPhase]:
        """First phase (by order) that is in progress right now"""
        now = self.clock.now()
        async with self._get_session_context(session, "get_current_phase") as s:
            for phase in await PhaseRepository(s).list_for_competition(competition_id):
                if PhaseStatusResolver.resolve(phase.start_date, phase.end_date, now) == PhaseStatus.IN_PROGRESS:
                    return phase
            return None

    async def require_active_phase(
        self,
        session: AsyncSession,
        phase_id: int,
        expected_type: PhaseType
    ) -> CompetitionPhase:
        """
        Load a phase and check it is open for an action of the given type.

        The status is derived from the clock rather than trusted from storage;
        a stale stored status is corrected in the caller's transaction.

        Raises:
            NotFoundError: Phase does not exist
            PhaseInactiveError: Phase has another type or is not in progress
        """
        phase = await self._get_phase(session, phase_id)

        if phase.phase_type != expected_type:
            self.logger.debug(
                f"Phase {phase_id} rejected: type {phase.phase_type.value}, expected {expected_type.value}"
            )
            raise PhaseInactiveError(
                phase_id,
                f"This action is only available during a {expected_type.value.replace('_', ' ')} phase."
            )

        if self.apply_status(phase):
            self.logger.info(f"Phase {phase_id} status corrected to {phase.status.value}")
            await session.flush()

        if phase.status != PhaseStatus.IN_PROGRESS:
            self.logger.debug(f"Phase {phase_id} rejected: status {phase.status.value}")
            raise PhaseInactiveError(phase_id, f"This phase is {phase.status.value}, not in progress.")

        return phase

    async def _select_timeline_competition(self, session: AsyncSession,
                                           competition_id: Optional[int]) -> Competition:
        competitions = CompetitionRepository(session)
        if competition_id is not None:
            competition = await competitions.get(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            return competition

        for status in (CompetitionStatus.ACTIVE, CompetitionStatus.UPCOMING, CompetitionStatus.INACTIVE):
            competition = await competitions.get_first_by_status(status)
            if competition is not None:
                return competition
        raise NotFoundError("Competition", "any")

    async def get_competition_timeline(
        self,
        competition_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> CompetitionTimeline:
        """
        Build the timeline of a competition.

        Without an id the active competition is used, else the earliest
        upcoming one, else the earliest inactive one. A competition without
        phases gets a single entry spanning the whole competition.
        """
        now = self.clock.now()
        async with self._get_session_context(session, "get_competition_timeline") as s:
            competition = await self._select_timeline_competition(s, competition_id)
            phases = await PhaseRepository(s).list_for_competition(competition.id)

            def entry(phase_id, name, description, phase_type, order, start_date, end_date):
                status = PhaseStatusResolver.resolve(start_date, end_date, now)
                return TimelineEntry(
                    phase_id=phase_id,
                    name=name,
                    description=description,
                    phase_type=phase_type,
                    order=order,
                    start_date=start_date,
                    end_date=end_date,
                    status=PhaseStatusResolver.display_status(status),
                    progress=PhaseStatusResolver.progress(start_date, end_date, now)
                )

            if phases:
                entries = [
                    entry(p.id, p.name, p.description, p.phase_type.value, p.order, p.start_date, p.end_date)
                    for p in phases
                ]
            else:
                entries = [entry(
                    None,
                    TimelineConstants.DEFAULT_PHASE_NAME,
                    TimelineConstants.DEFAULT_PHASE_DESCRIPTION,
                    None,
                    1,
                    competition.start_date,
                    competition.end_date
                )]

            self.logger.debug(f"Built timeline for competition {competition.id} with {len(entries)} entries")
            return CompetitionTimeline(
                competition_id=competition.id,
                name=competition.name,
                year=competition.year,
                status=competition.status.value,
                phases=entries
            )
