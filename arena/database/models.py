import json
from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Dict, List

Base = declarative_base()

class CompetitionStatus(Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    INACTIVE = "inactive"

class PhaseType(Enum):
    REGISTRATION = "registration"
    TEAM_FORMATION = "team_formation"
    CAPTAIN_VOTING = "captain_voting"
    PLAYER_SCORING = "player_scoring"
    COMPETITION = "competition"
    AWARDS = "awards"

class PhaseStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

class RegistrationStatus(Enum):
    REGISTERED = "registered"
    APPROVED = "approved"

class PlayerRole(Enum):
    PLAYER = "player"
    CAPTAIN = "captain"
    ADMIN = "admin"


class ScoreMapMixin:
    """Category -> rating map stored as JSON text in the `scores` column"""

    @property
    def score_map(self) -> Dict[str, int]:
        if not self.scores:
            return {}
        return json.loads(self.scores)

    @score_map.setter
    def score_map(self, value: Dict[str, int]):
        self.scores = json.dumps(value, sort_keys=True)


class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(100))
    role = Column(SQLEnum(PlayerRole), default=PlayerRole.PLAYER, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Player(id={self.id}, username='{self.username}', role={self.role})>"

class Competition(Base):
    __tablename__ = 'competitions'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(SQLEnum(CompetitionStatus), default=CompetitionStatus.UPCOMING, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('start_date <= end_date', name='check_competition_dates'),
    )

    def __repr__(self):
        return f"<Competition(id={self.id}, name='{self.name}', year={self.year}, status={self.status})>"

class CompetitionPhase(Base):
    __tablename__ = 'competition_phases'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    phase_type = Column('type', SQLEnum(PhaseType), nullable=False)
    order = Column(Integer, nullable=False)

    # Time box; status is derived from these and cached for fast reads
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(SQLEnum(PhaseStatus), default=PhaseStatus.PENDING, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('competition_id', 'order', name='unique_competition_phase_order'),
        CheckConstraint('start_date <= end_date', name='check_phase_dates'),
    )

    def __repr__(self):
        return f"<CompetitionPhase(id={self.id}, name='{self.name}', type={self.phase_type}, status={self.status})>"

class Team(Base):
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    captain_id = Column(Integer, ForeignKey('players.id', ondelete='SET NULL'), nullable=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Members in join order
    memberships = relationship(
        "TeamMembership",
        back_populates="team",
        order_by="TeamMembership.id",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (UniqueConstraint('competition_id', 'name', name='unique_team_name'),)

    @property
    def member_ids(self) -> List[int]:
        """Member ids in join order (requires memberships to be loaded)"""
        return [membership.player_id for membership in self.memberships]

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', captain_id={self.captain_id})>"

class TeamMembership(Base):
    __tablename__ = 'team_memberships'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    joined_at = Column(DateTime, default=func.now())

    team = relationship("Team", back_populates="memberships")
    player = relationship("Player")

    __table_args__ = (UniqueConstraint('team_id', 'player_id', name='unique_team_member'),)

class UserCompetition(Base):
    """Registration of a player for a competition, with the cached proficiency score"""
    __tablename__ = 'user_competitions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(SQLEnum(RegistrationStatus), default=RegistrationStatus.REGISTERED, nullable=False)

    # Cache target only; aggregation always reads the raw score records
    proficiency_score = Column(Integer, default=0, nullable=False)
    proficiencies = Column(Text, default='[]')  # JSON list of {"name", "score"}

    registered_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'competition_id', name='unique_user_competition'),
        CheckConstraint('proficiency_score BETWEEN 0 AND 100', name='check_proficiency_score'),
    )

    @property
    def proficiency_breakdown(self) -> List[Dict]:
        if not self.proficiencies:
            return []
        return json.loads(self.proficiencies)

    def __repr__(self):
        return f"<UserCompetition(user_id={self.user_id}, competition_id={self.competition_id}, score={self.proficiency_score})>"

class PlayerSelfScore(ScoreMapMixin, Base):
    __tablename__ = 'player_self_scores'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False, index=True)
    phase_id = Column(Integer, ForeignKey('competition_phases.id', ondelete='CASCADE'), nullable=False)
    scores = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (UniqueConstraint('user_id', 'phase_id', name='unique_self_score'),)

    def __repr__(self):
        return f"<PlayerSelfScore(user_id={self.user_id}, phase_id={self.phase_id})>"

class PlayerRating(ScoreMapMixin, Base):
    """Peer rating given by rater_id to rated_id"""
    __tablename__ = 'player_ratings'

    id = Column(Integer, primary_key=True)
    rater_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    rated_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False, index=True)
    phase_id = Column(Integer, ForeignKey('competition_phases.id', ondelete='CASCADE'), nullable=False)
    scores = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (UniqueConstraint('rater_id', 'rated_id', 'phase_id', name='unique_peer_rating'),)

    def __repr__(self):
        return f"<PlayerRating(rater_id={self.rater_id}, rated_id={self.rated_id}, phase_id={self.phase_id})>"

class CaptainVote(Base):
    __tablename__ = 'captain_votes'

    id = Column(Integer, primary_key=True)
    voter_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    captain_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, index=True)
    competition_id = Column(Integer, ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False)
    phase_id = Column(Integer, ForeignKey('competition_phases.id', ondelete='CASCADE'), nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (UniqueConstraint('voter_id', 'phase_id', 'team_id', name='unique_captain_vote'),)

    def __repr__(self):
        return f"<CaptainVote(voter_id={self.voter_id}, captain_id={self.captain_id}, team_id={self.team_id})>"
