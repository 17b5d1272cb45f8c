"""
debate_tournament/orm/match.py
Matches between two teams and the judges assigned to them
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from debate_tournament.orm.base import Base


class Match(Base):
    """
    A scheduled encounter between team A and team B.

    status holds the canonical stage string (see state_machines.match_stage).
    It starts at "draft", only moves forward and is frozen at "completed".
    winner_id is set when the match completes; NULL on completion means a tie.
    """
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    round_number = Column(Integer, nullable=False, default=1)

    team_a_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=True, index=True)
    team_b_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=True, index=True)
    moderator_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    room = Column(String(100), nullable=True)
    scheduled_time = Column(DateTime, nullable=True)

    status = Column(String(40), nullable=False, default="draft", index=True)
    winner_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            'team_a_id IS NULL OR team_b_id IS NULL OR team_a_id != team_b_id',
            name='chk_match_distinct_teams'
        ),
    )

    event = relationship("Event", back_populates="matches")
    team_a = relationship("Team", foreign_keys=[team_a_id])
    team_b = relationship("Team", foreign_keys=[team_b_id])
    moderator = relationship("User", foreign_keys=[moderator_id])
    assignments = relationship(
        "MatchAssignment",
        back_populates="match",
        order_by="MatchAssignment.id",
        cascade="all, delete-orphan"
    )
    scores = relationship(
        "Score",
        back_populates="match",
        order_by="Score.id",
        cascade="all, delete-orphan"
    )

    @property
    def ordered_assignments(self) -> List["MatchAssignment"]:
        """Assignments by judge ordinal, unnumbered judges last, then creation order."""
        return sorted(
            self.assignments,
            key=lambda a: (a.judge_ordinal is None, a.judge_ordinal or 0, a.id or 0)
        )

    def side_of(self, team_id: int) -> Optional[str]:
        if team_id == self.team_a_id:
            return "A"
        if team_id == self.team_b_id:
            return "B"
        return None

    def opponent_of(self, team_id: int) -> Optional[int]:
        if team_id == self.team_a_id:
            return self.team_b_id
        if team_id == self.team_b_id:
            return self.team_a_id
        return None

    def __repr__(self):
        return f"<Match(id={self.id}, round={self.round_number}, status='{self.status}')>"


class MatchAssignment(Base):
    """
    A judge assigned to a match.

    judge_ordinal (1 or 2) marks which side of the two-judge protocol the
    judge sits on; it is optional for panels of one or three-plus.
    """
    __tablename__ = "match_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    judge_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    judge_ordinal = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('match_id', 'judge_id', name='uq_match_judge'),
        CheckConstraint(
            'judge_ordinal IS NULL OR judge_ordinal IN (1, 2)',
            name='chk_judge_ordinal'
        ),
    )

    match = relationship("Match", back_populates="assignments")
    judge = relationship("User")

    def __repr__(self):
        return f"<MatchAssignment(match={self.match_id}, judge={self.judge_id})>"
