"""
debate_tournament/orm/adjustment_logs.py
Manual standings corrections entered by administrators.

All three log tables are append-only: rows are summed into the standings
on every computation and are never edited or removed.
"""
from datetime import datetime
from typing import Dict, Any

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, event
from sqlalchemy.orm import relationship

from debate_tournament.errors import AppendOnlyViolationError
from debate_tournament.orm.base import Base


class VoteLog(Base):
    """Signed correction to a team's total votes."""
    __tablename__ = "vote_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False, index=True)
    adjustment = Column(Numeric(10, 2), nullable=False)

    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_name = Column(String(200), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    team = relationship("Team")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "team_id": self.team_id,
            "adjustment": str(self.adjustment),
            "admin_name": self.admin_name,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WinLog(Base):
    """
    Signed corrections to a team's win/loss/tie record.

    Each adjusted win counts one full win, each tie half a win, and every
    adjusted result also counts as a match played.
    """
    __tablename__ = "win_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False, index=True)
    wins_adj = Column(Integer, nullable=False, default=0)
    losses_adj = Column(Integer, nullable=False, default=0)
    ties_adj = Column(Integer, nullable=False, default=0)

    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_name = Column(String(200), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    team = relationship("Team")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "team_id": self.team_id,
            "wins_adj": self.wins_adj,
            "losses_adj": self.losses_adj,
            "ties_adj": self.ties_adj,
            "admin_name": self.admin_name,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ScoreDifferentialLog(Base):
    """Signed correction to a team's cumulative score differential."""
    __tablename__ = "score_differential_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False, index=True)
    adjustment = Column(Numeric(12, 2), nullable=False)

    admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admin_name = Column(String(200), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    team = relationship("Team")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "team_id": self.team_id,
            "adjustment": str(self.adjustment),
            "admin_name": self.admin_name,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# =============================================================================
# ORM Event Guards
# =============================================================================

def _prevent_update(mapper, connection, target):
    raise AppendOnlyViolationError(
        f"{type(target).__name__} is append-only. Updates are prohibited for audit integrity."
    )


def _prevent_delete(mapper, connection, target):
    raise AppendOnlyViolationError(
        f"{type(target).__name__} is append-only. Deletions are prohibited for audit integrity."
    )


for _log_model in (VoteLog, WinLog, ScoreDifferentialLog):
    event.listen(_log_model, "before_update", _prevent_update)
    event.listen(_log_model, "before_delete", _prevent_delete)
