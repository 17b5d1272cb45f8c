"""
debate_tournament/orm/score.py
One judge's score sheet for one team in one match
"""
from datetime import datetime
from typing import Dict, Any

from sqlalchemy import (
    Column, Integer, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from debate_tournament.orm.base import Base, UniversalJSON


class Score(Base):
    """
    criteria_scores maps criterion name to points, comment_scores is the
    ordered list of judge-question points. Drafts stay editable; once
    is_submitted is set the row is frozen by the score service.
    """
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    judge_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="RESTRICT"), nullable=False, index=True)

    criteria_scores = Column(UniversalJSON, nullable=False, default=dict)
    comment_scores = Column(UniversalJSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)

    is_submitted = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('match_id', 'judge_id', 'team_id', name='uq_score_match_judge_team'),
    )

    match = relationship("Match", back_populates="scores")
    judge = relationship("User")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "judge_id": self.judge_id,
            "team_id": self.team_id,
            "criteria_scores": dict(self.criteria_scores or {}),
            "comment_scores": list(self.comment_scores or []),
            "notes": self.notes,
            "is_submitted": bool(self.is_submitted),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
