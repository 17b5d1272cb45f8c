"""
debate_tournament/orm/tiebreak_draw.py
Persisted outcome of a random-draw tie-break.

Under the "persist" draw policy the first shuffle for an exact set of tied
teams is stored here and replayed on later standings computations, so the
order does not change between refreshes.
"""
import hashlib
from datetime import datetime
from typing import List

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from debate_tournament.orm.base import Base, UniversalJSON


class TiebreakDraw(Base):
    __tablename__ = "tiebreak_draws"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_set_key = Column(String(500), nullable=False)
    ordering = Column(UniversalJSON, nullable=False)
    draw_hash = Column(String(64), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('event_id', 'team_set_key', name='uq_tiebreak_draw_team_set'),
    )

    @staticmethod
    def compute_hash(event_id: int, ordering: List[int]) -> str:
        """SHA256 over "event|id,id,..." so tampered orderings are detectable."""
        combined = f"{event_id}|{','.join(str(team_id) for team_id in ordering)}"
        return hashlib.sha256(combined.encode()).hexdigest()

    def verify(self) -> bool:
        return self.draw_hash == self.compute_hash(self.event_id, list(self.ordering or []))

    def __repr__(self):
        return f"<TiebreakDraw(event={self.event_id}, teams='{self.team_set_key}')>"
