"""
debate_tournament/orm/event.py
Tournament event and its scoring configuration
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship

from debate_tournament.orm.base import Base


class Event(Base):
    """
    A tournament event.

    scoring_criteria is kept as the raw JSON string organizers saved; it may
    carry "commentQuestionsCount" (judge questions per half). Parsing and the
    fallback to the default count happen in the standings service.
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    total_rounds = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="upcoming")
    scoring_criteria = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    teams = relationship("Team", back_populates="event", order_by="Team.id")
    matches = relationship("Match", back_populates="event", order_by="Match.id")

    def __repr__(self):
        return f"<Event(id={self.id}, name='{self.name}')>"
