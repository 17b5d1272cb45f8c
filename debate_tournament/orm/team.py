"""
debate_tournament/orm/team.py
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from debate_tournament.orm.base import Base


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    name = Column(String(200), nullable=False)
    school = Column(String(200), nullable=True)
    coach = Column(String(200), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    event = relationship("Event", back_populates="teams")

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}')>"
