"""
debate_tournament/orm/user.py
Tournament officials: administrators, moderators and judges
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum

from debate_tournament.orm.base import Base


class UserRole(str, Enum):
    admin = "admin"
    moderator = "moderator"
    judge = "judge"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True, unique=True, index=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.judge, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', role={self.role})>"
