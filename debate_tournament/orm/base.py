"""
debate_tournament/orm/base.py
Declarative base and shared column types for all ORM models
"""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UniversalJSON(TypeDecorator):
    """
    JSON column that becomes JSONB on PostgreSQL.

    Score criteria maps and judge-question lists are stored with it.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())
