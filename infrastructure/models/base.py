"""
Declarative base for all ORM models (SQLAlchemy 2.0 style)
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Used by create_tables() and migrations
metadata = Base.metadata
