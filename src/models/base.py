"""
SQLAlchemy 2.0 async DeclarativeBase for Supermarket Monitor.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all Supermarket Monitor database models."""
    pass
