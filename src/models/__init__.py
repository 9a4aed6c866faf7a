"""
Models package — export all SQLAlchemy models.
"""

from src.models.base import Base
from src.models.price_history import PriceObservation
from src.models.watch_item import WatchItem

__all__ = ["Base", "PriceObservation", "WatchItem"]
