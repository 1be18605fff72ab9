"""
Database models for the Store Ratings API.

All SQLAlchemy models are imported here for Alembic migrations.
"""

from app.models.user import User, UserRole
from app.models.store import Store
from app.models.rating import Rating

__all__ = [
    "User",
    "UserRole",
    "Store",
    "Rating",
]
