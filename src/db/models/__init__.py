"""Database models package exports."""

from src.db.models.user import User

__all__ = [
    "User",
]
