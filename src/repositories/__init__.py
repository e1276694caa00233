"""Repository layer package."""

from src.repositories.user_repo import UserRepo

__all__ = [
    "UserRepo",
]
