"""SQLAlchemy ORM models for the Fiszki database."""

from backend.models.base import Base
from backend.models.user import UserDocument

__all__ = ["Base", "UserDocument"]
