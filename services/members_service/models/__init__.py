"""Members Service models package."""

from services.members_service.models.core import User
from services.members_service.models.enums import UserRole

__all__ = ["User", "UserRole"]
