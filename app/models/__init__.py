from app.models.profile import UserProfile
from app.models.relationship import Relationship

__all__ = ["UserProfile", "Relationship"]
