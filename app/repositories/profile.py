from typing import Dict, Iterable, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.models.profile import UserProfile
from app.schemas.profile import ProfileCreate


class ProfileRepository:
    """Read access to the identity directory"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, profile_data: ProfileCreate) -> UserProfile:
        """Create a profile (seeding and tests; profile CRUD lives elsewhere)"""
        profile = UserProfile(**profile_data.model_dump())
        self.db.add(profile)
        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def exists(self, user_id: str) -> bool:
        stmt = select(func.count()).select_from(UserProfile).where(UserProfile.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar() > 0

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """Bulk lookup keyed by user id; missing ids are simply absent"""
        ids = list(set(user_ids))
        if not ids:
            return {}
        stmt = select(UserProfile).where(UserProfile.user_id.in_(ids))
        result = await self.db.execute(stmt)
        return {profile.user_id: profile for profile in result.scalars().all()}

    async def list_excluding(self, excluded_ids: Iterable[str], limit: int = 50) -> List[UserProfile]:
        """Profiles not in ``excluded_ids``, ordered by display name then user id"""
        stmt = select(UserProfile)
        excluded = list(set(excluded_ids))
        if excluded:
            stmt = stmt.where(UserProfile.user_id.not_in(excluded))
        # Same text as UserProfile.display_name
        display_name = func.trim(UserProfile.first_name + " " + UserProfile.last_name)
        stmt = stmt.order_by(display_name, UserProfile.user_id).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
