from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from config.logging_config import logger
from db.core.database import AsyncSessionLocal
from db.models.user import User, UserInterest
from db.schemas.user import ViewerContext

MAX_INTERESTS = 5


class ViewerContextLoader:
    """Reads the profile of an identified viewer for the query understanding prompt."""

    def __init__(self, session_factory: Callable = AsyncSessionLocal):
        self.session_factory = session_factory

    async def __call__(self, user_id: str) -> Optional[ViewerContext]:
        try:
            async with self.session_factory() as db:
                user = await db.get(User, user_id)
                if user is None:
                    return None
                res = await db.execute(
                    select(UserInterest.interest)
                    .where(UserInterest.user_id == user_id)
                    .order_by(UserInterest.priority.desc(), UserInterest.id.asc())
                    .limit(MAX_INTERESTS)
                )
                interests = list(res.scalars().all())
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not load context for user {user_id}: {e}")
            return None

        return ViewerContext(
            location=user.location,
            industry=user.industry,
            experience_level=user.experience_level,
            interests=interests,
        )

    async def subscription_tier(self, user_id: str) -> Optional[str]:
        """Current plan id stored for the user, or None when unknown."""
        try:
            async with self.session_factory() as db:
                user = await db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not load subscription for user {user_id}: {e}")
            return None
        return user.subscription_tier if user else None
