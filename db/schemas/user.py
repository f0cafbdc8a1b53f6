from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict


class UserBase(BaseModel):
    email: str
    name: str | None = None
    location: str | None = None
    industry: str | None = None
    experience_level: str | None = None


class UserCreate(UserBase):
    id: str
    subscription_tier: str = "free"


class UserUpdate(BaseModel):
    name: str | None = None
    location: str | None = None
    industry: str | None = None
    experience_level: str | None = None


class SubscriptionUpdate(BaseModel):
    tier: str
    test_mode: bool = False


class UserOut(UserBase):
    id: str
    subscription_tier: str
    subscription_expires: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ViewerContext(BaseModel):
    """What the query understanding step is told about an identified viewer."""
    location: str | None = None
    industry: str | None = None
    experience_level: str | None = None
    interests: List[str] = []

    def describe(self) -> str:
        return (f"User location: {self.location or 'Not specified'}. "
                f"User industry: {self.industry or 'Not specified'}. "
                f"User experience: {self.experience_level or 'Not specified'}. "
                f"User interests: {', '.join(self.interests)}.")
