from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ResourceBase(BaseModel):
    title: str
    description: str = ""
    website: str | None = None
    phone: str | None = None
    email: str | None = None
    contact_email: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    resource_type: str
    industry: str | None = None
    tags: List[str] = Field(default_factory=list)
    is_national: bool = True


class ResourceCreate(ResourceBase):
    is_active: bool = True


class ResourceUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    website: str | None = None
    phone: str | None = None
    email: str | None = None
    contact_email: str | None = None
    address: str | None = None
    resource_type: str | None = None
    industry: str | None = None
    tags: List[str] | None = None
    is_national: bool | None = None
    is_active: bool | None = None


class ResourceOut(ResourceBase):
    """A resource as sent to a viewer (possibly redacted)."""
    id: int | str
    is_active: bool = True
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
