from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, event
from sqlalchemy.sql import func
from db.core.database import Base

TAG_SEPARATOR = "|"


def build_tag_index(tags) -> str:
    """Lowercased tags joined into one searchable column."""
    return TAG_SEPARATOR.join(str(tag).strip().lower() for tag in (tags or []) if str(tag).strip())


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")

    website = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    contact_email = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String, nullable=True)

    resource_type = Column(String, nullable=False, index=True)
    industry = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    tag_index = Column(String, nullable=False, default="")

    is_national = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


@event.listens_for(Resource, "before_insert")
@event.listens_for(Resource, "before_update")
def _sync_tag_index(mapper, connection, target):
    target.tag_index = build_tag_index(target.tags)
