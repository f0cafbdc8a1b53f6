from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from db.core.database import Base

class SearchQuery(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    query_timing_id = Column(Integer, ForeignKey("query_timings.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    query = Column(String, nullable=False)
    search_type = Column(String, nullable=False, default="career")
    results_count = Column(Integer, nullable=False, default=0)
    used_fallback = Column(Boolean, default=False)
