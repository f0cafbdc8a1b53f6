from sqlalchemy import Column, String, Float, Integer, Boolean, JSON, DateTime
from sqlalchemy.sql import func
from db.core.database import Base


class PricingPlanRecord(Base):
    __tablename__ = "pricing_plans"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False, default=0)
    period = Column(String, nullable=False, default="month")
    description = Column(String, nullable=False, default="")
    stripe_price_id = Column(String, nullable=False, default="")
    access_level = Column(String, nullable=False, default="basic")
    max_saved_resources = Column(Integer, nullable=False, default=0)
    max_ai_searches = Column(Integer, nullable=False, default=0)
    features = Column(JSON, nullable=False, default=list)
    popular = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
