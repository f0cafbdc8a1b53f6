from sqlalchemy import Column, Integer, Float
from db.core.database import Base

class QueryTiming(Base):
    __tablename__ = "query_timings"

    id = Column(Integer, primary_key=True, index=True)
    time_context = Column(Float)
    time_oracle = Column(Float)
    time_store = Column(Float)
    time_total = Column(Float)
