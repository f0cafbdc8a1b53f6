from pydantic import BaseModel, ConfigDict

class QueryTimingBase(BaseModel):
    time_context: float | None = None
    time_oracle: float | None = None
    time_store: float | None = None
    time_total: float | None = None

class QueryTimingCreate(QueryTimingBase):
    pass

class QueryTimingOut(QueryTimingBase):
    id: int

    model_config = ConfigDict(from_attributes=True)
