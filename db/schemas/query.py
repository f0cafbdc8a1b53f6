from pydantic import BaseModel, ConfigDict
from datetime import datetime

class SearchQueryBase(BaseModel):
    user_id: str | None = None
    query_timing_id: int | None = None
    query: str
    search_type: str = "career"
    results_count: int = 0
    used_fallback: bool = False

class SearchQueryCreate(SearchQueryBase):
    pass

class SearchQueryOut(SearchQueryBase):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
