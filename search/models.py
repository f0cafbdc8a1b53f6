"""
Data models and schemas for the search pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import SEARCH_PAGE_SIZE
from db.schemas.resource import ResourceOut


@dataclass
class SearchCriteria:
    """Filters handed to a ResourceStore. Keywords and resource types are OR-ed."""
    keywords: List[str] = field(default_factory=list)
    resource_types: List[str] = field(default_factory=list)
    industry: Optional[str] = None
    limit: int = SEARCH_PAGE_SIZE

    @property
    def has_disjunction(self) -> bool:
        return bool(self.keywords or self.resource_types)


class SearchDirective(BaseModel):
    """Structured output of the query understanding step."""
    guidance: str = ""
    relevant_resource_types: List[str] = Field(default_factory=list, alias="relevantResourceTypes")
    search_keywords: List[str] = Field(default_factory=list, alias="searchKeywords")
    industry_filter: Optional[str] = Field(default=None, alias="industryFilter")
    location_relevant: bool = Field(default=False, alias="locationRelevant")
    from_fallback: bool = Field(default=False, exclude=True)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("relevant_resource_types", "search_keywords")
    @classmethod
    def _drop_blank(cls, values: List[str]) -> List[str]:
        return [v.strip() for v in values if isinstance(v, str) and v.strip()]

    @field_validator("industry_filter")
    @classmethod
    def _blank_industry_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip() or value.strip().lower() in ("null", "none"):
            return None
        return value.strip()

    @classmethod
    def fallback(cls, query: str) -> "SearchDirective":
        """Directive used when the language model gives nothing usable: search the raw query."""
        return cls(guidance="", search_keywords=[query], from_fallback=True)

    def to_criteria(self, limit: int = SEARCH_PAGE_SIZE) -> SearchCriteria:
        return SearchCriteria(
            keywords=list(self.search_keywords),
            resource_types=list(self.relevant_resource_types),
            industry=self.industry_filter,
            limit=limit,
        )


class SearchStatus(str, Enum):
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    PROCESSING = "processing"
    VERIFYING = "verifying"
    MATCHING = "matching"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SearchStatus.COMPLETED, SearchStatus.ERROR)


class SearchResultPayload(BaseModel):
    """Body of the terminal `completed` event."""
    guidance: str = ""
    resources: List[ResourceOut] = Field(default_factory=list)
    query: str
    total_results: int = Field(alias="totalResults")
    preview_limited: bool = Field(default=False, alias="previewLimited")

    model_config = ConfigDict(populate_by_name=True)


class StageEvent(BaseModel):
    """One record of the search event stream."""
    status: SearchStatus
    message: Optional[str] = None
    result: Optional[SearchResultPayload] = None

    @classmethod
    def progress(cls, status: SearchStatus, message: str) -> "StageEvent":
        return cls(status=status, message=message)

    @classmethod
    def completed(cls, result: SearchResultPayload) -> "StageEvent":
        return cls(status=SearchStatus.COMPLETED, result=result)

    @classmethod
    def error(cls, message: str) -> "StageEvent":
        return cls(status=SearchStatus.ERROR, message=message)

    def to_wire(self) -> Dict[str, Any]:
        # Only the envelope drops empty keys; resource fields stay explicit nulls.
        data = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class Viewer:
    """Who is searching, as told by the identity collaborator."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    plan: str = "free"

    @property
    def is_identified(self) -> bool:
        return self.user_id is not None


@dataclass
class SearchLogEntry:
    """Analytics record written after a completed search."""
    query: str
    results_count: int
    search_type: str = "career"
    user_id: Optional[str] = None
    used_fallback: bool = False
    timings: Dict[str, float] = field(default_factory=dict)
