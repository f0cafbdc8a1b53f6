from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from config.logging_config import logger
from db.core.database import AsyncSessionLocal
from db.crud import crud_registry
from db.schemas.query import SearchQueryCreate
from db.schemas.query_timing import QueryTimingCreate
from search.models import SearchLogEntry


class SearchQueryLogger:
    """
    Appends one `search_queries` row (plus its stage timings) per completed search.

    Best effort: a failed write is logged and dropped.
    """

    def __init__(self, session_factory: Callable = AsyncSessionLocal):
        self.session_factory = session_factory

    async def __call__(self, entry: SearchLogEntry) -> None:
        try:
            async with self.session_factory() as db:
                timing_id = None
                if entry.timings:
                    timing = await crud_registry["query_timing"].acreate(db, QueryTimingCreate(
                        time_context=entry.timings.get("context"),
                        time_oracle=entry.timings.get("oracle"),
                        time_store=entry.timings.get("store"),
                        time_total=entry.timings.get("total"),
                    ))
                    timing_id = timing.id

                await crud_registry["search_query"].acreate(db, SearchQueryCreate(
                    user_id=entry.user_id,
                    query_timing_id=timing_id,
                    query=entry.query,
                    search_type=entry.search_type,
                    results_count=entry.results_count,
                    used_fallback=entry.used_fallback,
                ))
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Failed to log search query '{entry.query[:50]}': {e}")
