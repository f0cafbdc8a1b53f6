"""
Resource catalog access.

Two interchangeable stores implement the same contract: the SQL store over
the `resources` table and an in-memory store (used for the contact directory
and in tests).
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Union

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from config.logging_config import logger
from db.core.database import AsyncSessionLocal
from db.models.resource import Resource, TAG_SEPARATOR
from db.schemas.resource import ResourceOut
from search.exceptions import ResourceStoreError
from search.models import SearchCriteria
from utils.timing import async_timed

_LIKE_ESCAPE = "\\"


def _like_pattern(keyword: str) -> str:
    escaped = (keyword.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
               .replace("%", _LIKE_ESCAPE + "%")
               .replace("_", _LIKE_ESCAPE + "_"))
    return f"%{escaped}%"


class ResourceStore(ABC):
    """Read access to the resource catalog."""

    @abstractmethod
    async def search(self, criteria: SearchCriteria) -> List[ResourceOut]:
        """
        Return active resources matching the criteria.

        A resource matches when any keyword is a case-insensitive substring of
        its title, description or tags, or when its type is one of the
        requested types. The industry filter, when given, must also match.
        Without keywords and types every active resource is eligible.

        Results are ordered national first, then newest first, then by
        insertion order, and capped at `criteria.limit`. No match is an empty
        list. Raises ResourceStoreError when the catalog is unreachable.
        """
        pass

    async def health_check(self) -> bool:
        return True


class SqlResourceStore(ResourceStore):
    """ResourceStore backed by the `resources` table through an async SQLAlchemy session."""

    def __init__(self, session_factory: Callable = AsyncSessionLocal):
        self.session_factory = session_factory

    @staticmethod
    def build_statement(criteria: SearchCriteria):
        stmt = select(Resource).where(Resource.is_active.is_(True))

        conditions = []
        for keyword in criteria.keywords:
            pattern = _like_pattern(keyword)
            conditions.append(Resource.title.ilike(pattern, escape=_LIKE_ESCAPE))
            conditions.append(Resource.description.ilike(pattern, escape=_LIKE_ESCAPE))
            conditions.append(Resource.tag_index.ilike(_like_pattern(keyword.lower()), escape=_LIKE_ESCAPE))

        if criteria.resource_types:
            types = [t.lower() for t in criteria.resource_types]
            conditions.append(func.lower(Resource.resource_type).in_(types))

        if conditions:
            stmt = stmt.where(or_(*conditions))
            # Industry only narrows a keyword/type search; on its own it is ignored.
            if criteria.industry:
                stmt = stmt.where(Resource.industry.ilike(_like_pattern(criteria.industry), escape=_LIKE_ESCAPE))

        return (stmt
                .order_by(Resource.is_national.desc(), Resource.created_at.desc(), Resource.id.asc())
                .limit(criteria.limit))

    @async_timed(label="resource_store.search")
    async def search(self, criteria: SearchCriteria) -> List[ResourceOut]:
        stmt = self.build_statement(criteria)
        try:
            async with self.session_factory() as db:
                res = await db.execute(stmt)
                rows = res.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"❌ Resource store query failed: {e}")
            raise ResourceStoreError("Resource catalog is unavailable") from e

        logger.info(f"📚 Resource store returned {len(rows)} resources "
                    f"(keywords={criteria.keywords}, types={criteria.resource_types}, industry={criteria.industry})")
        return [ResourceOut.model_validate(row) for row in rows]

    async def health_check(self) -> bool:
        try:
            async with self.session_factory() as db:
                await db.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"❌ Resource store health check failed: {e}")
            return False


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryResourceStore(ResourceStore):
    """ResourceStore over a fixed list of resources. Same matching and ordering rules as the SQL store."""

    def __init__(self, resources: Iterable[Union[ResourceOut, dict]] = ()):
        self.resources: List[ResourceOut] = [
            r if isinstance(r, ResourceOut) else ResourceOut.model_validate(r) for r in resources
        ]

    @staticmethod
    def _matches(resource: ResourceOut, criteria: SearchCriteria) -> bool:
        if not resource.is_active:
            return False

        if not criteria.has_disjunction:
            return True

        if criteria.industry:
            if not resource.industry or criteria.industry.lower() not in resource.industry.lower():
                return False

        title = resource.title.lower()
        description = (resource.description or "").lower()
        tag_index = TAG_SEPARATOR.join(tag.lower() for tag in resource.tags)
        for keyword in criteria.keywords:
            needle = keyword.lower()
            if needle in title or needle in description or needle in tag_index:
                return True

        types = {t.lower() for t in criteria.resource_types}
        return resource.resource_type.lower() in types

    @staticmethod
    def _created_at(resource: ResourceOut) -> datetime:
        created = resource.created_at or _EPOCH
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created

    async def search(self, criteria: SearchCriteria) -> List[ResourceOut]:
        matched = [(idx, r) for idx, r in enumerate(self.resources) if self._matches(r, criteria)]
        matched.sort(key=lambda pair: (
            not pair[1].is_national,
            -self._created_at(pair[1]).timestamp(),
            pair[0],
        ))
        return [r for _, r in matched[:criteria.limit]]
