import os

# Settings are read at import time; point them at throwaway values before any project import.
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite://")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite://")
os.environ.setdefault("DIRECTIVE_CACHE_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.config_loader import load_pricing_config
from db.core.database import init_async_db
from db.models import pricing_plan, query, query_timing, resource, user
from search.access_policy import AccessPolicy
from search.models import SearchDirective
from search.resource_store import InMemoryResourceStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

LONG_DESCRIPTION = ("Official business registration guide for sellers. " * 10).strip()


def make_resource(id, title, description="", resource_type="Job Search Website", tags=None,
                  is_national=True, is_active=True, days=0, **extra):
    """Catalog entry as a dict, created `days` after BASE_TIME."""
    data = {
        "id": id,
        "title": title,
        "description": description,
        "website": f"https://example.com/{id}",
        "phone": "1-800-555-0100",
        "email": f"contact{id}@example.com",
        "contact_email": f"info{id}@example.com",
        "address": f"{id} Main Street, Seattle, WA 98109",
        "resource_type": resource_type,
        "industry": None,
        "tags": tags or [],
        "is_national": is_national,
        "is_active": is_active,
        "created_at": BASE_TIME + timedelta(days=days),
    }
    data.update(extra)
    return data


@pytest.fixture
def sample_resources() -> List[dict]:
    return [
        make_resource(1, "Amazon Seller Registration", LONG_DESCRIPTION,
                      resource_type="SBA & Business Development", tags=["amazon", "business address"], days=1),
        make_resource(2, "Amazon Jobs", "Careers at Amazon.", tags=["amazon", "technology"], days=2),
        make_resource(3, "AWS Certification", "Cloud certification by Amazon Web Services.",
                      resource_type="Certification Program", tags=["Amazon", "cloud"], days=3),
        make_resource(4, "Amazon Business Guide", "How to set up an Amazon Business account.",
                      resource_type="SBA & Business Development", tags=["amazon"], days=4),
        make_resource(5, "Local Amazon Warehouse Jobs", "Warehouse openings near you.",
                      tags=["amazon", "warehouse"], is_national=False, days=5),
        make_resource(6, "Retired Amazon Listing", "No longer maintained.", tags=["amazon"],
                      is_active=False, days=6),
        make_resource(7, "Coursera", "Online learning platform.", resource_type="Learning Platform",
                      tags=["online learning"], industry="Education", days=7),
    ]


@pytest.fixture
def memory_store(sample_resources) -> InMemoryResourceStore:
    return InMemoryResourceStore(sample_resources)


@pytest.fixture
def pricing_config():
    return load_pricing_config()


@pytest.fixture
def policy(pricing_config) -> AccessPolicy:
    return AccessPolicy(pricing_config)


@pytest.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_async_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


class FakeOracle:
    """Stands in for QueryUnderstandingOracle with a canned directive."""

    def __init__(self, directive: Optional[SearchDirective] = None, chunks: Optional[List[str]] = None,
                 chunk_delay: float = 0.0, suggestions: Optional[List[str]] = None, error: Exception = None):
        self.directive = directive or SearchDirective(guidance="Try these resources.", search_keywords=["amazon"])
        self.chunks = chunks or []
        self.chunk_delay = chunk_delay
        self.suggestions = suggestions or []
        self.error = error
        self.calls = []
        self.suggestion_calls = []

    async def understand(self, query, context=None, on_chunk=None):
        self.calls.append((query, context))
        for chunk in self.chunks:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            if on_chunk is not None:
                on_chunk(chunk)
        if self.error is not None:
            raise self.error
        return self.directive

    async def suggest_alternatives(self, query, limit=3):
        self.suggestion_calls.append(query)
        return self.suggestions[:limit]


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def oracle_factory():
    return FakeOracle
