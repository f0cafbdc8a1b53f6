#!/usr/bin/env python3
import asyncio
import json
import os
import re
import sys
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError

# -------------------------------
# 1️⃣ Setup paths
# -------------------------------
# Add project root to sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, PROJECT_ROOT)

from config.config_loader import load_pricing_config
from config.logging_config import logger
from config.settings import POSTGRES_HOST, POSTGRES_PORT
from db.core.database import AsyncSessionLocal, engine, init_db
from db.crud import crud_registry
from db.models import pricing_plan, query, query_timing, resource, user
from db.schemas.resource import ResourceCreate
from search.pricing_repository import seed_pricing_plans

RESOURCES_PATH = os.path.join(PROJECT_ROOT, "data", "resources.json")
_STATE_ZIP = re.compile(r"([A-Z]{2})\s+(\d{5}(-\d{4})?)")

SAMPLE_INTERESTS = [
    "software engineering",
    "project management",
    "artificial intelligence",
    "small business development",
    "remote work opportunities",
]


def split_address(address):
    """Extract (city, state, zip) from 'street, city, ST 12345'. Unknown parts are None."""
    parts = [p.strip() for p in (address or "").split(",")]
    if len(parts) < 2:
        return None, None, None
    match = _STATE_ZIP.search(parts[-1])
    if not match:
        return None, None, None
    return parts[-2], match.group(1), match.group(2)


def to_resource(raw: dict) -> ResourceCreate:
    city, state, zip_code = split_address(raw.get("address"))
    return ResourceCreate(
        title=raw["title"],
        description=raw.get("description", ""),
        website=raw.get("website"),
        phone=raw.get("phone"),
        contact_email=raw.get("contactEmail"),
        address=raw.get("address"),
        city=city,
        state=state,
        zip_code=zip_code,
        resource_type=raw["resource_type"],
        industry=raw.get("industry"),
        tags=raw.get("tags", []),
        is_national=raw.get("isNational", True),
    )


# -------------------------------
# 2️⃣ Wait for the database to be ready
# -------------------------------
def wait_for_database():
    logger.info(f"🔗 Connecting to database at {POSTGRES_HOST}:{POSTGRES_PORT}...")
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))  # ✅ wrap with text()
            break
        except OperationalError:
            logger.info("⏳ Database not ready, waiting 1s...")
            time.sleep(1)
    logger.info("✅ Database is ready!")


# -------------------------------
# 3️⃣ Seed plans, catalog and a demo user
# -------------------------------
async def seed(resources_path: str = RESOURCES_PATH):
    async with AsyncSessionLocal() as db:
        await seed_pricing_plans(db, load_pricing_config())

        existing = (await db.execute(select(func.count()).select_from(resource.Resource))).scalar_one()
        if existing:
            logger.info(f"📚 Catalog already holds {existing} resources, skipping")
        else:
            with open(resources_path, "r") as f:
                raw_resources = json.load(f)
            logger.info(f"📚 Loading {len(raw_resources)} resources...")
            for raw in raw_resources:
                await crud_registry["resource"].acreate(db, to_resource(raw))

        demo = await db.get(user.User, "demo-user")
        if demo is None:
            db.add(user.User(
                id="demo-user",
                email="john@doe.com",
                name="John Doe",
                location="New York, NY",
                industry="Technology",
                experience_level="Mid-Level",
                subscription_tier="premium",
                subscription_expires=datetime.now(timezone.utc) + timedelta(days=365),
                interests=[user.UserInterest(interest=interest, priority=len(SAMPLE_INTERESTS) - i)
                           for i, interest in enumerate(SAMPLE_INTERESTS)],
            ))
            await db.commit()
            logger.info("✅ Created test user: john@doe.com")

    logger.info("✅ Database seeded successfully!")


if __name__ == "__main__":
    wait_for_database()
    init_db()
    asyncio.run(seed())
