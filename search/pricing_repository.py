from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.logging_config import logger
from db.crud import crud_registry
from db.models.pricing_plan import PricingPlanRecord
from db.schemas.pricing_plan import PricingPlanCreate, PricingPlanOut, PricingPlanUpdate
from search.access_policy import PolicyConfig, PricingPlan


async def seed_pricing_plans(db: AsyncSession, defaults: PolicyConfig) -> int:
    """Insert the default plans when the table is empty. Returns the number of rows written."""
    count = (await db.execute(select(func.count()).select_from(PricingPlanRecord))).scalar_one()
    if count:
        return 0

    for plan in defaults.plans:
        await crud_registry["pricing_plan"].acreate(db, PricingPlanCreate(**plan.to_dict()))
    logger.info(f"🌱 Seeded {len(defaults.plans)} pricing plans")
    return len(defaults.plans)


async def list_pricing_plans(db: AsyncSession) -> List[PricingPlanRecord]:
    res = await db.execute(select(PricingPlanRecord).order_by(PricingPlanRecord.price.asc(), PricingPlanRecord.id.asc()))
    return list(res.scalars().all())


async def load_policy_config(db: AsyncSession, defaults: PolicyConfig) -> PolicyConfig:
    """
    Build the PolicyConfig from the persisted plans.

    Preview limit and description budget come from `defaults`; when the
    table holds no plans the default plans are used as-is.
    """
    records = await list_pricing_plans(db)
    if not records:
        logger.warning("⚠️ No pricing plans stored, using the default plan set")
        return defaults

    plans = tuple(PricingPlan.from_dict(PricingPlanOut.model_validate(r).model_dump()) for r in records)
    return PolicyConfig(plans=plans, preview_limit=defaults.preview_limit,
                        description_budget=defaults.description_budget)


async def update_pricing_plan(db: AsyncSession, plan_id: str,
                              update: PricingPlanUpdate) -> Optional[PricingPlanRecord]:
    """
    Apply a partial update to one plan.

    Returns None when the plan does not exist.

    Raises:
        PolicyConfigError: If the resulting plan would be invalid (nothing is written).
    """
    crud = crud_registry["pricing_plan"]
    record = await crud.aget(db, plan_id)
    if record is None:
        return None

    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    merged = {**PricingPlanOut.model_validate(record).model_dump(), **changes}
    PricingPlan.from_dict(merged)

    record = await crud.aupdate(db, record, changes)
    logger.info(f"💾 Pricing plan '{plan_id}' updated: {sorted(changes)}")
    return record
