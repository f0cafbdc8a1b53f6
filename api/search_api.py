"""
API Layer for the career resource search service.
Exposes the streamed career/contact searches and the pricing administration endpoints.
"""
import calendar
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_orchestrator, get_policy, get_viewer, require_admin, require_identified_viewer
from cache.redis_cache_helper import DirectiveCache
from config.config_loader import load_pricing_config
from config.logging_config import logger
from config.settings import API_ALLOWED_ORIGINS, DIRECTIVE_CACHE_ENABLED, LLM_MODEL_ORACLE
from db.core.database import AsyncSessionLocal, get_async_db, init_async_db
from db.crud import crud_registry
from db.schemas.pricing_plan import PricingPlanOut, PricingPlanUpdate
from db.schemas.user import SubscriptionUpdate, UserOut
from llm.config import LLMConfig
from llm.query_oracle import QueryUnderstandingOracle
from search.access_policy import AccessPolicy
from search.analytics import SearchQueryLogger
from search.contact_directory import contact_directory_store
from search.exceptions import InvalidQueryError, PolicyConfigError
from search.models import Viewer
from search.orchestrator import SearchOrchestrator
from search.pricing_repository import load_policy_config, seed_pricing_plans, update_pricing_plan
from search.resource_store import SqlResourceStore
from search.viewer_context import ViewerContextLoader

# ---------------------------
# Request / Response Schemas
# ---------------------------

class SearchRequest(BaseModel):
    query: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    services: dict


class SubscriptionResponse(BaseModel):
    success: bool
    user: UserOut
    message: str


SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
CACHE_UNAVAILABLE = "Directive cache unavailable"


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the last day of a shorter month."""
    year, month = (moment.year + 1, 1) if moment.month == 12 else (moment.year, moment.month + 1)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# ---------------------------
# App Initialization
# ---------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing Career Search API...")
    try:
        await init_async_db()
        defaults = load_pricing_config()
        async with AsyncSessionLocal() as db:
            await seed_pricing_plans(db, defaults)
            policy_config = await load_policy_config(db, defaults)

        cache = DirectiveCache() if DIRECTIVE_CACHE_ENABLED else None
        oracle = QueryUnderstandingOracle.from_model_key(LLM_MODEL_ORACLE, cache=cache)
        oracle.setup()

        # Print recommendations (nice to have)
        LLMConfig.print_recommendations()
    except Exception as e:
        logger.error(f"Failed to initialize Career Search API: {e}")
        raise

    context_loader = ViewerContextLoader()
    policy = AccessPolicy(policy_config)
    app.state.default_policy_config = defaults
    app.state.policy = policy
    app.state.cache = cache
    app.state.context_loader = context_loader
    app.state.resource_store = SqlResourceStore()
    app.state.orchestrator = SearchOrchestrator(
        oracle=oracle,
        store=app.state.resource_store,
        policy=policy,
        contact_store=contact_directory_store(),
        context_loader=context_loader,
        search_logger=SearchQueryLogger(),
    )
    logger.info("✅ Career Search API ready")

    yield

    await app.state.orchestrator.drain_background_tasks()
    await oracle.aclose()
    if cache is not None:
        await cache.aclose()
    logger.info("👋 Career Search API stopped")


app = FastAPI(title="Career Search API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=API_ALLOWED_ORIGINS,      # allows requests from these origins
    allow_credentials=True,
    allow_methods=["*"],        # allows GET, POST, OPTIONS, etc.
    allow_headers=["*"],        # allows all headers
)


def install_policy(app: FastAPI, policy: AccessPolicy):
    """Swap the active policy everywhere it is consulted."""
    app.state.policy = policy
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        orchestrator.policy = policy


# ---------------------------
# Endpoints
# ---------------------------

@app.get("/", tags=["General"])
def root():
    """Root endpoint"""
    return {
        "message": "Career Search API",
        "version": "1.0.0"
    }


@app.get("/health", response_model=HealthResponse, tags=["General"])
async def health_check(request: Request):
    """Health check endpoint for Docker and Kubernetes"""
    services_status = {}
    overall_status = "healthy"

    store = getattr(request.app.state, "resource_store", None)
    if store is not None and await store.health_check():
        services_status["database"] = "healthy"
    else:
        services_status["database"] = "unhealthy"
        overall_status = "unhealthy"

    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        services_status["redis"] = "disabled"
    elif await cache.health_check():
        services_status["redis"] = "healthy"
    else:
        # Searches still work without the directive cache.
        services_status["redis"] = "unhealthy"
        if overall_status == "healthy":
            overall_status = "degraded"

    return HealthResponse(status=overall_status, services=services_status)


@app.post("/v1/search", tags=["Search"])
async def career_search(body: SearchRequest, viewer: Viewer = Depends(get_viewer),
                        orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    """Streamed AI career search (text/event-stream)."""
    try:
        events = orchestrator.career_search(body.query, viewer)
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=e.user_message)
    return StreamingResponse(orchestrator.sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/v1/contact-search", tags=["Search"])
async def contact_search(body: SearchRequest, viewer: Viewer = Depends(require_identified_viewer),
                         orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    """Streamed contact directory search (text/event-stream). Requires a signed-in viewer."""
    try:
        events = orchestrator.contact_search(body.query, viewer)
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=e.user_message)
    return StreamingResponse(orchestrator.sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.get("/v1/pricing/plans", response_model=List[PricingPlanOut], tags=["Pricing"])
async def get_pricing_plans(policy: AccessPolicy = Depends(get_policy)):
    return [PricingPlanOut(**plan.to_dict()) for plan in policy.config.plans]


@app.put("/v1/admin/pricing/plans/{plan_id}", response_model=PricingPlanOut, tags=["Admin"])
async def admin_update_pricing_plan(plan_id: str, update: PricingPlanUpdate, request: Request,
                                    admin: Viewer = Depends(require_admin),
                                    db: AsyncSession = Depends(get_async_db)):
    try:
        record = await update_pricing_plan(db, plan_id, update)
    except PolicyConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if record is None:
        raise HTTPException(status_code=404, detail="Pricing plan not found")

    defaults = getattr(request.app.state, "default_policy_config", None) or request.app.state.policy.config
    install_policy(request.app, AccessPolicy(await load_policy_config(db, defaults)))
    logger.info(f"🔁 Access policy reloaded after {admin.email} updated plan '{plan_id}'")
    return PricingPlanOut.model_validate(record)


@app.put("/v1/admin/users/{user_id}/subscription", response_model=SubscriptionResponse, tags=["Admin"])
async def admin_update_subscription(user_id: str, update: SubscriptionUpdate,
                                    admin: Viewer = Depends(require_admin),
                                    policy: AccessPolicy = Depends(get_policy),
                                    db: AsyncSession = Depends(get_async_db)):
    if policy.config.get_plan(update.tier) is None:
        raise HTTPException(status_code=400, detail=f"Unknown subscription tier '{update.tier}'")

    crud = crud_registry["user"]
    user = await crud.aget(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    expires = None
    if update.tier == "premium":
        expires = add_one_month(datetime.now(timezone.utc))

    user = await crud.aupdate(db, user, {"subscription_tier": update.tier, "subscription_expires": expires})
    logger.info(f"👤 {admin.email} set subscription of {user_id} to '{update.tier}'"
                f"{' (test mode)' if update.test_mode else ''}")
    return SubscriptionResponse(
        success=True,
        user=UserOut.model_validate(user),
        message=f"User subscription updated to {update.tier}{' (test mode)' if update.test_mode else ''}",
    )


@app.get("/v1/llm/models", tags=["LLM"])
def get_available_models():
    return LLMConfig.AVAILABLE_MODELS


@app.get("/v1/admin/cache/stats", tags=["Admin"])
async def admin_cache_stats(request: Request, admin: Viewer = Depends(require_admin)):
    cache: Optional[DirectiveCache] = request.app.state.cache
    if cache is None:
        return {"enabled": False}
    stats = await cache.get_cache_stats()
    if stats is None:
        raise HTTPException(status_code=503, detail=CACHE_UNAVAILABLE)
    return {"enabled": True, **stats}


@app.delete("/v1/admin/cache", tags=["Admin"])
async def admin_clear_cache(request: Request, admin: Viewer = Depends(require_admin)):
    cache: Optional[DirectiveCache] = request.app.state.cache
    if cache is None:
        return {"enabled": False}
    deleted = await cache.clear_all_cache()
    if deleted is None:
        raise HTTPException(status_code=503, detail=CACHE_UNAVAILABLE)
    logger.info(f"🧹 {admin.email} flushed the directive cache")
    return {"enabled": True, "deleted": deleted}
