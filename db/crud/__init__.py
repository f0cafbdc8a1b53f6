from db.models import resource, user, query, query_timing, pricing_plan
from db.schemas import resource as resource_schema
from db.schemas import user as user_schema
from db.schemas import query as query_schema
from db.schemas import query_timing as query_timing_schema
from db.schemas import pricing_plan as pricing_plan_schema
from db.crud.base import CRUDBase

crud_registry = {
    "resource": CRUDBase[resource.Resource, resource_schema.ResourceCreate, resource_schema.ResourceUpdate](resource.Resource),
    "user": CRUDBase[user.User, user_schema.UserCreate, user_schema.UserUpdate](user.User, unique_fields=["email"]),
    "search_query": CRUDBase[query.SearchQuery, query_schema.SearchQueryCreate, None](query.SearchQuery),
    "query_timing": CRUDBase[query_timing.QueryTiming, query_timing_schema.QueryTimingCreate, None](query_timing.QueryTiming),
    "pricing_plan": CRUDBase[pricing_plan.PricingPlanRecord, pricing_plan_schema.PricingPlanCreate, pricing_plan_schema.PricingPlanUpdate](pricing_plan.PricingPlanRecord, unique_fields=["id"]),
}
