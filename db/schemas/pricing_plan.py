from typing import List

from pydantic import BaseModel, ConfigDict


class PricingPlanBase(BaseModel):
    name: str
    price: float = 0
    period: str = "month"
    description: str = ""
    stripe_price_id: str = ""
    access_level: str = "basic"
    max_saved_resources: int = 0
    max_ai_searches: int = 0
    features: List[str] = []
    popular: bool = False


class PricingPlanCreate(PricingPlanBase):
    id: str


class PricingPlanUpdate(BaseModel):
    name: str | None = None
    price: float | None = None
    period: str | None = None
    description: str | None = None
    stripe_price_id: str | None = None
    access_level: str | None = None
    max_saved_resources: int | None = None
    max_ai_searches: int | None = None
    features: List[str] | None = None
    popular: bool | None = None


class PricingPlanOut(PricingPlanBase):
    id: str

    model_config = ConfigDict(from_attributes=True)
