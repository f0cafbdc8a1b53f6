"""
Subscription-tier access policy.

Ranks access tiers, resolves a viewer's subscription plan to a tier and
redacts resource payloads for viewers without unlimited access. Every code
path that hands resource data to a viewer goes through AccessPolicy.redact.
"""
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

from config.settings import DESCRIPTION_BUDGET, PREVIEW_LIMIT
from search.exceptions import PolicyConfigError

CONTACT_FIELDS = ("website", "phone", "email", "contact_email", "address")
TRUNCATION_MARKER = "..."


class AccessTier(str, Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    UNLIMITED = "unlimited"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "AccessTier":
        """Parse a tier name; anything unknown is the lowest tier."""
        if isinstance(value, AccessTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.BASIC


_TIER_RANKS = {AccessTier.BASIC: 0, AccessTier.PREMIUM: 1, AccessTier.UNLIMITED: 2}


@dataclass(frozen=True)
class PricingPlan:
    """A subscription plan and the access level it grants."""
    id: str
    name: str
    price: float
    period: str
    access_level: AccessTier
    description: str = ""
    stripe_price_id: str = ""
    max_saved_resources: int = 0
    max_ai_searches: int = 0
    features: Tuple[str, ...] = ()
    popular: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingPlan":
        missing = [key for key in ("id", "name", "access_level") if not data.get(key)]
        if missing:
            raise PolicyConfigError(f"Pricing plan is missing required fields: {', '.join(missing)}")

        access_level = str(data["access_level"]).strip().lower()
        if access_level not in AccessTier._value2member_map_:
            raise PolicyConfigError(
                f"Pricing plan '{data['id']}' has unknown access level '{data['access_level']}'")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            price=float(data.get("price") or 0),
            period=str(data.get("period") or ""),
            access_level=AccessTier(access_level),
            description=str(data.get("description") or ""),
            stripe_price_id=str(data.get("stripe_price_id") or ""),
            max_saved_resources=int(data.get("max_saved_resources") or 0),
            max_ai_searches=int(data.get("max_ai_searches") or 0),
            features=tuple(data.get("features") or ()),
            popular=bool(data.get("popular", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["access_level"] = self.access_level.value
        data["features"] = list(self.features)
        return data

    def formatted_price(self) -> str:
        if self.price == 0:
            return "Free"
        return f"${self.price:.2f}"


@dataclass(frozen=True)
class PolicyConfig:
    """
    Immutable snapshot of the pricing configuration.

    Built once from persistent storage at startup and rebuilt whenever an
    admin changes a plan. Passed explicitly to AccessPolicy.
    """
    plans: Tuple[PricingPlan, ...] = field(default_factory=tuple)
    preview_limit: int = PREVIEW_LIMIT
    description_budget: int = DESCRIPTION_BUDGET

    def __post_init__(self):
        if self.preview_limit < 0:
            raise PolicyConfigError("preview_limit must be >= 0")
        if self.description_budget <= len(TRUNCATION_MARKER):
            raise PolicyConfigError(
                f"description_budget must be larger than {len(TRUNCATION_MARKER)} characters")
        ids = [plan.id for plan in self.plans]
        if len(ids) != len(set(ids)):
            raise PolicyConfigError(f"Duplicate pricing plan ids: {ids}")

    def get_plan(self, plan_id: Optional[str]) -> Optional[PricingPlan]:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        return None


Item = Union[Dict[str, Any], BaseModel, Any]


class AccessPolicy:
    """Pure access checks and redaction against a PolicyConfig. No I/O."""

    def __init__(self, config: PolicyConfig):
        self.config = config

    def resolve_tier(self, viewer_tier: Union[AccessTier, str, None]) -> AccessTier:
        """
        Resolve what a viewer is entitled to.

        Accepts an AccessTier, a subscription plan id ('free', 'premium', ...)
        or a tier name. Plan ids take precedence over tier names; a missing or
        unknown value is the lowest tier.
        """
        if isinstance(viewer_tier, AccessTier):
            return viewer_tier
        if viewer_tier is None or not str(viewer_tier).strip():
            viewer_tier = "free"

        plan = self.config.get_plan(str(viewer_tier).strip())
        if plan is not None:
            return plan.access_level
        return AccessTier.parse(viewer_tier)

    def tier_for_plan(self, plan_id: Optional[str]) -> AccessTier:
        plan = self.config.get_plan(plan_id or "free")
        return plan.access_level if plan else AccessTier.BASIC

    def has_access(self, viewer_tier: Union[AccessTier, str, None],
                   required_level: Union[AccessTier, str]) -> bool:
        """True iff the viewer's tier ranks at or above the required level."""
        tier = self.resolve_tier(viewer_tier)
        if isinstance(required_level, AccessTier):
            required = required_level
        elif str(required_level).strip().lower() in AccessTier._value2member_map_:
            required = AccessTier(str(required_level).strip().lower())
        else:
            # An unknown requirement is treated as the strictest one.
            required = AccessTier.UNLIMITED
        return tier.rank >= required.rank

    def truncate_description(self, text: Optional[str]) -> Optional[str]:
        budget = self.config.description_budget
        if text is None or len(text) <= budget:
            return text
        return text[:budget - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER

    def redact(self, items: Iterable[Item], viewer_tier: Union[AccessTier, str, None],
               preview_limit: Optional[int] = None) -> List[Item]:
        """
        Project resources for a viewer.

        Viewers with unlimited access get the items unchanged. Everybody else
        gets at most `preview_limit` items with contact fields nulled and the
        description cut to the configured budget (marker included).

        Input items are never mutated; redacted items are copies.
        """
        items = list(items)
        if self.has_access(viewer_tier, AccessTier.UNLIMITED):
            return items

        limit = self.config.preview_limit if preview_limit is None else preview_limit
        return [self._redact_item(item) for item in items[:limit]]

    def _redact_item(self, item: Item) -> Item:
        if isinstance(item, BaseModel):
            update = {name: None for name in CONTACT_FIELDS if name in type(item).model_fields}
            update["description"] = self.truncate_description(getattr(item, "description", None))
            return item.model_copy(update=update)

        if dataclasses.is_dataclass(item) and not isinstance(item, type):
            names = {f.name for f in dataclasses.fields(item)}
            update = {name: None for name in CONTACT_FIELDS if name in names}
            if "description" in names:
                update["description"] = self.truncate_description(item.description)
            return dataclasses.replace(item, **update)

        if isinstance(item, dict):
            redacted = dict(item)
            for name in CONTACT_FIELDS:
                redacted[name] = None
            if "description" in redacted:
                redacted["description"] = self.truncate_description(redacted["description"])
            return redacted

        raise TypeError(f"Cannot redact item of type {type(item).__name__}")
