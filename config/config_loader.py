import os, yaml, re

from config.logging_config import logger
from config.settings import PATH_PRICING_CONFIG
from search.access_policy import PolicyConfig, PricingPlan
from search.exceptions import PolicyConfigError

_ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-(.*))?\}")


def _expand_env(value: str, context: str) -> str:
    """Expand ${VAR} and ${VAR:-default} placeholders."""
    match = _ENV_PATTERN.fullmatch(value.strip())
    if not match:
        return value

    env_var, default = match.group(1), match.group(2)
    env_value = os.getenv(env_var)
    if env_value is None:
        if default is None:
            raise PolicyConfigError(f"❌ Missing environment variable: {env_var} (used in {context})")
        return default
    return env_value


def load_pricing_config(config_path: str = None) -> PolicyConfig:
    """
    Load the default pricing plans and redaction limits from YAML.

    Environment variables in the form ${VAR} or ${VAR:-default} are expanded.
    The result seeds the pricing_plans table; at runtime the table is the
    source of truth.
    """
    config_path = config_path or os.getenv("PRICING_CONFIG_PATH", PATH_PRICING_CONFIG)

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"❌ Pricing config not found at {config_path}")

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw or "plans" not in raw:
        raise PolicyConfigError("❌ Invalid config: missing top-level 'plans' key")

    plans = raw["plans"]
    if not isinstance(plans, list) or not plans:
        raise PolicyConfigError("❌ Invalid config: 'plans' must be a non-empty list")

    parsed = []
    for idx, plan in enumerate(plans, start=1):
        if not isinstance(plan, dict):
            raise PolicyConfigError(f"❌ Plan #{idx} must be a mapping")
        for key, val in plan.items():
            if isinstance(val, str):
                plan[key] = _expand_env(val, f"plan #{idx}.{key}")
        parsed.append(PricingPlan.from_dict(plan))

    config = PolicyConfig(
        plans=tuple(parsed),
        preview_limit=int(raw.get("preview_limit", PolicyConfig.preview_limit)),
        description_budget=int(raw.get("description_budget", PolicyConfig.description_budget)),
    )

    logger.info(f"✅ Loaded {len(parsed)} pricing plans from {config_path}:")
    for plan in parsed:
        logger.info(f"   • {plan.id} ({plan.access_level.value}, {plan.formatted_price()})")

    return config
