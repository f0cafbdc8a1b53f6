import os

from config.secrets_manager import get_secret


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# -------------------------
# 1. Database
# -------------------------
POSTGRES_USER = get_secret("POSTGRES_USER", "career")
POSTGRES_PASSWORD = get_secret("POSTGRES_PASSWORD", "career")
POSTGRES_HOST = get_secret("POSTGRES_HOST", "localhost")
POSTGRES_PORT = get_secret("POSTGRES_PORT", "5432")
POSTGRES_DB = get_secret("POSTGRES_DB", "career_search")

DATABASE_URL_SYNC = get_secret(
    "DATABASE_URL_SYNC",
    f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)
DATABASE_URL_ASYNC = get_secret(
    "DATABASE_URL_ASYNC",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# -------------------------
# 2. Cache
# -------------------------
REDIS_HOST = get_secret("REDIS_HOST", "localhost")
REDIS_PORT = int(get_secret("REDIS_PORT", "6379"))
REDIS_CACHE_TTL_DAYS = min(int(get_secret("REDIS_CACHE_TTL_DAYS", "5")), 10)
REDIS_SOCKET_TIMEOUT_SECONDS = float(get_secret("REDIS_SOCKET_TIMEOUT_SECONDS", "2"))
DIRECTIVE_CACHE_ENABLED = _as_bool(get_secret("DIRECTIVE_CACHE_ENABLED", "true"))

# -------------------------
# 3. Identity
# -------------------------
JWT_SECRET_KEY = get_secret("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = get_secret("JWT_ALGORITHM", "HS256")
ADMIN_EMAILS = [
    email.strip().lower()
    for email in get_secret("ADMIN_EMAILS", "admin@example.com").split(",")
    if email.strip()
]

# -------------------------
# 4. Query understanding (LLM)
# -------------------------
LLM_MODEL_ORACLE = get_secret("LLM_MODEL_ORACLE", "gpt-4.1-mini")
LLM_ORACLE_TIMEOUT_SECONDS = float(get_secret("LLM_ORACLE_TIMEOUT_SECONDS", "10"))
LLM_MAX_TOKEN_ORACLE = 1000
LLM_TEMP_ORACLE = 0.2

OPENAI_API_BASE = get_secret("OPENAI_API_BASE", "https://apps.abacus.ai/v1")
OLLAMA_BASE_URL = get_secret("OLLAMA_BASE_URL", "http://localhost:11434")

# -------------------------
# 5. Search & access policy
# -------------------------
SEARCH_PAGE_SIZE = 20
PREVIEW_LIMIT = int(get_secret("PREVIEW_LIMIT", "3"))
DESCRIPTION_BUDGET = int(get_secret("DESCRIPTION_BUDGET", "200"))
HEARTBEAT_MIN_INTERVAL = 0.25  # seconds between two "processing" events
CONTACT_MIN_TERM_LENGTH = 3

PATH_PRICING_CONFIG = get_secret(
    "PATH_PRICING_CONFIG", os.path.join(os.path.dirname(__file__), "pricing_config.yml"))

# -------------------------
# 6. API
# -------------------------
API_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in get_secret(
        "API_ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]
