"""Central configuration settings for the application."""

import os
from dotenv import load_dotenv

# Load env vars from a local .env if present (dev convenience)
load_dotenv()

# Recommendation cache
RECOMMENDATION_CACHE_TTL_SECONDS = int(os.getenv("RECOMMENDATION_CACHE_TTL_SECONDS", "86400"))
SINGLE_FLIGHT_ENABLED = os.getenv("SINGLE_FLIGHT_ENABLED", "1") not in {"0", "false", "False"}

# Upstream fan-out and end-to-end deadline
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "4"))
PIPELINE_DEADLINE_SECONDS = float(os.getenv("PIPELINE_DEADLINE_SECONDS", "10"))

# Generative model settings
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
LLM_BACKOFF_BASE_SECONDS = float(os.getenv("LLM_BACKOFF_BASE_SECONDS", "1.0"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1000"))

# Upstream API endpoints
FMP_BASE_URL = os.getenv("FMP_BASE_URL", "https://financialmodelingprep.com")
NEWS_API_URL = os.getenv("NEWS_API_URL", "https://newsapi.ai/api/v1/article/getArticles")
# Optional: without it the news slot stays empty and prompts say so
NEWS_API_KEY = os.getenv("NEWS_API_KEY")

# Public web origin for CORS: the primary origin is the fallback when the
# request origin is not on the allow-list
PRIMARY_ORIGIN = os.getenv("PRIMARY_ORIGIN", "https://amldash.webflow.io")
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", PRIMARY_ORIGIN).split(",")
    if o.strip()
]
if PRIMARY_ORIGIN not in ALLOWED_ORIGINS:
    ALLOWED_ORIGINS.append(PRIMARY_ORIGIN)


def require_setting(name: str) -> str:
    """Return a required secret from the environment or fail fast."""
    value = os.getenv(name)
    if not value:
        from services.errors import ConfigurationError

        raise ConfigurationError(f"{name} is not configured")
    return value
