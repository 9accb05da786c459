import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv


# ============================================================
# Environment bootstrap
# ============================================================
# Load variables from .env early.
# override=True allows local dev to intentionally shadow system envs.
load_dotenv(override=True)


# ============================================================
# Logging Configuration
# ============================================================
# LOG_LEVEL is expected to be something like: DEBUG, INFO, WARNING, ERROR
# Default to INFO if missing or invalid.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    """Tuning knobs fall back to their default when the env value is not an integer."""
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("%s is not a valid integer, using default %s", name, default)
        return default


# ============================================================
# Application Metadata
# ============================================================
# Network binding
MAIN_APP_HOST: str = os.getenv("MAIN_APP_HOST", "0.0.0.0")

# Port parsing should be strict: invalid values must fail fast
try:
    MAIN_APP_PORT: int = int(os.getenv("MAIN_APP_PORT", "8000"))
except ValueError:
    raise RuntimeError("MAIN_APP_PORT must be a valid integer")

# Descriptive metadata (used by FastAPI / OpenAPI)
MAIN_APP_TITLE: str = os.getenv("MAIN_APP_TITLE", "HCP Next Best Action API")
MAIN_APP_DESCRIPTION: str = os.getenv(
    "MAIN_APP_DESCRIPTION",
    "Compliance-aware Next Best Action recommendations for healthcare professionals",
)
MAIN_APP_VERSION: str = os.getenv("MAIN_APP_VERSION", "1.0.0")


# ============================================================
# CORS Configuration
# ============================================================
# ⚠️ SECURITY NOTE
# Using "*" with credentials=True is NOT allowed by browsers
# and should never be used in production.
# Replace "*" with explicit origins when deploying.
CORS_ALLOW_ORIGINS = [
    "*"  # e.g. "https://nba-dashboard.example.com"
]

CORS_ALLOW_CREDENTIALS: bool = True
CORS_ALLOW_METHODS = ["*"]
CORS_ALLOW_HEADERS = ["*"]


# ============================================================
# Next Best Action Engine Configuration
# ============================================================
class NBAConfigs:
    """
    Centralized configuration holder for the recommendation pipeline.

    Class attributes are read once at import time so business logic never
    calls os.getenv() directly. Tests override them with monkeypatch.setattr.
    """

    # --------------------------------------------------------
    # Model provider
    # --------------------------------------------------------
    MODEL_PROVIDER: str = os.getenv("NBA_MODEL_PROVIDER", "gemini").lower()
    # Expected values: "gemini", "openrouter"
    MODEL_TIMEOUT_SECONDS: int = _int_env("NBA_MODEL_TIMEOUT_SECONDS", 30)

    # --------------------------------------------------------
    # Concurrency
    # --------------------------------------------------------
    # Bounded to respect the model provider's rate limits
    BULK_MAX_WORKERS: int = _int_env("NBA_BULK_MAX_WORKERS", 4)
    CONTEXT_WORKERS: int = _int_env("NBA_CONTEXT_WORKERS", 6)

    # --------------------------------------------------------
    # Decision context limits
    # --------------------------------------------------------
    CONTACT_HISTORY_LIMIT: int = _int_env("NBA_CONTACT_HISTORY_LIMIT", 5)
    PRESCRIPTION_LIMIT: int = _int_env("NBA_PRESCRIPTION_LIMIT", 3)
    SIGNAL_MIN_RELEVANCE: int = _int_env("NBA_SIGNAL_MIN_RELEVANCE", 7)
    SIGNAL_LIMIT: int = _int_env("NBA_SIGNAL_LIMIT", 3)

    # --------------------------------------------------------
    # Fallback & dashboard
    # --------------------------------------------------------
    RECENT_CONTACT_DAYS: int = _int_env("NBA_RECENT_CONTACT_DAYS", 30)
    DASHBOARD_TOP_N: int = _int_env("NBA_DASHBOARD_TOP_N", 5)

    # Optional JSON file used to seed the in-memory collaborator sources
    SEED_FILE: Optional[str] = os.getenv("NBA_SEED_FILE")

    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Snapshot stored in every decision context."""
        return {
            "model_provider": cls.MODEL_PROVIDER,
            "model_timeout_seconds": cls.MODEL_TIMEOUT_SECONDS,
            "contact_history_limit": cls.CONTACT_HISTORY_LIMIT,
            "prescription_limit": cls.PRESCRIPTION_LIMIT,
            "signal_min_relevance": cls.SIGNAL_MIN_RELEVANCE,
            "signal_limit": cls.SIGNAL_LIMIT,
            "recent_contact_days": cls.RECENT_CONTACT_DAYS,
        }


# ============================================================
# Gemini LLM Configuration
# ============================================================
# Model ID is configurable to allow rapid switching without redeploy.
# Default chosen for low latency and cost.
GEMINI_MODEL_ID: str = os.getenv("GEMINI_MODEL_ID", "gemini-2.5-flash-lite")

# API key is intentionally not defaulted.
# Missing key should fail at runtime, not silently degrade.
GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")


# ============================================================
# OpenRouter LLM Configuration
# ============================================================
OPENROUTER_API_KEY: Optional[str] = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_MODEL_ID: str = os.getenv("OPENROUTER_MODEL_ID", "anthropic/claude-3.5-sonnet")


# ============================================================
# Celery / Redis Configuration
# ============================================================
CELERY_REDIS_URL: str = os.getenv("CELERY_REDIS_URL", "redis://localhost:6379/0")

# Standard 5-field cron expression for the nightly optimization report
CELERY_OPTIMIZE_CRON: str = os.getenv("CELERY_OPTIMIZE_CRON", "0 2 * * *")
