"""
Configuration management for the Recipe Acquisition Pipeline.
Handles environment variables and application settings.
"""
import os
from typing import Dict, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


# Per-environment quota ceilings for the rolling-window limiter
RATE_LIMIT_CEILINGS: Dict[str, Dict[str, int]] = {
    "development": {
        "imports_per_hour": 3,
        "conversions_per_hour": 5,
        "daily_imports": 5,
        "daily_conversions": 10,
    },
    "staging": {
        "imports_per_hour": 10,
        "conversions_per_hour": 20,
        "daily_imports": 25,
        "daily_conversions": 50,
    },
    "production": {
        "imports_per_hour": 20,
        "conversions_per_hour": 40,
        "daily_imports": 50,
        "daily_conversions": 100,
    },
}


class Config:
    """Application configuration loaded from environment variables."""

    # Server settings
    APP_ENV: str = os.getenv("APP_ENV", "development").lower()
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json or console

    # Language model (optional - pipeline degrades to basic extraction without it)
    ANTHROPIC_API_KEY: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    AI_FALLBACK_ENABLED: bool = os.getenv("AI_FALLBACK_ENABLED", "true").lower() == "true"
    AI_MODEL: str = os.getenv("AI_MODEL", "claude-3-5-haiku-20241022")
    AI_TIMEOUT_SECONDS: float = _env_float("AI_TIMEOUT_SECONDS", "90")
    AI_MAX_TOKENS: int = int(os.getenv("AI_MAX_TOKENS", "4000"))

    # Page fetching
    FETCH_TIMEOUT_SECONDS: float = _env_float("FETCH_TIMEOUT_SECONDS", "15")
    FETCH_RETRIES: int = int(os.getenv("FETCH_RETRIES", "3"))
    FETCH_RETRY_DELAY_SECONDS: float = _env_float("FETCH_RETRY_DELAY_SECONDS", "2")
    FETCH_MIN_INTERVAL_SECONDS: float = _env_float("FETCH_MIN_INTERVAL_SECONDS", "1")

    # Image re-fetch and validation probes
    IMAGE_REFETCH_TIMEOUT_SECONDS: float = _env_float("IMAGE_REFETCH_TIMEOUT_SECONDS", "12")
    IMAGE_REFETCH_RETRIES: int = int(os.getenv("IMAGE_REFETCH_RETRIES", "2"))
    IMAGE_REFETCH_DELAY_SECONDS: float = _env_float("IMAGE_REFETCH_DELAY_SECONDS", "1.5")
    IMAGE_PROBE_TIMEOUT_SECONDS: float = _env_float("IMAGE_PROBE_TIMEOUT_SECONDS", "8")
    IMAGE_MIN_BYTES: int = int(os.getenv("IMAGE_MIN_BYTES", str(15 * 1024)))

    # Confidence thresholds (empirically tuned defaults)
    ACCEPT_CONFIDENCE_THRESHOLD: float = _env_float("ACCEPT_CONFIDENCE_THRESHOLD", "0.3")
    FAST_FALLBACK_THRESHOLD: float = _env_float("FAST_FALLBACK_THRESHOLD", "0.2")
    AGGRESSIVE_FALLBACK_THRESHOLD: float = _env_float("AGGRESSIVE_FALLBACK_THRESHOLD", "0.05")

    # Confidence weights
    WEIGHT_TITLE: float = _env_float("WEIGHT_TITLE", "0.15")
    WEIGHT_INGREDIENTS: float = _env_float("WEIGHT_INGREDIENTS", "0.30")
    WEIGHT_INSTRUCTIONS: float = _env_float("WEIGHT_INSTRUCTIONS", "0.30")
    WEIGHT_IMAGE: float = _env_float("WEIGHT_IMAGE", "0.05")
    WEIGHT_TIMING: float = _env_float("WEIGHT_TIMING", "0.05")
    FULL_INGREDIENT_COUNT: int = int(os.getenv("FULL_INGREDIENT_COUNT", "8"))
    FULL_INSTRUCTION_COUNT: int = int(os.getenv("FULL_INSTRUCTION_COUNT", "6"))
    METHOD_ADJUSTMENTS: Dict[str, float] = {
        "json-ld": _env_float("BONUS_JSON_LD", "0.10"),
        "site-specific": _env_float("BONUS_SITE_SPECIFIC", "0.05"),
        "microdata": _env_float("BONUS_MICRODATA", "0.0"),
        "css-selectors": _env_float("PENALTY_CSS_SELECTORS", "-0.10"),
    }
    SITE_SCRAPER_BONUS: float = _env_float("SITE_SCRAPER_BONUS", "0.05")

    # Recipe cache
    CACHE_TTL_DAYS: int = int(os.getenv("CACHE_TTL_DAYS", "30"))

    # Document store
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "memory")  # memory or mongo
    MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    MONGODB_DB: str = os.getenv("MONGODB_DB", "recipes")

    # Rate limiting
    IMPORT_RATE_LIMIT_ENABLED: bool = os.getenv("IMPORT_RATE_LIMIT_ENABLED", "false").lower() == "true"
    RATE_LIMIT_MAX_ATTEMPTS: int = int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "5"))

    @classmethod
    def is_ai_configured(cls) -> bool:
        """
        Check if the language-model fallback can be used.

        Requires BOTH:
        - ANTHROPIC_API_KEY
        - AI_FALLBACK_ENABLED
        """
        return bool(cls.ANTHROPIC_API_KEY and cls.AI_FALLBACK_ENABLED)

    @classmethod
    def get_rate_limit_ceilings(cls, environment: Optional[str] = None) -> Dict[str, int]:
        """Return quota ceilings for the given (or current) environment."""
        env = (environment or cls.APP_ENV).lower()
        if env in ("prod", "production"):
            env = "production"
        elif env not in RATE_LIMIT_CEILINGS:
            env = "development"
        return dict(RATE_LIMIT_CEILINGS[env])


config = Config()
