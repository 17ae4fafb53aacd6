"""
Configuration settings for the SnapAI site engine
"""
import os
import logging
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

# Configure basic logger for config module
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings"""

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API Keys
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    # Supabase (tables + realtime change feed)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_TIMEOUT_SECONDS: float = 15.0
    SUPABASE_HEARTBEAT_SECONDS: float = 25.0
    SUPABASE_RECONNECT_SECONDS: float = 5.0

    # Admin console gate (placeholder, not a security boundary)
    ADMIN_USERNAME: str = os.getenv("ADMIN_USERNAME", "snapadmin")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "0105")
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "snapai-session")

    # Site flags (waitlist gate), persisted between restarts
    SITE_FLAGS_PATH: str = os.getenv("SITE_FLAGS_PATH", "site_flags.json")

    # Chat Settings
    GEMINI_CHAT_MODEL: str = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.0-flash")
    CHAT_MAX_ATTEMPTS: int = 3
    CHAT_BACKOFF_SECONDS: float = 3.0
    CHAT_RATE_LIMIT: str = "10/minute"

    # Public form rate limits
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    WAITLIST_RATE_LIMIT: str = "20/minute"
    REQUEST_RATE_LIMIT: str = "10/minute"

    # Monitoring
    SENTRY_DSN: Optional[str] = os.getenv("SENTRY_DSN")
    SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE: float = float(
        os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")
    )

    # CORS - comma-separated list of allowed origins
    CORS_ORIGINS: str = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"
    )

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()


def validate_required_config():
    """Validate required configuration on startup"""
    errors = []

    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        errors.append("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")

    if not settings.GEMINI_API_KEY:
        errors.append("GEMINI_API_KEY must be configured for the chat assistant")

    if settings.ENVIRONMENT == "production" and settings.SESSION_SECRET == "snapai-session":
        errors.append("SESSION_SECRET must be changed in production")

    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        if settings.ENVIRONMENT == "production":
            raise ValueError(f"Missing required configuration: {', '.join(errors)}")

    return len(errors) == 0
