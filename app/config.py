"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Environment Variables:
    USE_LLM: Enable the Claude interpretation/extraction backends (default: False)
    ANTHROPIC_API_KEY: Anthropic API key
    SESSION_BACKEND: "memory" or "redis" (default: memory)
    REDIS_URL: Redis connection string (redis backend only)
    CALENDAR_ID: Google Calendar ID used for availability and bookings
    GOOGLE_SERVICE_ACCOUNT_JSON_B64: Base64-encoded service account JSON
    VERIFY_TOKEN / APP_SECRET: WhatsApp webhook handshake and signature
    WHATSAPP_TOKEN / PHONE_NUMBER_ID: WhatsApp Cloud API sending
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Environment
    app_name: str = "clinic-intake-agent"
    """Application name."""

    app_env: Literal["development", "staging", "production"] = "development"
    """Current application environment.

    Options:
    - development: Local development, verbose logging, debug enabled
    - staging: Pre-production testing environment
    - production: Live production environment, minimal logging
    """

    debug: bool = False
    """Enable debug mode.

    When True:
    - Debug-level logging (including patient free text)
    - Request duration logging
    - Detailed error messages in responses
    """

    host: str = "0.0.0.0"
    """Host to bind the application server."""

    port: int = 8000
    """Port to bind the application server."""

    # Clinic facts used by canned replies
    clinic_name: str = "GBC Gastro Bariatric Center"
    clinic_address: str = "Torre Plétora Urban Center (2º piso), Pachuca"
    clinic_phone: str = "771 733 0123"
    consultation_price: int = 1200
    consultation_minutes: int = 90
    sleeve_price: int = 70000
    bypass_price: int = 85000

    # Language model backends
    use_llm: bool = False
    """Enable Claude for interpretation, extraction and free-text replies.

    When False (or no API key is set) the agent runs fully deterministic.
    """

    anthropic_api_key: Optional[str] = None
    claude_model: str = "claude-3-5-haiku-20241022"
    claude_fallback_model: str = "claude-3-5-sonnet-20241022"

    fallback_reply: str = "Gracias por tu mensaje. ¿En qué puedo ayudarte?"
    """Reply used whenever the free-text generator cannot answer."""

    external_call_timeout_seconds: float = 15.0
    """Upper bound for any single call to an external collaborator.

    A timed-out call follows the same path as a failed one, so a hung
    backend cannot wedge a contact's session.
    """

    # Session storage
    session_backend: Literal["memory", "redis"] = "memory"
    """Where conversation sessions live.

    - memory: in-process map, lost on restart
    - redis: survives restarts, shared between workers
    """

    session_ttl_seconds: int = 86400
    """Idle sessions are evicted after this many seconds (0 disables)."""

    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL.

    Format: redis://host:port/db
    Only used when session_backend is "redis".
    """

    # Google Calendar
    calendar_id: Optional[str] = None
    google_service_account_json_b64: Optional[str] = None
    calendar_timezone: str = "America/Mexico_City"
    calendar_slot_minutes: int = 30
    calendar_work_start: str = "09:00"
    calendar_work_end: str = "18:00"
    calendar_lookahead_days: int = 14
    calendar_max_slots: int = 6
    """Maximum number of candidate slots offered to the patient."""

    # WhatsApp Cloud API
    verify_token: Optional[str] = None
    app_secret: Optional[str] = None
    """When set, POST /webhook requires a valid X-Hub-Signature-256."""

    whatsapp_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    graph_api_version: str = "v23.0"
    whatsapp_max_message_length: int = 4096

    # Admin
    admin_api_key: Optional[str] = None
    """When set, the /chat endpoints require it in the X-API-Key header."""

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",  # Load from .env file if it exists
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow CALENDAR_ID or calendar_id
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def llm_enabled(self) -> bool:
        """Check if the Claude backends can be used."""
        return self.use_llm and bool(self.anthropic_api_key)

    @property
    def calendar_configured(self) -> bool:
        """Check if Google Calendar credentials are present."""
        return bool(self.calendar_id and self.google_service_account_json_b64)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and reused
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from app.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.calendar_timezone)
        America/Mexico_City
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
