"""
Nivaran Escalation Configuration.

Pydantic Settings v2 — loads from .env, environment variables.

SECURITY: provider credentials are read from the environment only and are
never logged. Leaving a provider's credentials empty disables that provider;
its channel then falls through to the next provider in the chain.
"""

from functools import lru_cache
from typing import List

import structlog
from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nivaran.alerting.schemas import Contact

logger = structlog.get_logger(__name__)


DEFAULT_CONTACTS = [
    Contact(label="Primary Contact", phone_number="+15550100001", is_primary=True),
    Contact(label="Secondary Contact", phone_number="+15550100002", is_primary=False),
    Contact(label="Backup Contact", phone_number="+15550100003", is_primary=False),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "Nivaran Escalation"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8010, alias="API_PORT")

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./nivaran.db",
        alias="DATABASE_URL",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure SQLite URLs use the async driver."""
        if v.startswith("sqlite://"):
            v = v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    # ── Observability ────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")  # json or console

    # ── Responders ───────────────────────────────────────────────────────
    emergency_contacts: List[Contact] = Field(
        default_factory=lambda: list(DEFAULT_CONTACTS),
        alias="EMERGENCY_CONTACTS",
    )
    alert_email: str = Field(default="responders@example.org", alias="ALERT_EMAIL")
    crisis_hotline: str = Field(default="1800-599-0019", alias="CRISIS_HOTLINE")
    crisis_text_line: str = Field(default="Text HOME to 741741", alias="CRISIS_TEXT_LINE")
    emergency_services_number: str = Field(default="112", alias="EMERGENCY_SERVICES_NUMBER")
    display_timezone: str = Field(default="Asia/Kolkata", alias="DISPLAY_TIMEZONE")

    # ── ShortMessage providers ───────────────────────────────────────────
    twilio_account_sid: str = Field(default="", alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: str = Field(default="", alias="TWILIO_FROM_NUMBER")
    textbelt_api_key: str = Field(default="", alias="TEXTBELT_API_KEY")
    textbelt_url: str = Field(default="https://textbelt.com/text", alias="TEXTBELT_URL")
    sms_gateway_url: str = Field(
        default="https://www.smsgatewaycenter.com/library/send_sms_2.php",
        alias="SMS_GATEWAY_URL",
    )
    sms_gateway_user: str = Field(default="", alias="SMS_GATEWAY_USER")
    sms_gateway_password: str = Field(default="", alias="SMS_GATEWAY_PASSWORD")
    sms_gateway_mask: str = Field(default="NIVARAN", alias="SMS_GATEWAY_MASK")

    # ── Email providers ──────────────────────────────────────────────────
    emailjs_url: str = Field(
        default="https://api.emailjs.com/api/v1.0/email/send",
        alias="EMAILJS_URL",
    )
    emailjs_service_id: str = Field(default="", alias="EMAILJS_SERVICE_ID")
    emailjs_template_id: str = Field(default="", alias="EMAILJS_TEMPLATE_ID")
    emailjs_user_id: str = Field(default="", alias="EMAILJS_USER_ID")

    # ── ChatLink providers ───────────────────────────────────────────────
    callmebot_url: str = Field(
        default="https://api.callmebot.com/whatsapp.php",
        alias="CALLMEBOT_URL",
    )
    callmebot_api_key: str = Field(default="", alias="CALLMEBOT_API_KEY")

    # ── Resilience ───────────────────────────────────────────────────────
    provider_timeout_seconds: float = Field(default=10.0, alias="PROVIDER_TIMEOUT_SECONDS")
    provider_max_retries: int = Field(default=1, alias="PROVIDER_MAX_RETRIES")
    provider_retry_base_delay: float = Field(default=0.5, alias="PROVIDER_RETRY_BASE_DELAY")
    channel_timeout_seconds: float = Field(default=45.0, alias="CHANNEL_TIMEOUT_SECONDS")

    # ── Device-local actions ─────────────────────────────────────────────
    device_stagger_seconds: float = Field(default=1.0, alias="DEVICE_STAGGER_SECONDS")
    export_dir: str = Field(default="./emergency_alerts", alias="EXPORT_DIR")
    open_local_links: bool = Field(default=True, alias="OPEN_LOCAL_LINKS")

    # ── Alerting ─────────────────────────────────────────────────────────
    escalation_cooldown_seconds: int = Field(
        default=0,
        alias="ESCALATION_COOLDOWN_SECONDS",
        description="Suppress repeat escalations for a subject inside this window (0 disables)",
    )

    # ── Computed ─────────────────────────────────────────────────────────

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @computed_field
    @property
    def twilio_configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    settings = Settings()

    logger.info(
        "settings_loaded",
        environment=settings.environment,
        contacts=len(settings.emergency_contacts),
        providers={
            "twilio": settings.twilio_configured,
            "textbelt": bool(settings.textbelt_api_key),
            "sms_gateway": bool(settings.sms_gateway_user),
            "emailjs": bool(settings.emailjs_service_id),
            "callmebot": bool(settings.callmebot_api_key),
        },
        cooldown_seconds=settings.escalation_cooldown_seconds,
    )

    return settings
