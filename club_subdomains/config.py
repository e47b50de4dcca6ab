"""Application configuration loaded from the environment and ``.env``

Usage:
    from club_subdomains.config import load_settings
    settings = load_settings()
"""

import logging
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

MIN_COOKIE_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Process-wide settings, read once at startup

    Required:
        - LOGTO_ENDPOINT / LOGTO_APP_ID / LOGTO_APP_SECRET
        - COOKIE_SECRET (min 32 chars)
        - AIRTABLE_API_KEY / AIRTABLE_BASE_ID (when DATA_STORE=airtable)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    env: str = Field(default="development", validation_alias="ENV")
    base_url: str = Field(default="http://localhost:8000", validation_alias="BASE_URL")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")

    # Identity provider (Logto)
    logto_endpoint: str = Field(default="", validation_alias="LOGTO_ENDPOINT")
    logto_app_id: str = Field(default="", validation_alias="LOGTO_APP_ID")
    logto_app_secret: str = Field(default="", validation_alias="LOGTO_APP_SECRET")
    cookie_secret: str = Field(default="", validation_alias="COOKIE_SECRET")

    # Data store
    data_store: str = Field(default="airtable", validation_alias="DATA_STORE")
    airtable_api_key: str = Field(default="", validation_alias="AIRTABLE_API_KEY")
    airtable_base_id: str = Field(default="", validation_alias="AIRTABLE_BASE_ID")
    airtable_club_names_table: str = Field(default="Club Names", validation_alias="AIRTABLE_CLUB_NAMES_TABLE")
    sqlite_path: str = Field(default="./club_subdomains.db", validation_alias="SQLITE_PATH")

    # Outbound calls
    http_timeout_seconds: float = Field(default=5.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    store_read_retries: int = Field(default=2, validation_alias="STORE_READ_RETRIES")

    # Roles
    multi_subdomain_role: str = Field(default="More Subdomains", validation_alias="MULTI_SUBDOMAIN_ROLE")
    admin_role: str = Field(default="Admin", validation_alias="ADMIN_ROLE")
    role_allowlist_emails: str = Field(default="", validation_alias="ROLE_ALLOWLIST_EMAILS")

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")

    @property
    def cookie_secure(self) -> bool:
        return self.is_production

    @property
    def logto_base(self) -> str:
        """Provider endpoint without a trailing slash"""
        return self.logto_endpoint.rstrip("/")

    @property
    def callback_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/logto/callback"

    @property
    def session_cookie_name(self) -> str:
        return f"logto_{self.logto_app_id}"

    @property
    def allowlisted_emails(self) -> List[str]:
        items = [x.strip().lower() for x in self.role_allowlist_emails.split(",")]
        return [x for x in items if x]

    @property
    def cors_origin_list(self) -> List[str]:
        return [x.strip() for x in self.cors_origins.split(",") if x.strip()]

    def same_origin_path(self, url: Optional[str]) -> Optional[str]:
        """Return the path+query of ``url`` if it points at BASE_URL's origin

        Relative paths starting with a single ``/`` are accepted as-is.
        """
        if not url:
            return None
        if url.startswith("/") and not url.startswith("//"):
            return url
        base = urlsplit(self.base_url)
        target = urlsplit(url)
        if (target.scheme, target.netloc) != (base.scheme, base.netloc):
            return None
        path = target.path or "/"
        return f"{path}?{target.query}" if target.query else path

    def missing_required(self) -> List[str]:
        missing = []
        for attr, name in (
            ("logto_endpoint", "LOGTO_ENDPOINT"),
            ("logto_app_id", "LOGTO_APP_ID"),
            ("logto_app_secret", "LOGTO_APP_SECRET"),
            ("cookie_secret", "COOKIE_SECRET"),
        ):
            if not getattr(self, attr).strip():
                missing.append(name)
        if self.data_store == "airtable":
            if not self.airtable_api_key.strip():
                missing.append("AIRTABLE_API_KEY")
            if not self.airtable_base_id.strip():
                missing.append("AIRTABLE_BASE_ID")
        return missing

    def validate_required(self) -> "Settings":
        """Fail fast on missing or malformed required values"""
        missing = self.missing_required()
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
        if self.data_store not in ("airtable", "sqlite"):
            raise ConfigError(f"DATA_STORE must be 'airtable' or 'sqlite', got {self.data_store!r}")
        if len(self.cookie_secret) < MIN_COOKIE_SECRET_LENGTH:
            raise ConfigError(f"COOKIE_SECRET must be at least {MIN_COOKIE_SECRET_LENGTH} characters long")
        if not urlsplit(self.logto_endpoint).scheme:
            raise ConfigError("LOGTO_ENDPOINT must be an absolute URL")
        return self


def load_settings(**overrides) -> Settings:
    """Load settings from the environment, apply overrides and validate them"""
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    return settings.validate_required()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
