from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


PLACEHOLDER_SUPABASE_URL = "https://placeholder.supabase.co"
PLACEHOLDER_SUPABASE_ANON_KEY = "placeholder-anon-key"


class Settings(BaseSettings):
    # General App settings
    ENVIRONMENT: Environment = Field(
        Environment.DEVELOPMENT, alias="MALAWI_PROPERTIES_SERVICE_ENVIRONMENT"
    )
    LOGGING_LEVEL: str = Field("INFO", alias="MALAWI_PROPERTIES_SERVICE_LOGGING_LEVEL")
    ROOT_PATH: str = Field("", alias="MALAWI_PROPERTIES_SERVICE_ROOT_PATH")
    CORS_ALLOW_ORIGINS: List[str] = Field(
        ["*"], alias="MALAWI_PROPERTIES_SERVICE_CORS_ALLOW_ORIGINS"
    )

    # Supabase Configuration
    # Missing values are tolerated at startup; see supabase_client.init_supabase_clients
    SUPABASE_URL: str = Field("", alias="MALAWI_PROPERTIES_SERVICE_SUPABASE_URL")
    SUPABASE_ANON_KEY: str = Field(
        "", alias="MALAWI_PROPERTIES_SERVICE_SUPABASE_ANON_KEY"
    )
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(
        None, alias="MALAWI_PROPERTIES_SERVICE_SUPABASE_SERVICE_ROLE_KEY"
    )

    # S3-compatible object storage (Hetzner in production)
    STORAGE_ENDPOINT: Optional[str] = Field(
        None, alias="MALAWI_PROPERTIES_SERVICE_STORAGE_ENDPOINT"
    )
    STORAGE_REGION: str = Field("fsn1", alias="MALAWI_PROPERTIES_SERVICE_STORAGE_REGION")
    STORAGE_ACCESS_KEY: Optional[str] = Field(
        None, alias="MALAWI_PROPERTIES_SERVICE_STORAGE_ACCESS_KEY"
    )
    STORAGE_SECRET_KEY: Optional[str] = Field(
        None, alias="MALAWI_PROPERTIES_SERVICE_STORAGE_SECRET_KEY"
    )
    STORAGE_BUCKET: str = Field(
        "hope-properties-images", alias="MALAWI_PROPERTIES_SERVICE_STORAGE_BUCKET"
    )
    STORAGE_CDN_URL: Optional[str] = Field(
        None, alias="MALAWI_PROPERTIES_SERVICE_STORAGE_CDN_URL"
    )
    STORAGE_BUCKET_PUBLIC: bool = Field(
        True, alias="MALAWI_PROPERTIES_SERVICE_STORAGE_BUCKET_PUBLIC"
    )

    # Upload validation
    UPLOAD_MAX_BYTES: int = Field(
        10 * 1024 * 1024, alias="MALAWI_PROPERTIES_SERVICE_UPLOAD_MAX_BYTES"
    )
    UPLOAD_ALLOWED_CONTENT_TYPES: List[str] = Field(
        ["image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"],
        alias="MALAWI_PROPERTIES_SERVICE_UPLOAD_ALLOWED_CONTENT_TYPES",
    )

    # Tracking
    SESSION_TIMEOUT_MINUTES: int = Field(
        30, alias="MALAWI_PROPERTIES_SERVICE_SESSION_TIMEOUT_MINUTES"
    )
    VISIT_DEDUP_MINUTES: int = Field(
        5, alias="MALAWI_PROPERTIES_SERVICE_VISIT_DEDUP_MINUTES"
    )

    # Analytics
    ANALYTICS_TIMEZONE: str = Field(
        "Africa/Blantyre", alias="MALAWI_PROPERTIES_SERVICE_ANALYTICS_TIMEZONE"
    )

    # Rate Limiting
    RATE_LIMIT_GENERAL: str = Field(
        "300/minute", alias="MALAWI_PROPERTIES_SERVICE_RATE_LIMIT_GENERAL"
    )
    RATE_LIMIT_TRACKING: str = Field(
        "120/minute", alias="MALAWI_PROPERTIES_SERVICE_RATE_LIMIT_TRACKING"
    )
    RATE_LIMIT_UPLOAD: str = Field(
        "30/minute", alias="MALAWI_PROPERTIES_SERVICE_RATE_LIMIT_UPLOAD"
    )

    @field_validator("SUPABASE_URL")
    @classmethod
    def clean_supabase_url(cls, v: str) -> str:
        # Values pasted from the dashboard often carry whitespace, a trailing
        # slash or no scheme at all
        v = v.strip().rstrip("/")
        if v and not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v

    @field_validator("STORAGE_ENDPOINT", "STORAGE_CDN_URL")
    @classmethod
    def clean_optional_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None

    def supabase_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)

    def storage_configured(self) -> bool:
        return all(
            [
                self.STORAGE_ENDPOINT,
                self.STORAGE_ACCESS_KEY,
                self.STORAGE_SECRET_KEY,
                self.STORAGE_BUCKET,
            ]
        )

    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    def is_testing(self) -> bool:
        return self.ENVIRONMENT == Environment.TESTING

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Instantiate the settings
settings = Settings()
