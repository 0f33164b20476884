# app/core/config.py
"""Configuration settings for the Vision AI chat API.

Uses Pydantic BaseSettings for environment variable management.
"""
import random
import secrets
from enum import Enum

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Vision AI API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Security Settings =====
    secret_key: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Secret key used for signing",
    )

    # ===== Database Settings =====
    database_url: str | None = Field(default=None, description="Database connection URL")
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== Authentication (Clerk) =====
    clerk_secret_key: str | None = Field(default=None, description="Clerk secret key")
    clerk_api_url: AnyHttpUrl = Field(default="https://api.clerk.com", description="Clerk API URL")
    clerk_jwks_url: str | None = Field(
        default=None, description="JWKS endpoint of the Clerk frontend API"
    )
    auth_verify_signature: bool = Field(
        default=False, description="Verify Clerk session token signatures against JWKS"
    )

    # ===== AI Service (Gemini) =====
    gemini_api_key: str | None = Field(
        default=None, description="Google Gemini API key (comma-separated for a key pool)"
    )
    gemini_model: str = Field(default="gemini-2.5-flash-lite", description="Gemini model to use")
    gemini_max_tokens: int = Field(default=8192, description="Maximum output tokens per model turn")

    # ===== Generation =====
    generation_max_steps: int = Field(default=10, description="Model/tool round trips per request")
    generation_temperature: float = Field(default=0.7, description="Sampling temperature")
    generation_timeout: int = Field(
        default=30, description="Wall-clock ceiling for one generation request in seconds"
    )

    # ===== Tools =====
    tavily_api_key: str | None = Field(default=None, description="Tavily search API key")
    tavily_api_url: str = Field(default="https://api.tavily.com", description="Tavily API URL")
    nebius_api_key: str | None = Field(default=None, description="Nebius image generation API key")
    nebius_api_url: str = Field(
        default="https://api.tokenfactory.nebius.com/v1", description="Nebius API URL"
    )
    deepgram_api_key: str | None = Field(default=None, description="Deepgram speech API key")
    deepgram_api_url: str = Field(default="https://api.deepgram.com/v1", description="Deepgram API URL")
    tool_http_timeout: float = Field(default=20.0, description="Timeout for tool HTTP calls")

    # ===== Media Host (Cloudinary) =====
    cloudinary_cloud_name: str | None = Field(default=None, description="Cloudinary cloud name")
    cloudinary_api_key: str | None = Field(default=None, description="Cloudinary API key")
    cloudinary_api_secret: str | None = Field(default=None, description="Cloudinary API secret")
    media_upload_folder: str = Field(
        default="vision-ai-studio", description="Default folder for uploaded media"
    )

    # ===== Chat list cache =====
    chat_cache_ttl: int = Field(default=300, description="Chat list cache TTL in seconds")

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    # ===== Background Tasks (Celery) =====
    celery_broker_url: str = Field(
        default="redis://localhost:6379/1", description="Celery broker URL"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2", description="Celery result backend"
    )

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.simple, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def gemini_api_keys(self) -> list[str]:
        if not self.gemini_api_key:
            return []
        return [key.strip() for key in self.gemini_api_key.split(",") if key.strip()]

    @property
    def has_ai_enabled(self) -> bool:
        return bool(self.gemini_api_keys)

    @property
    def has_media_host(self) -> bool:
        return bool(
            self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret
        )

    def pick_gemini_api_key(self) -> str | None:
        """Pick one key from the configured pool to spread quota across keys."""
        keys = self.gemini_api_keys
        return random.choice(keys) if keys else None

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
        return v

    @field_validator("generation_max_steps")
    @classmethod
    def validate_max_steps(cls, v):
        if v < 1:
            raise ValueError("At least one generation step is required")
        return v

    @field_validator("generation_temperature")
    @classmethod
    def validate_temperature(cls, v):
        if not 0.0 <= v <= 2.0:
            raise ValueError("Temperature must be between 0 and 2")
        return v

    @model_validator(mode="after")
    def set_computed_fields(self):
        if not self.clerk_jwks_url and self.auth_verify_signature:
            self.clerk_jwks_url = f"{str(self.clerk_api_url).rstrip('/')}/v1/jwks"
        return self


settings = Settings()


class ConfigValidator:
    @staticmethod
    def validate_required_settings():
        errors = []
        if not settings.database_url:
            errors.append("DATABASE_URL is required")
        if settings.is_production and not settings.has_ai_enabled:
            errors.append("GEMINI_API_KEY is required in production")
        if settings.is_production and not settings.auth_verify_signature:
            errors.append("AUTH_VERIFY_SIGNATURE must be enabled in production")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @staticmethod
    def get_feature_status() -> dict:
        return {
            "ai_enabled": settings.has_ai_enabled,
            "media_host": settings.has_media_host,
            "web_search": bool(settings.tavily_api_key),
            "image_generation": bool(settings.nebius_api_key),
            "speech": bool(settings.deepgram_api_key),
            "environment": settings.environment.value,
        }


def get_config_summary() -> dict:
    return {
        "app_name": settings.app_name,
        "version": settings.version,
        "environment": settings.environment.value,
        "debug": settings.debug,
        "features": ConfigValidator.get_feature_status(),
        "database_configured": bool(settings.database_url),
        "auth_verified": settings.auth_verify_signature,
    }


__all__ = [
    "settings",
    "Settings",
    "ConfigValidator",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
]
