from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    AMS_ENV: str = "development"
    AMS_MODE: str = "api"
    APP_VERSION: str = "dev"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    API_CORS_ORIGINS: str = "http://localhost:3000"
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_ISSUER: str | None = None
    SUPABASE_JWKS_URL: str | None = None
    WORKER_POLL_INTERVAL_SECONDS: int = 2
    WORKER_BATCH_LIMIT: int = 10
    WORKER_CONCURRENCY: int = 1
    WORKER_STALE_AFTER_SECONDS: int = 180
    ACTION_JOB_LEASE_SECONDS: int = 120
    ACTION_JOB_MAX_ATTEMPTS: int = 5
    REALTIME_BROADCAST_ENABLED: bool = True
    PUSH_ENABLED: bool = True
    FIREBASE_PROJECT_ID: str | None = None
    FIREBASE_CLIENT_EMAIL: str | None = None
    FIREBASE_PRIVATE_KEY: str | None = None
    FIREBASE_SERVICE_ACCOUNT_BASE64: str | None = None
    PUSH_ANDROID_CHANNEL_ID: str = "high_importance_channel"
    PUSH_CLICK_ACTION: str = "FLUTTER_NOTIFICATION_CLICK"
    PUSH_WEB_ICON: str = "/icon.png"

    @model_validator(mode="after")
    def apply_supabase_defaults(self) -> "Settings":
        if not self.SUPABASE_URL.strip():
            raise ValueError("SUPABASE_URL must be configured")
        if not self.SUPABASE_ANON_KEY.strip():
            raise ValueError("SUPABASE_ANON_KEY must be configured")

        if not self.SUPABASE_ISSUER:
            self.SUPABASE_ISSUER = f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"
        if not self.SUPABASE_JWKS_URL:
            self.SUPABASE_JWKS_URL = (
                f"{self.SUPABASE_ISSUER.rstrip('/')}/.well-known/jwks.json"
            )
        if self.AMS_ENV.strip().lower() == "production" and self.AMS_MODE.strip().lower() != "api":
            if not (self.SUPABASE_SERVICE_ROLE_KEY or "").strip():
                raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be configured for worker mode in production")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.API_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def firebase_enabled(self) -> bool:
        if not self.PUSH_ENABLED:
            return False
        if (self.FIREBASE_SERVICE_ACCOUNT_BASE64 or "").strip():
            return True
        return bool(
            (self.FIREBASE_PROJECT_ID or "").strip()
            and (self.FIREBASE_CLIENT_EMAIL or "").strip()
            and (self.FIREBASE_PRIVATE_KEY or "").strip()
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
