from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./yardwatch.db"
    debug: bool = False

    # CORS - comma-separated list of allowed origins
    # In production, set to your frontend URL(s)
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list"""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # Salt mixed into owner keys
    alert_signing_secret: str = "default-salt"

    # Web Push (VAPID). Leave the key pair empty to generate and persist one.
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:alerts@example.com"
    push_ttl_seconds: int = 43200

    # Upstream yard sites
    jalopy_upstream: str = "https://inventory.pickapartjalopyjungle.com"
    trusty_upstream: str = "https://inventory.trustypickapart.com"

    # Performance settings
    scraper_concurrent_requests: int = 2  # keep low, every search hits every yard
    scraper_request_timeout: int = 30
    cache_ttl: int = 300  # 5 minutes
    lookup_cache_ttl: int = 3600  # makes/models change rarely
    cache_max_entries: int = 1024  # in-process cache bound when Redis is not configured

    # Redis for the shared result cache; empty keeps the cache in-process
    redis_url: str = "redis://localhost:6379/0"

    # Alert quotas
    max_alerts_total: int = 500
    max_alerts_per_owner: int = 25

    # Scheduler
    enable_scheduler: bool = False
    alert_cron: str = "0 9 * * *"  # daily, UTC

    # X-API-Key for the scheduler admin routes; empty disables them
    admin_api_key: str = ""

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
