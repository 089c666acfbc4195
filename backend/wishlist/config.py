from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./wishlist.db"

    # FastAPI
    secret_key: str = "change-this-in-production"
    debug: bool = False
    log_level: str = "INFO"

    # CORS - comma-separated list of allowed origins
    # In production, set to your frontend URL(s)
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list"""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Search
    search_cache_size: int = 100
    search_min_query_length: int = 2
    search_max_channels: int = 10000  # last-request-wins channels kept in memory

    # Bulk operations
    bulk_item_timeout: float = 10.0  # seconds per item
    bulk_concurrency: int = 10

    # Listing
    default_page_size: int = 20
    max_page_size: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
