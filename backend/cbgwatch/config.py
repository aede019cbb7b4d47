from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/monitor.db"

    # CBG marketplace API
    cbg_base_url: str = "https://yjwujian.cbg.163.com"
    cbg_request_delay_ms: int = 1000  # Minimum gap between any two upstream calls
    cbg_request_timeout: float = 10.0
    cbg_max_lookup_pages: int = 10  # Pages searched per category when resolving an item id

    # Monitor
    default_check_interval_minutes: int = 5
    monitor_autostart: bool = False

    # Notifications
    notification_timeout: float = 10.0

    # FastAPI
    debug: bool = False
    log_level: str = "INFO"

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list"""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
