from typing import Optional
from pydantic import Field
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Scheduler and dispatcher configuration settings."""

    max_concurrent_jobs: int = Field(default=5, ge=1)
    scheduler_interval_seconds: float = Field(default=60.0, gt=0)
    dispatcher_interval_seconds: float = Field(default=10.0, gt=0)
    default_priority: int = Field(default=5, ge=1, le=10)
    manual_high_priority: int = Field(default=10, ge=1, le=10)
    high_priority_threshold: int = Field(default=8, ge=1, le=10)
    normal_priority_threshold: int = Field(default=4, ge=1, le=10)

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")


class ColumnarStoreSettings(BaseSettings):
    """Columnar analytics store configuration settings."""

    url: str = Field(default="clickhouse+http://default:@localhost:8123/default")
    echo: bool = Field(default=False)
    default_table: str = Field(default="aggregated_data")

    model_config = SettingsConfigDict(env_prefix="COLUMNAR_", extra="ignore")


class EventSettings(BaseSettings):
    """Lifecycle event publishing settings."""

    redis_url: Optional[str] = Field(default=None)
    channel_prefix: str = Field(default="aggregation")
    socket_timeout: float = Field(default=2.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="EVENTS_", extra="ignore")


class LoggingSettings(BaseSettings):
    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)
    format: str = Field(default="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    file_path: Optional[str] = Field(default=None, validation_alias="LOG_FILE")
    max_bytes: int = Field(default=10 * 1024 * 1024)
    backup_count: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")


class Settings(BaseSettings):
    app_name: str = Field(default="Aggregation Job Engine")
    environment: str = Field(default="development")

    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    columnar: ColumnarStoreSettings = Field(default_factory=ColumnarStoreSettings)
    events: EventSettings = Field(default_factory=EventSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Pagination
    default_page_size: int = Field(default=10)
    max_page_size: int = Field(default=100)

    model_config = SettingsConfigDict(env_file=".env", extra="allow", env_file_encoding="utf-8")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
