"""
Typed settings for the BandHub video worker.

Uses Pydantic Settings to load configuration from environment variables
with validation and type safety. Settings are loaded from the root .env
file for local development; containers pass variables directly.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .validate_env import validate_env


class YouTubeConfig(BaseModel):
    base_url: str = Field(default="https://www.googleapis.com/youtube/v3")
    api_key: str | None = None
    request_timeout_seconds: float = 10.0
    # Platform default daily budget in cost units
    daily_quota_limit: int = Field(default=10_000)
    # Attempts per call for transient failures (network, 5xx, 429)
    max_attempts: int = Field(default=3)
    retry_wait_min_seconds: float = 1.0
    retry_wait_max_seconds: float = 10.0
    page_size: int = Field(default=50)
    # Share one quota budget across worker processes via Redis
    shared_quota: bool = True


class BreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5)
    window_seconds: float = Field(default=60.0)
    cooldown_seconds: float = Field(default=30.0)


class PipelineConfig(BaseModel):
    promotion_batch_max: int = Field(default=500)
    # Unmatched raw videos re-examined per match job
    rematch_batch_max: int = Field(default=1000)
    promotion_min_quality: int = Field(default=30)
    low_quality_threshold: int = Field(default=30)
    staleness_days: int = Field(default=180)
    # Non-forced syncs skip entities synced more recently than this
    sync_min_interval_minutes: int = Field(default=60)
    max_pages_per_entity: int = Field(default=20)
    match_description: bool = True
    band_patterns_file: str | None = None
    trusted_channel_ids: list[str] = Field(default_factory=list)
    # Cleanup runs longer than a sync sweep; cap lock lifetime
    maintenance_lock_seconds: int = Field(default=3600)
    promotion_dedupe_seconds: int = Field(default=3600)


class MonitoringConfig(BaseModel):
    enable_metrics: bool = True
    metrics_port: int = Field(default=9400)
    stuck_job_threshold_minutes: int = Field(default=10)
    inspect_timeout_seconds: float = 2.0
    # Upper bound on messages read per broker list when sampling
    waiting_sample_size: int = Field(default=1000)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    In Docker, environment variables are passed directly via docker-compose.
    For local development, loads from the root .env file. All settings are
    validated by Pydantic.
    """
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="allow"
    )

    database_url: str = Field(..., alias="DATABASE_URL")

    @field_validator('database_url', mode='before')
    @classmethod
    def convert_async_to_sync(cls, v: str) -> str:
        """
        Convert asyncpg URL to psycopg URL for synchronous SQLAlchemy.

        The admin API shares DATABASE_URL and connects with asyncpg, but
        Celery workers need synchronous psycopg.
        """
        if isinstance(v, str) and 'asyncpg' in v:
            return v.replace('asyncpg', 'psycopg')
        return v

    redis_url: str = Field("redis://localhost:6379/3", alias="REDIS_URL")
    redis_host: str = Field("localhost", alias="REDIS_HOST")
    redis_password: str | None = Field(None, alias="REDIS_PASSWORD")
    redis_db: int = Field(3, alias="REDIS_DB")
    celery_broker_url: str | None = Field(None, alias="CELERY_BROKER_URL")

    @model_validator(mode="after")
    def _build_redis_url(self) -> Settings:
        """
        Build Redis URL from components if REDIS_HOST is set to a non-localhost value.
        """
        if self.redis_host != "localhost":
            if self.redis_password:
                self.redis_url = f"redis://:{self.redis_password}@{self.redis_host}:6379/{self.redis_db}"
            else:
                self.redis_url = f"redis://{self.redis_host}:6379/{self.redis_db}"
        if not self.celery_broker_url:
            self.celery_broker_url = self.redis_url
        return self

    youtube_api_key: str | None = Field(None, alias="YOUTUBE_API_KEY")
    youtube_daily_quota: int | None = Field(None, alias="YOUTUBE_QUOTA_LIMIT")
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str | None = Field(None, alias="LOG_LEVEL")
    youtube_config: YouTubeConfig = Field(default_factory=YouTubeConfig)
    breaker_config: BreakerConfig = Field(default_factory=BreakerConfig)
    pipeline_config: PipelineConfig = Field(default_factory=PipelineConfig)
    monitoring_config: MonitoringConfig = Field(default_factory=MonitoringConfig)
    band_patterns_file_override: str | None = Field(None, alias="BAND_PATTERNS_FILE")
    trusted_channels_override: str | None = Field(None, alias="TRUSTED_CHANNEL_IDS")
    enable_worker_metrics: bool | None = Field(None, alias="ENABLE_WORKER_METRICS")
    metrics_port_override: int | None = Field(None, alias="METRICS_PORT")

    @model_validator(mode="after")
    def _apply_overrides(self) -> Settings:
        """
        Allow flat env vars to override the nested config groups without
        requiring double-underscore syntax.
        """
        if self.youtube_api_key:
            self.youtube_config.api_key = self.youtube_api_key
        if self.youtube_daily_quota:
            self.youtube_config.daily_quota_limit = self.youtube_daily_quota
        if self.band_patterns_file_override:
            self.pipeline_config.band_patterns_file = self.band_patterns_file_override
        if self.trusted_channels_override:
            self.pipeline_config.trusted_channel_ids = [
                c.strip() for c in self.trusted_channels_override.split(",") if c.strip()
            ]
        if self.enable_worker_metrics is not None:
            self.monitoring_config.enable_metrics = bool(self.enable_worker_metrics)
        if self.metrics_port_override:
            self.monitoring_config.metrics_port = self.metrics_port_override
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Settings are cached to avoid re-parsing environment variables
    on every access.
    """
    validate_env()
    return Settings()


settings = get_settings()
