"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "PriceLab"
    debug: bool = False

    # Database
    database_url: str

    # Redis
    redis_url: str

    # API Keys (for initial setup)
    admin_api_key: Optional[str] = None  # Internal routes are refused while unset

    # CORS
    frontend_url: str = "http://localhost:5173"

    # Experimentation
    eligible_listing_limit: int = 1000  # Max listings pulled into a new experiment
    experiment_sweep_interval_seconds: int = 3600  # How often expired experiments are completed
    learning_events_channel: str = "learning-events"

    # Reinforcement learning training
    training_listing_limit: int = 100
    max_concurrent_training_jobs_per_user: int = 2
    training_job_timeout_seconds: int = 300
    training_job_ttl_seconds: int = 86400  # Job records expire after a day

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
