"""Application settings loaded from the environment."""
import random
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the prior authorization pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="PA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./priorauth.db")
    seed_demo_data: bool = Field(default=True, description="Seed reference data on startup")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
    )

    # Mock tool behaviour
    random_seed: Optional[int] = Field(default=None, description="Seed for the shared random source")
    tool_latency_scale: float = Field(default=1.0, ge=0.0, description="Multiplier on simulated tool latency")
    claims_lookback_months: int = Field(default=12, ge=1)
    urgent_procedure_codes: List[str] = Field(
        default=["93458", "92928", "96413", "27447", "22612"],
    )
    complex_procedure_codes: List[str] = Field(
        default=["93458", "92928", "96413", "27447", "22612"],
    )

    # Tool registry call log
    call_log_max_entries: int = Field(default=1000, ge=2)
    call_log_param_max_chars: int = Field(default=200, ge=1)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def build_rng(settings: Optional[Settings] = None) -> random.Random:
    """Create the pseudo-random source shared by the mock tools and agents."""
    settings = settings or get_settings()
    return random.Random(settings.random_seed)
