from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    default_periods: int = 60
    max_periods: int = 120

    irr_lower_bound: float = -0.99
    irr_upper_bound: float = 1000.0
    irr_tolerance: float = 1e-9
    irr_max_iterations: int = 200

    evidence_tolerance: float = 1e-6

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="BIZCASE_")


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()
