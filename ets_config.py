"""
Energy Trade Settlement (ETS) - Runtime Configuration
Loaded from ETS_* environment variables or a local .env file.
"""

from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # "flat" shares one key space with existing ledger data, "prefixed" separates entity types
    KEY_NAMESPACE: Literal["flat", "prefixed"] = "flat"

    DECISION_SIGNING_SECRET: str = "ETS_DECISION_SECRET_ROTATE_QUARTERLY"
    DECISION_LEDGER_MAX_ENTRIES: int = 10000

    SEED_ON_STARTUP: bool = False
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: List[str] = ["*"]
    ENV: str = "dev"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="ETS_", extra="ignore")


settings = Settings()
