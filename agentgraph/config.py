# agentgraph/config.py
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Mini Workflow Engine"
    log_level: str = "INFO"
    log_json: bool = False

    # "memory" keeps snapshots for the life of the process only
    checkpoint_backend: Literal["memory", "file"] = "memory"
    checkpoint_dir: Optional[str] = None

    default_max_steps: int = 1000

    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
