from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "PROBEBEAT_",
        "extra": "ignore",
    }

    # Check definitions (YAML)
    definitions_file: str = "checks.yaml"
    refresh_interval: int = 60  # seconds between definition reloads

    # Pass cadence and bounds
    pass_interval: int = 30  # seconds between passes
    pass_timeout: float = 10.0  # deadline handed to every check
    connect_timeout: float = 5.0  # transport-level bound inside a check
    max_workers: int = 256  # threads available to concurrently running checks

    # Publication
    publisher: str = "log"  # "log" | "http"
    publish_url: str = ""
    publish_token: str = ""
    event_type: str = "dynamicbeat"

    # Logging
    log_level: str = "INFO"


settings = Settings()
