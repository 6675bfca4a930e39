"""Centralized settings for the blue/green controller.

Uses pydantic-settings to load from environment variables (prefixed
BLUEGREEN_) with defaults suitable for a local dry run.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Controller settings loaded from environment variables."""

    # --- Application ---
    application: str = "app"
    route_name: str = "app"
    initial_active_slot: str = "blue"
    blue_endpoint: str = "http://app-blue:8080"
    green_endpoint: str = "http://app-green:8080"
    blue_version: Optional[str] = None
    green_version: Optional[str] = None

    # --- Backends ---
    backend: str = "memory"  # "memory" or "kubernetes"
    namespace: str = "default"
    helm_chart: str = "./chart"
    helm_release: str = "app"
    image_repository: Optional[str] = None
    service_selector_key: str = "slot"

    # --- Rollout defaults ---
    replicas: int = 2
    cpu_limit: Optional[str] = None
    memory_limit: Optional[str] = None
    deploy_timeout_seconds: float = 300.0
    readiness_poll_seconds: float = 5.0

    # --- Pre-switch probing ---
    health_path: str = "/healthz"
    health_timeout_seconds: float = 3.0
    probe_interval_seconds: float = 5.0
    probe_initial_delay_seconds: float = 5.0
    probe_max_attempts: int = 10
    probe_success_threshold: int = 1

    # --- Post-switch verification ---
    verify_interval_seconds: float = 5.0
    verify_max_attempts: int = 12
    verify_success_threshold: int = 3
    verify_window_seconds: float = 60.0

    # --- Persistence ---
    use_database: bool = False
    database_url: str = "sqlite:///bluegreen.db"
    record_history_limit: int = 1000
    run_history_limit: int = 200

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "BLUEGREEN_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
