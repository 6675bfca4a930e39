"""API Configuration."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class APIConfig:
    """Core API settings."""

    title: str = "Blue/Green Deployment Controller"
    version: str = "0.1.0"
    description: str = "Zero-downtime blue/green rollouts with automatic rollback"
    prefix: str = "/api/v1"
    docs_url: str = "/docs"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


DEFAULT_API_CONFIG = APIConfig()
