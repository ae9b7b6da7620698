"""Library configuration using pydantic-settings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("config")


class Settings(BaseSettings):
    """Settings loaded from ``QUERYFLOW_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUERYFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"

    # ==========================================================================
    # Graph endpoint
    # ==========================================================================
    graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Base url that GraphQueryable paths are joined onto",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for requests sent through httpx_send",
    )

    # ==========================================================================
    # Batching
    # ==========================================================================
    batch_max_requests: int = Field(
        default=20,
        ge=1,
        le=20,
        description="Maximum number of requests per $batch call (Graph allows 20)",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_debug_namespaces: str = Field(
        default="",
        description="Comma-separated list of namespaces to enable debug logging",
    )

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @computed_field
    @property
    def debug_namespaces(self) -> list[str]:
        """Parse debug namespaces into a list."""
        if not self.log_debug_namespaces:
            return []
        return [ns.strip() for ns in self.log_debug_namespaces.split(",") if ns.strip()]

    def log_config_summary(self) -> None:
        """Log a summary of the configuration."""
        logger.info(
            "queryflow configuration loaded",
            extra={
                "service": "config",
                "environment": self.environment,
                "graph_base_url": self.graph_base_url,
                "request_timeout_seconds": self.request_timeout_seconds,
                "batch_max_requests": self.batch_max_requests,
                "log_level": self.log_level,
                "debug_namespaces": self.debug_namespaces,
            },
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
