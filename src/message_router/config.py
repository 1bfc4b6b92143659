"""Application configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseModel):
    """Rule cache configuration."""

    # Backend: "memory" (process-local) or "redis" (shared)
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Rules are trusted for this long before revalidating with the store
    ttl_seconds: int = 300
    key_prefix: str = "routing_rules"

    # Collapse concurrent reloads for the same tenant into one store load
    single_flight: bool = True

    # Routing results recorded by the processor
    result_ttl_seconds: int = 3600


class BrokerSettings(BaseModel):
    """Message broker configuration."""

    backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    queue_prefix: str = "queue:"

    # Delivery attempts granted to each submitted work item
    max_attempts: int = 3

    # Upper bound for a single submission or state notification
    submit_timeout_seconds: float = 5.0


class RoutingSettings(BaseModel):
    """Rule evaluation configuration."""

    # False: evaluate in store order. True: stable sort by ascending priority.
    order_by_priority: bool = False

    # IANA timezone for time_of_day conditions (None = server local time)
    timezone: str | None = None

    default_auto_response: str = (
        "Thank you for your message. We will get back to you soon."
    )


class DatabaseSettings(BaseModel):
    """Database configuration for the SQL rule store."""

    url: str = "sqlite+aiosqlite:///data/message_router.db"
    echo: bool = False


class RuleStoreSettings(BaseModel):
    """Rule store selection."""

    backend: str = "memory"  # memory, sql


class Settings(BaseSettings):
    """Application settings.

    Loaded from:
    1. Environment variables (ROUTER_*)
    2. configs/{environment}.yaml
    3. configs/default.yaml
    """

    model_config = SettingsConfigDict(
        env_prefix="ROUTER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Subsystems
    cache: CacheSettings = Field(default_factory=CacheSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rule_store: RuleStoreSettings = Field(default_factory=RuleStoreSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings object loaded from config files and environment.
    """
    import os
    from dynaconf import Dynaconf

    config_dir = Path("configs")
    env = os.getenv("ROUTER_ENV", "development")

    settings_files = []
    if (config_dir / "default.yaml").exists():
        settings_files.append(str(config_dir / "default.yaml"))
    if (config_dir / f"{env}.yaml").exists():
        settings_files.append(str(config_dir / f"{env}.yaml"))

    dynaconf = Dynaconf(
        envvar_prefix="ROUTER",
        settings_files=settings_files,
        load_dotenv=True,
    )

    config_dict: dict[str, Any] = {}
    for key in dynaconf.keys():
        if not key.startswith("_"):
            config_dict[key.lower()] = dynaconf[key]

    config_dict["environment"] = env

    return Settings(**config_dict)


def validate_production_settings(settings: Settings) -> list[str]:
    """Validate settings for production readiness.

    Args:
        settings: Application settings to validate.

    Returns:
        List of validation error messages (empty if all valid).
    """
    errors: list[str] = []

    # Only enforce strict validation in production
    if settings.environment not in ("production", "staging", "prod"):
        return errors

    if settings.broker.backend == "memory":
        errors.append(
            "ROUTER_BROKER__BACKEND must not be 'memory' in production"
        )

    if settings.rule_store.backend == "memory":
        errors.append(
            "ROUTER_RULE_STORE__BACKEND must not be 'memory' in production"
        )

    if settings.cache.ttl_seconds <= 0:
        errors.append("ROUTER_CACHE__TTL_SECONDS must be positive")

    if settings.broker.submit_timeout_seconds <= 0:
        errors.append("ROUTER_BROKER__SUBMIT_TIMEOUT_SECONDS must be positive")

    return errors
