"""Configuration contract for the contextaccess decision engine.

Pydantic-validated models for everything the engine needs at runtime:
logging, the cache backend, cache TTLs and the administrative role names
that trigger bypass decisions.

Direct os.environ/os.getenv usage is FORBIDDEN outside
:func:`load_access_config_from_env`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Cache key layout and TTLs.

    Environment variables:
        ACCESS_CACHE_PREFIX              — key prefix for every cache entry
        ACCESS_ROLE_TTL_SECONDS          — per-(role, level, id) decision TTL
        ACCESS_TENANT_TTL_SECONDS        — tenant entitlement set TTL
        ACCESS_USER_TTL_SECONDS          — per-user accessible modules TTL
        ACCESS_GENERATION_INVALIDATION   — rotate role generation on writes
    """

    model_config = {"extra": "ignore"}

    key_prefix: str = Field(
        default="contextaccess",
        description="Prefix for all cache keys",
    )
    role_access_ttl_seconds: int = Field(
        default=3600,
        description="TTL for cached role access decisions and accessible module ids (1 hour)",
    )
    tenant_modules_ttl_seconds: int = Field(
        default=300,
        description="TTL for the per-tenant allowed module code set",
    )
    user_modules_ttl_seconds: int = Field(
        default=300,
        description="TTL for the per-user accessible module list",
    )
    generation_invalidation: bool = Field(
        default=True,
        description=(
            "Rotate a per-role cache generation on every grant write so fine-grained "
            "entries are dropped immediately. Disabled = entries expire by TTL."
        ),
    )

    @field_validator(
        "role_access_ttl_seconds",
        "tenant_modules_ttl_seconds",
        "user_modules_ttl_seconds",
    )
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """TTLs must be positive."""
        if v <= 0:
            raise ValueError(f"TTL must be positive, got {v}")
        return v

    @field_validator("key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        v = v.strip().rstrip(":")
        if not v:
            raise ValueError("Cache key prefix must not be empty")
        return v


class AdminRolesConfig(BaseModel):
    """Role names that trigger administrative bypass decisions."""

    model_config = {"extra": "ignore"}

    platform_super_admin: str = Field(
        default="Super Administrator",
        description="Bypasses plan entitlement and role grants",
    )
    tenant_super_admin: str = Field(
        default="tenant_super_administrator",
        description="Bypasses role grants, never plan entitlement",
    )


class AccessConfig(BaseModel):
    """Configuration for the access-decision engine."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Redis (shared cache backend)
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (e.g., redis://localhost:6379/0). None = in-process cache",
    )

    service_name: Optional[str] = Field(
        default=None,
        description="Service name used as the logger namespace",
    )

    cache: CacheConfig = Field(
        default_factory=CacheConfig,
        description="Cache key layout and TTLs",
    )
    roles: AdminRolesConfig = Field(
        default_factory=AdminRolesConfig,
        description="Administrative bypass role names",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


_TRUTHY = ("true", "1", "yes", "on")


def load_access_config_from_env() -> AccessConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - REDIS_URL: Redis connection URL
    - SERVICE_NAME: Service name
    - ACCESS_CACHE_PREFIX: Cache key prefix
    - ACCESS_ROLE_TTL_SECONDS: Role access decision TTL
    - ACCESS_TENANT_TTL_SECONDS: Tenant entitlement TTL
    - ACCESS_USER_TTL_SECONDS: Accessible modules TTL
    - ACCESS_GENERATION_INVALIDATION: Rotate role generation on writes (default: true)
    - ACCESS_PLATFORM_ADMIN_ROLE: Platform super admin role name
    - ACCESS_TENANT_ADMIN_ROLE: Tenant super admin role name

    Returns:
        AccessConfig instance with values from environment or defaults.

    Raises:
        ConfigurationError: a TTL variable is not an integer.
    """
    import os

    def _int_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigurationError(f"{name} must be an integer, got {raw!r}", variable=name) from e

    cache = CacheConfig(
        key_prefix=os.getenv("ACCESS_CACHE_PREFIX", "contextaccess"),
        role_access_ttl_seconds=_int_env("ACCESS_ROLE_TTL_SECONDS", 3600),
        tenant_modules_ttl_seconds=_int_env("ACCESS_TENANT_TTL_SECONDS", 300),
        user_modules_ttl_seconds=_int_env("ACCESS_USER_TTL_SECONDS", 300),
        generation_invalidation=os.getenv("ACCESS_GENERATION_INVALIDATION", "true").lower() in _TRUTHY,
    )

    roles = AdminRolesConfig(
        platform_super_admin=os.getenv("ACCESS_PLATFORM_ADMIN_ROLE", "Super Administrator"),
        tenant_super_admin=os.getenv("ACCESS_TENANT_ADMIN_ROLE", "tenant_super_administrator"),
    )

    return AccessConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        redis_url=os.getenv("REDIS_URL"),
        service_name=os.getenv("SERVICE_NAME"),
        cache=cache,
        roles=roles,
    )


__all__ = [
    "AccessConfig",
    "AdminRolesConfig",
    "CacheConfig",
    "LogLevel",
    "load_access_config_from_env",
]
