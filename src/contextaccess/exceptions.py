"""Unified exception hierarchy for contextaccess.

Expected authorization outcomes (not found, plan restriction, missing grant)
are returned as :class:`~contextaccess.permissions.AccessDecision` data and
never raised. Exceptions here are reserved for infrastructure faults:

- store / cache backends that are unavailable
- grant rows that violate the exactly-one-level invariant
- invalid catalog definitions or configuration

Usage:
    from contextaccess.exceptions import ContextAccessError, StorageError

    try:
        decision = engine.can_access_module(principal, "hrm")
    except ContextAccessError as e:
        logger.error("[%s] %s", e.code, e.message)
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

import grpc

__all__ = [
    # Base hierarchy
    "ContextAccessError",
    "ConfigurationError",
    "CatalogError",
    "GrantIntegrityError",
    "ProviderError",
    "StorageError",
    "CacheBackendError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # gRPC helpers
    "get_grpc_status_code",
    "status_for_error_code",
]


# ---- Exception Hierarchy ----------------------------------------------------


class ContextAccessError(Exception):
    """Base exception for contextaccess.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "STORAGE_ERROR").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(ContextAccessError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class CatalogError(ContextAccessError):
    """Invalid catalog definition (duplicate code, dangling parent id)."""

    code: str = "CATALOG_ERROR"


class GrantIntegrityError(ContextAccessError):
    """Grant row does not name exactly one hierarchy level."""

    code: str = "GRANT_INTEGRITY_ERROR"


class ProviderError(ContextAccessError):
    """Backend provider failure."""

    code: str = "PROVIDER_ERROR"


class StorageError(ProviderError):
    """Grant store read or write failed."""

    code: str = "STORAGE_ERROR"


class CacheBackendError(ProviderError):
    """Cache backend read or write failed."""

    code: str = "CACHE_BACKEND_ERROR"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[ContextAccessError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[ContextAccessError]] = {}

    def register(self, code: str, error_cls: type[ContextAccessError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[ContextAccessError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[ContextAccessError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("LEGACY_STORE_ERROR")
        class LegacyStoreError(StorageError):
            code = "LEGACY_STORE_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


error_registry.register("INTERNAL_ERROR", ContextAccessError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("CATALOG_ERROR", CatalogError)
error_registry.register("GRANT_INTEGRITY_ERROR", GrantIntegrityError)
error_registry.register("PROVIDER_ERROR", ProviderError)
error_registry.register("STORAGE_ERROR", StorageError)
error_registry.register("CACHE_BACKEND_ERROR", CacheBackendError)


# ---- gRPC Error Mapping -----------------------------------------------------

_STATUS_BY_CODE = {
    "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
    "CATALOG_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
    "GRANT_INTEGRITY_ERROR": grpc.StatusCode.DATA_LOSS,
    "PROVIDER_ERROR": grpc.StatusCode.UNAVAILABLE,
    "STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
    "CACHE_BACKEND_ERROR": grpc.StatusCode.UNAVAILABLE,
}


def status_for_error_code(code: str) -> grpc.StatusCode:
    """Map an error code to a gRPC status code.

    Codes added with :func:`register_error` inherit the status of the nearest
    built-in base class, so a custom ``StorageError`` still maps to UNAVAILABLE.
    """
    status = _STATUS_BY_CODE.get(code)
    if status is not None:
        return status
    error_cls = error_registry.get(code)
    if error_cls is not None:
        for base in error_cls.__mro__[1:]:
            status = _STATUS_BY_CODE.get(getattr(base, "code", ""))
            if status is not None:
                return status
    return grpc.StatusCode.INTERNAL


def get_grpc_status_code(error: ContextAccessError) -> grpc.StatusCode:
    """Map ContextAccessError to a gRPC status code."""
    return status_for_error_code(error.code)
