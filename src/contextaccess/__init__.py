from .config import (
    AccessConfig,
    AdminRolesConfig,
    CacheConfig,
    LogLevel,
    load_access_config_from_env,
)
from .exceptions import (
    CacheBackendError,
    CatalogError,
    ConfigurationError,
    ContextAccessError,
    GrantIntegrityError,
    ProviderError,
    StorageError,
    get_grpc_status_code,
    register_error,
    status_for_error_code,
)
from .logging import (
    safe_preview,
    AccessLogFormatter,
    AccessLoggerAdapter,
    setup_logging,
    get_access_logger,
)
from .cache import CacheProvider, InMemoryCache, RedisCache, build_cache
from .permissions import (
    AccessDecision,
    AccessDecisionEngine,
    DecisionReason,
    Grant,
    HierarchyLevel,
    InMemoryCatalog,
    InMemoryGrantStore,
    InMemoryPlanDirectory,
    Principal,
    RedisGrantStore,
    Role,
    RoleAccessTree,
    Scope,
    Tenant,
)

__all__ = [
    'AccessConfig',
    'AdminRolesConfig',
    'CacheConfig',
    'LogLevel',
    'load_access_config_from_env',
    'CacheBackendError',
    'CatalogError',
    'ConfigurationError',
    'ContextAccessError',
    'GrantIntegrityError',
    'ProviderError',
    'StorageError',
    'get_grpc_status_code',
    'register_error',
    'status_for_error_code',
    'safe_preview',
    'AccessLogFormatter',
    'AccessLoggerAdapter',
    'setup_logging',
    'get_access_logger',
    'CacheProvider',
    'InMemoryCache',
    'RedisCache',
    'build_cache',
    'AccessDecision',
    'AccessDecisionEngine',
    'DecisionReason',
    'Grant',
    'HierarchyLevel',
    'InMemoryCatalog',
    'InMemoryGrantStore',
    'InMemoryPlanDirectory',
    'Principal',
    'RedisGrantStore',
    'Role',
    'RoleAccessTree',
    'Scope',
    'Tenant',
]
