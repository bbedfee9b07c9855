"""Boundary layer between transport code and the decision engine.

- ``ModuleAccessGuard`` — fail-closed checks from resource paths.
- ``ModuleAccessInterceptor`` — per-RPC enforcement in gRPC servers.
"""

from .guard import (
    MAX_PATH_DEPTH,
    ModuleAccessGuard,
    get_decision_status_code,
    parse_resource_path,
)
from .interceptors import (
    EnforcementMode,
    ModuleAccessInterceptor,
    PrincipalResolver,
)

__all__ = [
    "EnforcementMode",
    "MAX_PATH_DEPTH",
    "ModuleAccessGuard",
    "ModuleAccessInterceptor",
    "PrincipalResolver",
    "get_decision_status_code",
    "parse_resource_path",
]
