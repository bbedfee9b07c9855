"""Hierarchical access decisions for multi-tenant applications.

Defines:
- Catalog: Module → SubModule → Component → Action read model
- Grants: role permissions at exactly one level, scoped at action level
- HierarchyResolver: upward grant resolution with per-step caching
- PlanEntitlementGate: tenant subscription allow list
- ScopeResolver: broadest data scope across a principal's roles
- AccessDecisionEngine: the combined decision per request
"""

from .catalog import (
    Action,
    Catalog,
    Component,
    InMemoryCatalog,
    Module,
    ModuleDescendants,
    SubModule,
)
from .constants import DecisionReason, HierarchyLevel, Scope
from .engine import AccessDecisionEngine, TenantResolver
from .entitlement import PlanEntitlementGate
from .hierarchy import HierarchyResolver
from .models import (
    AccessDecision,
    ActionAccess,
    Grant,
    Principal,
    Role,
    RoleAccessTree,
    Tenant,
)
from .scope import ScopeResolver
from .store import (
    GrantStore,
    InMemoryGrantStore,
    InMemoryPlanDirectory,
    PlanDirectory,
    RedisGrantStore,
)

__all__ = [
    "AccessDecision",
    "AccessDecisionEngine",
    "Action",
    "ActionAccess",
    "Catalog",
    "Component",
    "DecisionReason",
    "Grant",
    "GrantStore",
    "HierarchyLevel",
    "HierarchyResolver",
    "InMemoryCatalog",
    "InMemoryGrantStore",
    "InMemoryPlanDirectory",
    "Module",
    "ModuleDescendants",
    "PlanDirectory",
    "PlanEntitlementGate",
    "Principal",
    "RedisGrantStore",
    "Role",
    "RoleAccessTree",
    "Scope",
    "ScopeResolver",
    "SubModule",
    "Tenant",
    "TenantResolver",
]
