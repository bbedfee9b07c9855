"""Access decision engine.

One structured decision per call, combining three gates in a fixed order:

1. Platform super admin: allowed, plan ignored.
2. Module lookup, then plan entitlement of the current tenant.
3. Deeper catalog lookups.
4. Tenant super admin: allowed (plan still applies).
5. Role grants through :class:`HierarchyResolver`, OR across roles.

A normal deny is returned as an :class:`AccessDecision`, never raised.
Infrastructure faults (store, cache, corrupt grants) propagate as
:class:`~contextaccess.exceptions.ContextAccessError` subclasses.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

from ..cache import CacheProvider
from ..config import AccessConfig
from ..logging import get_access_logger
from .catalog import Catalog
from .constants import DecisionReason, HierarchyLevel, Scope
from .entitlement import PlanEntitlementGate
from .hierarchy import HierarchyResolver
from .models import AccessDecision, Principal, Role, RoleAccessTree, Tenant
from .scope import ScopeResolver
from .store import GrantStore, PlanDirectory


TenantResolver = Callable[[], Optional[Tenant]]

_NOT_FOUND_MESSAGES = {
    HierarchyLevel.MODULE: "Module '{code}' does not exist.",
    HierarchyLevel.SUB_MODULE: "Feature '{code}' does not exist.",
    HierarchyLevel.COMPONENT: "Component '{code}' does not exist.",
    HierarchyLevel.ACTION: "Action '{code}' does not exist.",
}

_NO_ACCESS_MESSAGES = {
    HierarchyLevel.MODULE: "You don't have access to this module.",
    HierarchyLevel.SUB_MODULE: "You don't have access to this feature.",
    HierarchyLevel.COMPONENT: "You don't have access to this component.",
    HierarchyLevel.ACTION: "You don't have permission to perform this action.",
}


class AccessDecisionEngine:
    """Answers "may this principal use this resource?" for every catalog level.

    Args:
        catalog: Catalog read model.
        store: Grant persistence.
        plans: Plan → module codes directory.
        cache: Cache provider shared by every sub-resolver.
        tenant_resolver: Returns the current tenant, or None outside a tenant.
        config: Engine configuration (defaults apply when omitted).

    Example::

        engine = AccessDecisionEngine(catalog, store, plans, InMemoryCache(), lambda: tenant)
        decision = engine.can_perform_action(user, "hrm", "leave", "requests", "approve")
        if decision.allowed:
            apply_scope(decision.scope)
    """

    def __init__(
        self,
        catalog: Catalog,
        store: GrantStore,
        plans: PlanDirectory,
        cache: CacheProvider,
        tenant_resolver: TenantResolver,
        config: Optional[AccessConfig] = None,
    ) -> None:
        self.config = config or AccessConfig()
        self._catalog = catalog
        self._cache = cache
        self._tenant_resolver = tenant_resolver

        self.hierarchy = HierarchyResolver(store, catalog, cache, self.config.cache)
        self.scope_resolver = ScopeResolver(self.hierarchy)
        self.entitlement = PlanEntitlementGate(catalog, plans, cache, self.config.cache)

    # ── Decisions ───────────────────────────────────────

    def can_access_module(self, principal: Principal, module_code: str) -> AccessDecision:
        return self._decide(principal, (module_code,))

    def can_access_sub_module(
        self, principal: Principal, module_code: str, sub_module_code: str
    ) -> AccessDecision:
        return self._decide(principal, (module_code, sub_module_code))

    def can_access_component(
        self,
        principal: Principal,
        module_code: str,
        sub_module_code: str,
        component_code: str,
    ) -> AccessDecision:
        return self._decide(principal, (module_code, sub_module_code, component_code))

    def can_perform_action(
        self,
        principal: Principal,
        module_code: str,
        sub_module_code: str,
        component_code: str,
        action_code: str,
    ) -> AccessDecision:
        """Action-level decision. An allow carries the principal's data scope."""
        return self._decide(principal, (module_code, sub_module_code, component_code, action_code))

    def _decide(
        self,
        principal: Principal,
        codes: tuple[str, ...],
        log_denials: bool = True,
    ) -> AccessDecision:
        level = HierarchyLevel.from_depth(len(codes) - 1)
        bypass_scope = Scope.ALL if level is HierarchyLevel.ACTION else None
        tenant = self._tenant_resolver()
        roles = self.config.roles

        def deny(reason: DecisionReason, message: str) -> AccessDecision:
            if log_denials:
                self._log_denial(principal, tenant, reason, codes)
            return AccessDecision.deny(reason, message)

        if principal.has_role(roles.platform_super_admin):
            return AccessDecision.allow(
                DecisionReason.PLATFORM_SUPER_ADMIN, "Platform Super Admin access.", bypass_scope
            )

        module = self._catalog.find_module_by_code(codes[0])
        if module is None:
            return deny(DecisionReason.NOT_FOUND, _NOT_FOUND_MESSAGES[HierarchyLevel.MODULE].format(code=codes[0]))

        if not self.entitlement.is_allowed(tenant, module.code):
            return deny(
                DecisionReason.PLAN_RESTRICTION,
                f"Module '{module.code}' is not included in your subscription plan.",
            )

        target_id = module.id
        for depth, code in enumerate(codes[1:], start=1):
            child_level = HierarchyLevel.from_depth(depth)
            entity = self._find_child(child_level, target_id, code)
            if entity is None:
                return deny(DecisionReason.NOT_FOUND, _NOT_FOUND_MESSAGES[child_level].format(code=code))
            target_id = entity.id

        if principal.has_role(roles.tenant_super_admin):
            return AccessDecision.allow(
                DecisionReason.TENANT_SUPER_ADMIN, "Tenant Super Admin access.", bypass_scope
            )

        if any(self.hierarchy.can_access(role, level, target_id) for role in principal.roles):
            scope = None
            if level is HierarchyLevel.ACTION:
                scope = self.scope_resolver.resolve(principal, target_id)
            return AccessDecision.allow(scope=scope)

        return deny(DecisionReason.no_access_for(level), _NO_ACCESS_MESSAGES[level])

    def _find_child(self, level: HierarchyLevel, parent_id: int, code: str):
        if level is HierarchyLevel.SUB_MODULE:
            return self._catalog.find_sub_module_by_code(parent_id, code)
        if level is HierarchyLevel.COMPONENT:
            return self._catalog.find_component_by_code(parent_id, code)
        return self._catalog.find_action_by_code(parent_id, code)

    def _log_denial(
        self,
        principal: Principal,
        tenant: Optional[Tenant],
        reason: DecisionReason,
        codes: tuple[str, ...],
    ) -> None:
        get_access_logger(
            __name__,
            principal_id=principal.id,
            tenant_id=tenant.id if tenant is not None else None,
        ).warning(
            "Access denied: %s on %s",
            reason.value,
            ".".join(codes),
            extra={"reason": reason.value, "path": ".".join(codes)},
        )

    # ── Derived views ───────────────────────────────────

    def get_user_access_scope(self, principal: Principal, action_id: int) -> Optional[Scope]:
        return self.scope_resolver.resolve(principal, action_id)

    def _user_modules_key(self, tenant: Optional[Tenant], principal: Principal) -> str:
        tenant_id = tenant.id if tenant is not None else "none"
        return f"{self.config.cache.key_prefix}:user_accessible_modules:{tenant_id}:{principal.id}"

    def get_accessible_modules(self, principal: Principal) -> list[dict[str, Any]]:
        """Active modules the principal may open, ordered by id.

        Each entry is ``{id, code, name, icon, route_prefix}``, suitable for
        building navigation. Cached per tenant and principal.
        """
        tenant = self._tenant_resolver()
        return self._cache.remember(
            self._user_modules_key(tenant, principal),
            self.config.cache.user_modules_ttl_seconds,
            lambda: [
                {
                    "id": module.id,
                    "code": module.code,
                    "name": module.name,
                    "icon": module.icon,
                    "route_prefix": module.route_prefix,
                }
                for module in self._catalog.active_modules()
                if self._decide(principal, (module.code,), log_denials=False).allowed
            ],
        )

    # ── Invalidation ────────────────────────────────────

    def clear_user_cache(self, principal: Principal) -> None:
        """Forget the principal's module list and the current tenant's entitlement."""
        tenant = self._tenant_resolver()
        self._cache.forget(self._user_modules_key(tenant, principal))
        if tenant is not None:
            self.entitlement.invalidate(tenant.id)

    def clear_role_cache(self, role: Role) -> None:
        self.hierarchy.clear_role_cache(role)

    def invalidate_tenant(self, tenant_id) -> None:
        self.entitlement.invalidate(tenant_id)

    # ── Role administration ─────────────────────────────

    def sync_role_access(
        self,
        role: Role,
        tree: Union[RoleAccessTree, Mapping[str, Any]],
    ) -> RoleAccessTree:
        return self.hierarchy.sync_role_access(role, tree)

    def get_role_access_tree(self, role: Role) -> RoleAccessTree:
        return self.hierarchy.get_role_access_tree(role)

    def grant_module_access(self, role: Role, module_id: int) -> None:
        self.hierarchy.grant_module_access(role, module_id)

    def revoke_module_access(self, role: Role, module_id: int) -> int:
        return self.hierarchy.revoke_module_access(role, module_id)


__all__ = ["AccessDecisionEngine", "TenantResolver"]
