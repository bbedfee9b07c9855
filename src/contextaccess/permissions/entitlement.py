"""Plan entitlement: which modules a tenant's subscription unlocks."""

from __future__ import annotations

import logging
from typing import Optional

from ..cache import CacheProvider
from ..config import CacheConfig
from .catalog import Catalog
from .models import Tenant
from .store import PlanDirectory

logger = logging.getLogger(__name__)


class PlanEntitlementGate:
    """Per-tenant allow list of module codes.

    The allowed set is the union of:
    - modules active on the tenant's plan,
    - module codes enabled on the tenant directly,
    - every core module that is active.

    A tenant without a plan still gets its custom and core modules. The set
    is cached per tenant; call :meth:`invalidate` after plan changes.
    """

    def __init__(
        self,
        catalog: Catalog,
        plans: PlanDirectory,
        cache: CacheProvider,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._catalog = catalog
        self._plans = plans
        self._cache = cache
        self._config = config or CacheConfig()

    def _key(self, tenant_id) -> str:
        return f"{self._config.key_prefix}:tenant_modules_access:{tenant_id}"

    def allowed_module_codes(self, tenant: Tenant) -> frozenset[str]:
        codes = self._cache.remember(
            self._key(tenant.id),
            self._config.tenant_modules_ttl_seconds,
            lambda: sorted(self._compute(tenant)),
        )
        return frozenset(codes)

    def _compute(self, tenant: Tenant) -> set[str]:
        codes = set(tenant.custom_module_codes)
        codes |= self._catalog.core_module_codes()
        if tenant.plan_id is not None:
            codes |= self._plans.active_module_codes(tenant.plan_id)
        else:
            logger.debug("Tenant %s has no plan, core and custom modules only", tenant.id)
        return codes

    def is_allowed(self, tenant: Optional[Tenant], module_code: str) -> bool:
        """False when there is no tenant context at all."""
        if tenant is None:
            return False
        return module_code in self.allowed_module_codes(tenant)

    def invalidate(self, tenant_id) -> None:
        self._cache.forget(self._key(tenant_id))


__all__ = ["PlanEntitlementGate"]
