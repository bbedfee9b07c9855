"""Role grants resolved through the catalog hierarchy.

A grant at any level covers everything below it: a module grant opens every
sub-module, component and action of that module. Membership is answered by
walking upward from the requested entity until a direct grant is found or
the module level is passed.

Cache layout (all keys prefixed with ``CacheConfig.key_prefix``)::

    role_access_gen:{role_id}                       generation token
    role_access:{role_id}:{gen}:{level}:{id}        bool, one per walk step
    role_accessible_modules:{role_id}               sorted module ids

Without generation invalidation the ``{gen}`` segment is omitted and
fine-grained entries expire by TTL.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Iterable, Mapping, Optional, Union

from ..cache import CacheProvider
from ..config import CacheConfig
from ..exceptions import CatalogError
from .catalog import Catalog
from .constants import HierarchyLevel, Scope
from .models import Grant, Role, RoleAccessTree
from .store import GrantStore

logger = logging.getLogger(__name__)

ROLE_LOCK_STRIPES = 64


class HierarchyResolver:
    """Grant membership, scope lookup and the role administration API.

    Args:
        store: Grant persistence.
        catalog: Read-only catalog used for parent lookups.
        cache: Shared cache provider.
        config: Key prefix, TTLs and invalidation policy.
    """

    def __init__(
        self,
        store: GrantStore,
        catalog: Catalog,
        cache: CacheProvider,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._cache = cache
        self._config = config or CacheConfig()
        self._role_locks = tuple(threading.RLock() for _ in range(ROLE_LOCK_STRIPES))

    # ── Cache keys ──────────────────────────────────────

    def _generation_key(self, role_id: int) -> str:
        return f"{self._config.key_prefix}:role_access_gen:{role_id}"

    def _generation(self, role_id: int) -> Optional[str]:
        if not self._config.generation_invalidation:
            return None
        return self._cache.remember(
            self._generation_key(role_id),
            self._config.role_access_ttl_seconds,
            lambda: uuid.uuid4().hex,
        )

    def _access_key(self, role_id: int, level: HierarchyLevel, target_id: int) -> str:
        gen = self._generation(role_id)
        base = f"{self._config.key_prefix}:role_access:{role_id}"
        if gen is not None:
            base = f"{base}:{gen}"
        return f"{base}:{level.value}:{target_id}"

    def _modules_key(self, role_id: int) -> str:
        return f"{self._config.key_prefix}:role_accessible_modules:{role_id}"

    def _role_lock(self, role_id: int) -> threading.RLock:
        # Striped: roles sharing a stripe serialize, the lock count stays fixed.
        return self._role_locks[hash(role_id) % ROLE_LOCK_STRIPES]

    # ── Reads ───────────────────────────────────────────

    def can_access(self, role: Role, level: Union[HierarchyLevel, str], target_id: int) -> bool:
        """Whether ``role`` holds a grant at ``level``/``target_id`` or any ancestor.

        Each step of the walk is cached separately, so a cached ancestor
        answer short-circuits the rest of the chain.
        """
        level = HierarchyLevel(level)
        return self._cache.remember(
            self._access_key(role.id, level, target_id),
            self._config.role_access_ttl_seconds,
            lambda: self._resolve(role, level, target_id),
        )

    def _resolve(self, role: Role, level: HierarchyLevel, target_id: int) -> bool:
        if self._store.has_grant(role.id, level, target_id):
            return True
        if level.parent is None:
            return False
        parent_id = self._catalog.parent_id(level, target_id)
        if parent_id is None:
            return False
        return self.can_access(role, level.parent, parent_id)

    def get_access_scope(self, role: Role, action_id: int) -> Optional[Scope]:
        """Scope of the most specific grant covering an action.

        Action grants carry their own scope; grants above the action level
        always yield ``all``. Returns None when nothing covers the action or
        the action is not in the catalog.
        """
        if self._catalog.parent_id(HierarchyLevel.ACTION, action_id) is None:
            return None

        grants = {grant.key: grant for grant in self._store.grants_for_role(role.id)}
        level: Optional[HierarchyLevel] = HierarchyLevel.ACTION
        target_id: Optional[int] = action_id
        while level is not None and target_id is not None:
            grant = grants.get((level, target_id))
            if grant is not None:
                return grant.scope
            target_id = self._catalog.parent_id(level, target_id)
            level = level.parent
        return None

    def module_id_for(self, level: HierarchyLevel, target_id: int) -> Optional[int]:
        """Walk an entity up to its module. None when the chain is broken."""
        current: Optional[int] = target_id
        while level is not HierarchyLevel.MODULE:
            current = self._catalog.parent_id(level, current)
            if current is None:
                return None
            level = level.parent
        return current

    def get_accessible_module_ids(self, role: Role) -> frozenset[int]:
        """Ids of modules touched by any of the role's grants."""
        ids = self._cache.remember(
            self._modules_key(role.id),
            self._config.role_access_ttl_seconds,
            lambda: self._compute_module_ids(role),
        )
        return frozenset(ids)

    def _compute_module_ids(self, role: Role) -> list[int]:
        module_ids = set()
        for grant in self._store.grants_for_role(role.id):
            module_id = self.module_id_for(grant.level, grant.target_id)
            if module_id is not None:
                module_ids.add(module_id)
        return sorted(module_ids)

    def get_role_access_tree(self, role: Role) -> RoleAccessTree:
        return RoleAccessTree.from_grants(self._store.grants_for_role(role.id))

    # ── Writes ──────────────────────────────────────────

    def sync_role_access(
        self,
        role: Role,
        tree: Union[RoleAccessTree, Mapping[str, Any]],
    ) -> RoleAccessTree:
        """Replace every grant of ``role`` with the contents of ``tree``.

        Accepts a :class:`RoleAccessTree` or its dict form. Running the same
        sync twice leaves the same rows.

        Returns:
            The stored access tree after the sync.
        """
        if not isinstance(tree, RoleAccessTree):
            tree = RoleAccessTree.model_validate(tree)
        grants = tree.to_grants(role.id)

        with self._role_lock(role.id):
            previous = self._store.grants_for_role(role.id)
            self._store.replace_role_grants(role.id, grants)
            self._forget_access_keys(role.id, _keys_of(previous) | _keys_of(grants))
            self.clear_role_cache(role)

        logger.info(
            "Synced access for role %s: %d grants (was %d)",
            role.id,
            len(grants),
            len(previous),
        )
        return RoleAccessTree.from_grants(grants)

    def grant_module_access(self, role: Role, module_id: int) -> None:
        """Give ``role`` full access to a module.

        Finer grants under the module are replaced by one module-level grant
        in a single store write, so readers never see the module uncovered.
        Repeating the call is a no-op.

        Raises:
            CatalogError: the module does not exist.
        """
        descendants = self._catalog.descendants(module_id)
        if descendants is None:
            raise CatalogError(f"Cannot grant unknown module id {module_id}", module_id=module_id)

        targets = descendants.targets()
        with self._role_lock(role.id):
            self._store.replace_subtree(role.id, targets, Grant.at(role.id, HierarchyLevel.MODULE, module_id))
            self._forget_access_keys(role.id, _expand(targets))
            self.clear_role_cache(role)

        logger.info("Granted module %s to role %s", module_id, role.id)

    def revoke_module_access(self, role: Role, module_id: int) -> int:
        """Remove the module grant and every grant below it.

        Returns:
            Number of grant rows removed. 0 for an unknown module.
        """
        descendants = self._catalog.descendants(module_id)
        if descendants is None:
            logger.debug("Revoke for unknown module %s ignored", module_id)
            return 0

        targets = descendants.targets()
        with self._role_lock(role.id):
            removed = self._store.delete_grants(role.id, targets)
            self._forget_access_keys(role.id, _expand(targets))
            self.clear_role_cache(role)

        logger.info("Revoked module %s from role %s (%d rows)", module_id, role.id, removed)
        return removed

    # ── Invalidation ────────────────────────────────────

    def clear_role_cache(self, role: Role) -> None:
        """Drop cached answers for ``role``.

        Always evicts the accessible-modules entry. With generation
        invalidation the generation token is dropped too, so every cached
        (level, id) answer of the role becomes unreachable.
        """
        self._cache.forget(self._modules_key(role.id))
        if self._config.generation_invalidation:
            self._cache.forget(self._generation_key(role.id))

    def _forget_access_keys(
        self,
        role_id: int,
        keys: Iterable[tuple[HierarchyLevel, int]],
    ) -> None:
        for level, target_id in keys:
            self._cache.forget(self._access_key(role_id, level, target_id))


def _keys_of(grants: Iterable[Grant]) -> set[tuple[HierarchyLevel, int]]:
    return {grant.key for grant in grants}


def _expand(targets: Mapping[HierarchyLevel, Iterable[int]]) -> set[tuple[HierarchyLevel, int]]:
    return {(level, target_id) for level, ids in targets.items() for target_id in ids}


__all__ = ["HierarchyResolver"]
