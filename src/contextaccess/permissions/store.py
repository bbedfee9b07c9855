"""Grant persistence and plan directory.

Provides:
- ``GrantStore`` — protocol consumed by :class:`HierarchyResolver`.
- ``InMemoryGrantStore`` — copy-on-write, thread-safe store.
- ``RedisGrantStore`` — one JSON row list per role in Redis.
- ``PlanDirectory`` / ``InMemoryPlanDirectory`` — plan → active module codes.

A role's grant set is always replaced in one step so a concurrent reader sees
either the old set or the new one, never an empty intermediate state.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Iterable, Mapping, Optional, Protocol

import redis

from ..exceptions import GrantIntegrityError, StorageError
from .constants import HierarchyLevel
from .models import Grant

logger = logging.getLogger(__name__)

Targets = Mapping[HierarchyLevel, Iterable[int]]


class GrantStore(Protocol):
    def grants_for_role(self, role_id: int) -> tuple[Grant, ...]: ...

    def has_grant(self, role_id: int, level: HierarchyLevel, target_id: int) -> bool: ...

    def replace_role_grants(self, role_id: int, grants: Iterable[Grant]) -> None: ...

    def add_grant(self, grant: Grant) -> None: ...

    def delete_grants(self, role_id: int, targets: Targets) -> int: ...

    def replace_subtree(self, role_id: int, targets: Targets, grant: Grant) -> int: ...


def _dedupe(role_id: int, grants: Iterable[Grant]) -> tuple[Grant, ...]:
    rows: dict[tuple[HierarchyLevel, int], Grant] = {}
    for grant in grants:
        if grant.role_id != role_id:
            raise GrantIntegrityError(
                f"Grant for role {grant.role_id} passed to role {role_id}",
                role_id=role_id,
            )
        rows[grant.key] = grant
    return tuple(rows.values())


def _upsert(grants: Iterable[Grant], grant: Grant) -> tuple[Grant, ...]:
    kept = [g for g in grants if g.key != grant.key]
    kept.append(grant)
    return tuple(kept)


def _without(grants: tuple[Grant, ...], targets: Targets) -> tuple[tuple[Grant, ...], int]:
    doomed = {level: frozenset(ids) for level, ids in targets.items()}
    kept = tuple(g for g in grants if g.target_id not in doomed.get(g.level, ()))
    return kept, len(grants) - len(kept)


class InMemoryGrantStore:
    """Thread-safe in-process grant store.

    Each role maps to an immutable tuple; writers build a new tuple and swap
    it in under the lock.
    """

    def __init__(self, grants: Iterable[Grant] = ()) -> None:
        self._lock = threading.RLock()
        self._by_role: dict[int, tuple[Grant, ...]] = {}
        for grant in grants:
            self.add_grant(grant)

    def grants_for_role(self, role_id: int) -> tuple[Grant, ...]:
        return self._by_role.get(role_id, ())

    def has_grant(self, role_id: int, level: HierarchyLevel, target_id: int) -> bool:
        return any(g.key == (level, target_id) for g in self.grants_for_role(role_id))

    def _swap(self, role_id: int, rows: tuple[Grant, ...]) -> None:
        self._by_role[role_id] = rows

    def replace_role_grants(self, role_id: int, grants: Iterable[Grant]) -> None:
        rows = _dedupe(role_id, grants)
        with self._lock:
            self._swap(role_id, rows)

    def add_grant(self, grant: Grant) -> None:
        with self._lock:
            self._swap(grant.role_id, _upsert(self.grants_for_role(grant.role_id), grant))

    def delete_grants(self, role_id: int, targets: Targets) -> int:
        with self._lock:
            kept, removed = _without(self.grants_for_role(role_id), targets)
            if removed:
                self._swap(role_id, kept)
            return removed

    def replace_subtree(self, role_id: int, targets: Targets, grant: Grant) -> int:
        """Drop grants on ``targets`` and upsert ``grant`` in one swap."""
        with self._lock:
            kept, removed = _without(self.grants_for_role(role_id), targets)
            self._swap(role_id, _upsert(kept, grant))
            return removed

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._by_role.values())


class RedisGrantStore:
    """Grant store keeping one JSON row list per role.

    Layout::

        {prefix}:grants:{role_id}  ->  [{"module_id": 1, ..., "scope": "all"}, ...]

    Replacement is a single ``SET``. Every write, replacement included, runs
    inside a per-role ``redis`` lock so writers in different processes are
    serialized per role.

    Args:
        client: ``redis.Redis`` created with ``decode_responses=True``.
        prefix: Key prefix, normally ``CacheConfig.key_prefix``.
        lock_timeout: Seconds before a held role lock expires.
    """

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "contextaccess",
        lock_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._lock_timeout = lock_timeout

    @classmethod
    def from_url(cls, url: str, prefix: str = "contextaccess") -> RedisGrantStore:
        return cls(redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, role_id: int) -> str:
        return f"{self._prefix}:grants:{role_id}"

    def _load(self, role_id: int) -> tuple[Grant, ...]:
        key = self._key(role_id)
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            raise StorageError(f"Failed to read grants for role {role_id}: {e}", role_id=role_id) from e
        if raw is None:
            return ()
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as e:
            raise GrantIntegrityError(
                f"Corrupt grant list for role {role_id} at '{key}'", role_id=role_id
            ) from e
        if not isinstance(rows, list):
            raise GrantIntegrityError(f"Corrupt grant list for role {role_id} at '{key}'", role_id=role_id)
        return tuple(Grant.from_row(role_id, row) for row in rows)

    def _save(self, role_id: int, grants: tuple[Grant, ...]) -> None:
        try:
            if grants:
                self._client.set(self._key(role_id), json.dumps([g.to_row() for g in grants]))
            else:
                self._client.delete(self._key(role_id))
        except redis.RedisError as e:
            raise StorageError(f"Failed to write grants for role {role_id}: {e}", role_id=role_id) from e

    def _role_lock(self, role_id: int):
        return self._client.lock(f"{self._key(role_id)}:lock", timeout=self._lock_timeout)

    def grants_for_role(self, role_id: int) -> tuple[Grant, ...]:
        return self._load(role_id)

    def has_grant(self, role_id: int, level: HierarchyLevel, target_id: int) -> bool:
        return any(g.key == (level, target_id) for g in self._load(role_id))

    def replace_role_grants(self, role_id: int, grants: Iterable[Grant]) -> None:
        rows = _dedupe(role_id, grants)
        try:
            with self._role_lock(role_id):
                self._save(role_id, rows)
        except redis.RedisError as e:
            raise StorageError(f"Failed to replace grants for role {role_id}: {e}", role_id=role_id) from e

    def add_grant(self, grant: Grant) -> None:
        try:
            with self._role_lock(grant.role_id):
                self._save(grant.role_id, _upsert(self._load(grant.role_id), grant))
        except redis.RedisError as e:
            raise StorageError(f"Failed to add grant for role {grant.role_id}: {e}", role_id=grant.role_id) from e

    def delete_grants(self, role_id: int, targets: Targets) -> int:
        try:
            with self._role_lock(role_id):
                kept, removed = _without(self._load(role_id), targets)
                if removed:
                    self._save(role_id, kept)
                return removed
        except redis.RedisError as e:
            raise StorageError(f"Failed to delete grants for role {role_id}: {e}", role_id=role_id) from e

    def replace_subtree(self, role_id: int, targets: Targets, grant: Grant) -> int:
        try:
            with self._role_lock(role_id):
                kept, removed = _without(self._load(role_id), targets)
                self._save(role_id, _upsert(kept, grant))
                return removed
        except redis.RedisError as e:
            raise StorageError(f"Failed to replace subtree for role {role_id}: {e}", role_id=role_id) from e


class PlanDirectory(Protocol):
    def active_module_codes(self, plan_id: int) -> frozenset[str]: ...


class InMemoryPlanDirectory:
    """Plan → module pivot with an active flag per entry.

    Example::

        plans = InMemoryPlanDirectory({1: {"hrm": True, "finance": False}})
        plans.active_module_codes(1)  # frozenset({"hrm"})
    """

    def __init__(self, plans: Optional[Mapping[int, Mapping[str, bool]]] = None) -> None:
        self._lock = threading.Lock()
        self._plans: dict[int, dict[str, bool]] = {
            plan_id: dict(modules) for plan_id, modules in (plans or {}).items()
        }

    def set_plan_module(self, plan_id: int, module_code: str, active: bool = True) -> None:
        with self._lock:
            self._plans.setdefault(plan_id, {})[module_code] = active

    def active_module_codes(self, plan_id: int) -> frozenset[str]:
        with self._lock:
            modules = self._plans.get(plan_id, {})
            return frozenset(code for code, active in modules.items() if active)


__all__ = [
    "GrantStore",
    "InMemoryGrantStore",
    "InMemoryPlanDirectory",
    "PlanDirectory",
    "RedisGrantStore",
]
