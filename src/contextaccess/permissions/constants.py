"""Hierarchy levels, data scopes and decision reasons.

Provides:
- ``HierarchyLevel`` — module → sub_module → component → action, each level
  knowing its parent and the grant field it is stored in.
- ``Scope`` — data-visibility breadth with an explicit rank
  (``own < team < department < all``).
- ``DecisionReason`` — stable reason codes returned with every decision.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class HierarchyLevel(str, Enum):
    """A level of the catalog tree.

    The parent of each level is explicit so the upward walk never branches
    on strings::

        HierarchyLevel.ACTION.parent      # HierarchyLevel.COMPONENT
        HierarchyLevel.MODULE.parent      # None
        HierarchyLevel.SUB_MODULE.field   # "sub_module_id"
    """

    MODULE = "module"
    SUB_MODULE = "sub_module"
    COMPONENT = "component"
    ACTION = "action"

    @property
    def parent(self) -> Optional[HierarchyLevel]:
        return _PARENTS[self]

    @property
    def field(self) -> str:
        """Grant attribute holding the id for this level."""
        return f"{self.value}_id"

    @property
    def depth(self) -> int:
        """0 for module, 3 for action."""
        return _ORDER.index(self)

    @classmethod
    def from_depth(cls, depth: int) -> HierarchyLevel:
        return _ORDER[depth]

    def ancestors(self) -> tuple[HierarchyLevel, ...]:
        """Levels above this one, nearest first."""
        return tuple(reversed(_ORDER[: self.depth]))


_ORDER: tuple[HierarchyLevel, ...] = (
    HierarchyLevel.MODULE,
    HierarchyLevel.SUB_MODULE,
    HierarchyLevel.COMPONENT,
    HierarchyLevel.ACTION,
)

_PARENTS: dict[HierarchyLevel, Optional[HierarchyLevel]] = {
    HierarchyLevel.MODULE: None,
    HierarchyLevel.SUB_MODULE: HierarchyLevel.MODULE,
    HierarchyLevel.COMPONENT: HierarchyLevel.SUB_MODULE,
    HierarchyLevel.ACTION: HierarchyLevel.COMPONENT,
}


class Scope(str, Enum):
    """Breadth of data an action may touch.

    Higher rank is more permissive. Compare with :attr:`rank`, never by
    string value.
    """

    OWN = "own"
    TEAM = "team"
    DEPARTMENT = "department"
    ALL = "all"

    @property
    def rank(self) -> int:
        return _SCOPE_RANK[self]

    @classmethod
    def most_permissive(cls, scopes: Iterable[Optional[Scope]]) -> Optional[Scope]:
        """Highest-ranked scope, ignoring ``None``. Returns None for no scopes."""
        present = [s for s in scopes if s is not None]
        if not present:
            return None
        return max(present, key=lambda s: s.rank)


_SCOPE_RANK: dict[Scope, int] = {
    Scope.OWN: 0,
    Scope.TEAM: 1,
    Scope.DEPARTMENT: 2,
    Scope.ALL: 3,
}


class DecisionReason(str, Enum):
    """Reason codes carried by every access decision.

    Safe to expose to UI and middleware callers.
    """

    # Allow
    SUCCESS = "success"
    PLATFORM_SUPER_ADMIN = "platform_super_admin"
    TENANT_SUPER_ADMIN = "tenant_super_admin"

    # Deny
    NOT_FOUND = "not_found"
    PLAN_RESTRICTION = "plan_restriction"
    NO_MODULE_ACCESS = "no_module_access"
    NO_SUBMODULE_ACCESS = "no_submodule_access"
    NO_COMPONENT_ACCESS = "no_component_access"
    NO_ACTION_ACCESS = "no_action_access"

    # Boundary only: infrastructure fault converted to a closed deny
    INTERNAL_ERROR = "internal_error"

    @classmethod
    def no_access_for(cls, level: HierarchyLevel) -> DecisionReason:
        return _NO_ACCESS[level]


_NO_ACCESS: dict[HierarchyLevel, DecisionReason] = {
    HierarchyLevel.MODULE: DecisionReason.NO_MODULE_ACCESS,
    HierarchyLevel.SUB_MODULE: DecisionReason.NO_SUBMODULE_ACCESS,
    HierarchyLevel.COMPONENT: DecisionReason.NO_COMPONENT_ACCESS,
    HierarchyLevel.ACTION: DecisionReason.NO_ACTION_ACCESS,
}


__all__ = [
    "DecisionReason",
    "HierarchyLevel",
    "Scope",
]
