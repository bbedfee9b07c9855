"""Data-visibility scope across a principal's roles."""

from __future__ import annotations

from typing import Optional

from .constants import Scope
from .hierarchy import HierarchyResolver
from .models import Principal


class ScopeResolver:
    """Union of role scopes for an action: the broadest one wins.

    A principal whose roles cover nothing gets ``None``, which callers must
    treat differently from ``Scope.OWN``.
    """

    def __init__(self, hierarchy: HierarchyResolver) -> None:
        self._hierarchy = hierarchy

    def resolve(self, principal: Principal, action_id: int) -> Optional[Scope]:
        return Scope.most_permissive(
            self._hierarchy.get_access_scope(role, action_id) for role in principal.roles
        )


__all__ = ["ScopeResolver"]
