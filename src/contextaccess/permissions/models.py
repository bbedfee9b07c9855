"""Principals, grants, decisions and the editable access tree.

Runtime records are frozen dataclasses; the access tree exchanged with admin
UIs is a Pydantic model so it can be validated straight from request JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..exceptions import GrantIntegrityError
from .constants import DecisionReason, HierarchyLevel, Scope


@dataclass(frozen=True)
class Role:
    """A role that owns zero or more grants."""

    id: int
    name: str


@dataclass(frozen=True)
class Principal:
    """The user being authorized, represented by the roles it holds."""

    id: int | str
    roles: tuple[Role, ...] = ()

    def has_role(self, name: str) -> bool:
        return any(role.name == name for role in self.roles)


@dataclass(frozen=True)
class Tenant:
    """Tenant context driving plan entitlement.

    Attributes:
        id: Tenant identifier.
        plan_id: Subscription plan, None when the tenant has no plan.
        custom_module_codes: Module codes enabled for this tenant on top of the plan.
    """

    id: int | str
    plan_id: Optional[int] = None
    custom_module_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Grant:
    """A stored permission at exactly one hierarchy level.

    Exactly one of ``module_id``, ``sub_module_id``, ``component_id`` and
    ``action_id`` is set. Scope is only meaningful on action-level grants and
    is normalized to ``all`` everywhere else.

    Raises:
        GrantIntegrityError: zero or several level ids are set.
    """

    role_id: int
    module_id: Optional[int] = None
    sub_module_id: Optional[int] = None
    component_id: Optional[int] = None
    action_id: Optional[int] = None
    scope: Scope = Scope.ALL

    def __post_init__(self) -> None:
        levels = [
            level for level in HierarchyLevel if getattr(self, level.field) is not None
        ]
        if len(levels) != 1:
            raise GrantIntegrityError(
                f"Grant for role {self.role_id} must reference exactly one hierarchy level, "
                f"got {[level.value for level in levels] or 'none'}",
                role_id=self.role_id,
            )
        object.__setattr__(self, "scope", Scope(self.scope))
        if levels[0] is not HierarchyLevel.ACTION and self.scope is not Scope.ALL:
            object.__setattr__(self, "scope", Scope.ALL)

    @classmethod
    def at(
        cls,
        role_id: int,
        level: HierarchyLevel,
        target_id: int,
        scope: Scope = Scope.ALL,
    ) -> Grant:
        return cls(role_id=role_id, scope=scope, **{level.field: target_id})

    @property
    def level(self) -> HierarchyLevel:
        for level in HierarchyLevel:
            if getattr(self, level.field) is not None:
                return level
        raise GrantIntegrityError(f"Grant for role {self.role_id} has no level")

    @property
    def target_id(self) -> int:
        return getattr(self, self.level.field)

    @property
    def key(self) -> tuple[HierarchyLevel, int]:
        return (self.level, self.target_id)

    def to_row(self) -> dict[str, Any]:
        return {
            "module_id": self.module_id,
            "sub_module_id": self.sub_module_id,
            "component_id": self.component_id,
            "action_id": self.action_id,
            "scope": self.scope.value,
        }

    @classmethod
    def from_row(cls, role_id: int, row: dict[str, Any]) -> Grant:
        """Build a grant from a stored row, validating the level invariant."""
        return cls(
            role_id=role_id,
            module_id=row.get("module_id"),
            sub_module_id=row.get("sub_module_id"),
            component_id=row.get("component_id"),
            action_id=row.get("action_id"),
            scope=row.get("scope") or Scope.ALL,
        )


@dataclass(frozen=True)
class AccessDecision:
    """Structured outcome of an access check.

    A normal deny is a decision, never an exception.
    """

    allowed: bool
    reason: DecisionReason
    message: str = ""
    scope: Optional[Scope] = field(default=None, compare=False)
    error_code: Optional[str] = field(default=None, compare=False)

    @property
    def denied(self) -> bool:
        return not self.allowed

    @classmethod
    def allow(
        cls,
        reason: DecisionReason = DecisionReason.SUCCESS,
        message: str = "Access granted.",
        scope: Optional[Scope] = None,
    ) -> AccessDecision:
        return cls(allowed=True, reason=reason, message=message, scope=scope)

    @classmethod
    def deny(
        cls,
        reason: DecisionReason,
        message: str,
        error_code: Optional[str] = None,
    ) -> AccessDecision:
        return cls(allowed=False, reason=reason, message=message, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "message": self.message,
        }
        if self.scope is not None:
            data["scope"] = self.scope.value
        if self.error_code is not None:
            data["error_code"] = self.error_code
        return data


class ActionAccess(BaseModel):
    """Action-level entry of a role access tree."""

    id: int
    scope: Scope = Scope.ALL

    @field_validator("scope", mode="before")
    @classmethod
    def default_scope(cls, v: Any) -> Any:
        return Scope.ALL if v is None or v == "" else v


class RoleAccessTree(BaseModel):
    """Grant set of a role partitioned by level, as edited in admin UIs.

    Bare action ids are accepted and default to scope ``all``::

        RoleAccessTree.model_validate({
            "modules": [1],
            "actions": [20, {"id": 21, "scope": "own"}],
        })
    """

    model_config = {"extra": "forbid"}

    modules: list[int] = Field(default_factory=list)
    sub_modules: list[int] = Field(default_factory=list)
    components: list[int] = Field(default_factory=list)
    actions: list[ActionAccess] = Field(default_factory=list)

    @field_validator("modules", "sub_modules", "components", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("actions", mode="before")
    @classmethod
    def bare_action_ids(cls, v: Any) -> Any:
        if v is None:
            return []
        return [{"id": item} if isinstance(item, (int, str)) else item for item in v]

    def to_grants(self, role_id: int) -> tuple[Grant, ...]:
        """Expand into grant rows. Duplicate targets collapse, last entry wins."""
        rows: dict[tuple[HierarchyLevel, int], Grant] = {}
        for level, ids in (
            (HierarchyLevel.MODULE, self.modules),
            (HierarchyLevel.SUB_MODULE, self.sub_modules),
            (HierarchyLevel.COMPONENT, self.components),
        ):
            for target_id in ids:
                rows[(level, target_id)] = Grant.at(role_id, level, target_id)
        for action in self.actions:
            rows[(HierarchyLevel.ACTION, action.id)] = Grant.at(
                role_id, HierarchyLevel.ACTION, action.id, action.scope
            )
        return tuple(rows.values())

    @classmethod
    def from_grants(cls, grants: tuple[Grant, ...] | list[Grant]) -> RoleAccessTree:
        by_level: dict[HierarchyLevel, list[Grant]] = {level: [] for level in HierarchyLevel}
        for grant in grants:
            by_level[grant.level].append(grant)
        return cls(
            modules=sorted(g.target_id for g in by_level[HierarchyLevel.MODULE]),
            sub_modules=sorted(g.target_id for g in by_level[HierarchyLevel.SUB_MODULE]),
            components=sorted(g.target_id for g in by_level[HierarchyLevel.COMPONENT]),
            actions=[
                ActionAccess(id=g.target_id, scope=g.scope)
                for g in sorted(by_level[HierarchyLevel.ACTION], key=lambda g: g.target_id)
            ],
        )


__all__ = [
    "AccessDecision",
    "ActionAccess",
    "Grant",
    "Principal",
    "Role",
    "RoleAccessTree",
    "Tenant",
]
