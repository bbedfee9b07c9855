"""Catalog read model: Module → SubModule → Component → Action.

The catalog is authored elsewhere and read-only to the engine. Codes are
human-readable and unique within their parent; ids are the resolver's
working keys.

Provides:
- ``Module``, ``SubModule``, ``Component``, ``Action`` — catalog records.
- ``Catalog`` — the lookup protocol the engine consumes.
- ``ModuleDescendants`` — precomputed descendant id sets of a module.
- ``InMemoryCatalog`` — indexed implementation, buildable from nested
  module definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Union

from ..exceptions import CatalogError
from .constants import HierarchyLevel


@dataclass(frozen=True)
class Module:
    id: int
    code: str
    name: str
    is_core: bool = False
    is_active: bool = True
    icon: str = ""
    route_prefix: str = ""


@dataclass(frozen=True)
class SubModule:
    id: int
    module_id: int
    code: str
    name: str


@dataclass(frozen=True)
class Component:
    id: int
    sub_module_id: int
    code: str
    name: str


@dataclass(frozen=True)
class Action:
    id: int
    component_id: int
    code: str
    name: str


CatalogEntity = Union[Module, SubModule, Component, Action]


@dataclass(frozen=True)
class ModuleDescendants:
    """Every id below a module, used for set-based subtree deletes."""

    module_id: int
    sub_module_ids: frozenset[int] = frozenset()
    component_ids: frozenset[int] = frozenset()
    action_ids: frozenset[int] = frozenset()

    def targets(self) -> dict[HierarchyLevel, frozenset[int]]:
        return {
            HierarchyLevel.MODULE: frozenset({self.module_id}),
            HierarchyLevel.SUB_MODULE: self.sub_module_ids,
            HierarchyLevel.COMPONENT: self.component_ids,
            HierarchyLevel.ACTION: self.action_ids,
        }


class Catalog(Protocol):
    """Lookups the engine needs from the catalog."""

    def find_module_by_code(self, code: str) -> Optional[Module]: ...

    def find_sub_module_by_code(self, module_id: int, code: str) -> Optional[SubModule]: ...

    def find_component_by_code(self, sub_module_id: int, code: str) -> Optional[Component]: ...

    def find_action_by_code(self, component_id: int, code: str) -> Optional[Action]: ...

    def get_module(self, module_id: int) -> Optional[Module]: ...

    def parent_id(self, level: HierarchyLevel, entity_id: int) -> Optional[int]: ...

    def active_modules(self) -> list[Module]: ...

    def core_module_codes(self) -> frozenset[str]: ...

    def descendants(self, module_id: int) -> Optional[ModuleDescendants]: ...


class InMemoryCatalog:
    """Indexed in-memory catalog.

    Records are added parents first; a child naming an unknown parent or
    reusing a code under the same parent raises :class:`CatalogError`.
    """

    def __init__(self) -> None:
        self._modules: dict[int, Module] = {}
        self._sub_modules: dict[int, SubModule] = {}
        self._components: dict[int, Component] = {}
        self._actions: dict[int, Action] = {}

        self._module_codes: dict[str, int] = {}
        self._child_codes: dict[tuple[HierarchyLevel, int, str], int] = {}
        self._children: dict[tuple[HierarchyLevel, int], list[int]] = {}

    # ── Authoring ───────────────────────────────────────

    def add_module(self, module: Module) -> Module:
        if module.id in self._modules:
            raise CatalogError(f"Duplicate module id {module.id}")
        if module.code in self._module_codes:
            raise CatalogError(f"Duplicate module code '{module.code}'")
        self._modules[module.id] = module
        self._module_codes[module.code] = module.id
        return module

    def add_sub_module(self, sub_module: SubModule) -> SubModule:
        self._add_child(
            HierarchyLevel.SUB_MODULE, self._sub_modules, sub_module, sub_module.module_id, self._modules
        )
        return sub_module

    def add_component(self, component: Component) -> Component:
        self._add_child(
            HierarchyLevel.COMPONENT, self._components, component, component.sub_module_id, self._sub_modules
        )
        return component

    def add_action(self, action: Action) -> Action:
        self._add_child(HierarchyLevel.ACTION, self._actions, action, action.component_id, self._components)
        return action

    def _add_child(
        self,
        level: HierarchyLevel,
        table: dict[int, Any],
        entity: Any,
        parent_id: int,
        parent_table: Mapping[int, Any],
    ) -> None:
        if entity.id in table:
            raise CatalogError(f"Duplicate {level.value} id {entity.id}")
        if parent_id not in parent_table:
            raise CatalogError(
                f"{level.value} '{entity.code}' references unknown {level.parent.value} id {parent_id}"
            )
        code_key = (level, parent_id, entity.code)
        if code_key in self._child_codes:
            raise CatalogError(
                f"Duplicate {level.value} code '{entity.code}' under {level.parent.value} {parent_id}"
            )
        table[entity.id] = entity
        self._child_codes[code_key] = entity.id
        self._children.setdefault((level, parent_id), []).append(entity.id)

    @classmethod
    def from_definitions(cls, definitions: Iterable[Mapping[str, Any]]) -> InMemoryCatalog:
        """Build a catalog from nested module definitions.

        Ids are taken from an ``id`` key when present, otherwise assigned
        sequentially per level starting at 1.

        Example::

            catalog = InMemoryCatalog.from_definitions([
                {
                    "code": "hrm", "name": "HRM",
                    "sub_modules": [{
                        "code": "leave", "name": "Leave",
                        "components": [{
                            "code": "requests", "name": "Leave Requests",
                            "actions": [{"code": "approve", "name": "Approve"}],
                        }],
                    }],
                },
            ])
        """
        catalog = cls()
        counters = {level: 0 for level in HierarchyLevel}

        def next_id(level: HierarchyLevel, definition: Mapping[str, Any]) -> int:
            if "id" in definition:
                counters[level] = max(counters[level], int(definition["id"]))
                return int(definition["id"])
            counters[level] += 1
            return counters[level]

        for mod_def in definitions:
            module = catalog.add_module(
                Module(
                    id=next_id(HierarchyLevel.MODULE, mod_def),
                    code=mod_def["code"],
                    name=mod_def.get("name", mod_def["code"]),
                    is_core=bool(mod_def.get("is_core", False)),
                    is_active=bool(mod_def.get("is_active", True)),
                    icon=mod_def.get("icon", ""),
                    route_prefix=mod_def.get("route_prefix", ""),
                )
            )
            for sub_def in mod_def.get("sub_modules", ()):
                sub_module = catalog.add_sub_module(
                    SubModule(
                        id=next_id(HierarchyLevel.SUB_MODULE, sub_def),
                        module_id=module.id,
                        code=sub_def["code"],
                        name=sub_def.get("name", sub_def["code"]),
                    )
                )
                for comp_def in sub_def.get("components", ()):
                    component = catalog.add_component(
                        Component(
                            id=next_id(HierarchyLevel.COMPONENT, comp_def),
                            sub_module_id=sub_module.id,
                            code=comp_def["code"],
                            name=comp_def.get("name", comp_def["code"]),
                        )
                    )
                    for act_def in comp_def.get("actions", ()):
                        catalog.add_action(
                            Action(
                                id=next_id(HierarchyLevel.ACTION, act_def),
                                component_id=component.id,
                                code=act_def["code"],
                                name=act_def.get("name", act_def["code"]),
                            )
                        )
        return catalog

    # ── Lookups ─────────────────────────────────────────

    def find_module_by_code(self, code: str) -> Optional[Module]:
        module_id = self._module_codes.get(code)
        return None if module_id is None else self._modules[module_id]

    def find_sub_module_by_code(self, module_id: int, code: str) -> Optional[SubModule]:
        entity_id = self._child_codes.get((HierarchyLevel.SUB_MODULE, module_id, code))
        return None if entity_id is None else self._sub_modules[entity_id]

    def find_component_by_code(self, sub_module_id: int, code: str) -> Optional[Component]:
        entity_id = self._child_codes.get((HierarchyLevel.COMPONENT, sub_module_id, code))
        return None if entity_id is None else self._components[entity_id]

    def find_action_by_code(self, component_id: int, code: str) -> Optional[Action]:
        entity_id = self._child_codes.get((HierarchyLevel.ACTION, component_id, code))
        return None if entity_id is None else self._actions[entity_id]

    def get_module(self, module_id: int) -> Optional[Module]:
        return self._modules.get(module_id)

    def parent_id(self, level: HierarchyLevel, entity_id: int) -> Optional[int]:
        """Id of the parent entity, None for modules and unknown ids."""
        if level is HierarchyLevel.SUB_MODULE:
            sub_module = self._sub_modules.get(entity_id)
            return sub_module.module_id if sub_module else None
        if level is HierarchyLevel.COMPONENT:
            component = self._components.get(entity_id)
            return component.sub_module_id if component else None
        if level is HierarchyLevel.ACTION:
            action = self._actions.get(entity_id)
            return action.component_id if action else None
        return None

    def active_modules(self) -> list[Module]:
        return sorted((m for m in self._modules.values() if m.is_active), key=lambda m: m.id)

    def core_module_codes(self) -> frozenset[str]:
        return frozenset(m.code for m in self._modules.values() if m.is_core and m.is_active)

    def descendants(self, module_id: int) -> Optional[ModuleDescendants]:
        if module_id not in self._modules:
            return None
        sub_ids = self._children.get((HierarchyLevel.SUB_MODULE, module_id), [])
        comp_ids = [
            c for s in sub_ids for c in self._children.get((HierarchyLevel.COMPONENT, s), [])
        ]
        action_ids = [
            a for c in comp_ids for a in self._children.get((HierarchyLevel.ACTION, c), [])
        ]
        return ModuleDescendants(
            module_id=module_id,
            sub_module_ids=frozenset(sub_ids),
            component_ids=frozenset(comp_ids),
            action_ids=frozenset(action_ids),
        )


__all__ = [
    "Action",
    "Catalog",
    "CatalogEntity",
    "Component",
    "InMemoryCatalog",
    "Module",
    "ModuleDescendants",
    "SubModule",
]
