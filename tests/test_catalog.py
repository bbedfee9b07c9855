"""Tests for the in-memory catalog."""

from __future__ import annotations

import pytest

from contextaccess import CatalogError, HierarchyLevel, InMemoryCatalog
from contextaccess.permissions import Action, Component, Module, SubModule

from .conftest import (
    ATTENDANCE,
    BALANCES,
    BALANCES_VIEW,
    DAILY,
    DAILY_VIEW,
    DASHBOARD,
    HRM,
    LEAVE,
    REQUESTS,
    REQUESTS_APPROVE,
    REQUESTS_VIEW,
)


class TestFromDefinitions:
    def test_ids_assigned_per_level(self, catalog) -> None:
        assert catalog.find_module_by_code("hrm").id == HRM
        assert catalog.find_sub_module_by_code(HRM, "attendance").id == ATTENDANCE
        assert catalog.find_component_by_code(LEAVE, "balances").id == BALANCES
        assert catalog.find_action_by_code(REQUESTS, "approve").id == REQUESTS_APPROVE

    def test_codes_are_scoped_to_parent(self, catalog) -> None:
        # "view" exists under several components
        assert catalog.find_action_by_code(REQUESTS, "view").id == REQUESTS_VIEW
        assert catalog.find_action_by_code(BALANCES, "view").id == BALANCES_VIEW
        assert catalog.find_action_by_code(REQUESTS, "post") is None
        assert catalog.find_sub_module_by_code(DASHBOARD, "leave") is None

    def test_module_attributes(self, catalog) -> None:
        hrm = catalog.get_module(HRM)
        assert hrm == Module(id=HRM, code="hrm", name="HRM", icon="users", route_prefix="/hrm")
        assert catalog.get_module(DASHBOARD).is_core is True

    def test_explicit_ids(self) -> None:
        catalog = InMemoryCatalog.from_definitions(
            [{"id": 7, "code": "crm"}, {"code": "sales"}]
        )
        assert catalog.find_module_by_code("crm").id == 7
        assert catalog.find_module_by_code("sales").id == 8
        assert catalog.get_module(7).name == "crm"

    def test_duplicate_module_code(self) -> None:
        with pytest.raises(CatalogError, match="Duplicate module code"):
            InMemoryCatalog.from_definitions([{"code": "hrm"}, {"code": "hrm"}])

    def test_duplicate_child_code(self) -> None:
        with pytest.raises(CatalogError):
            InMemoryCatalog.from_definitions(
                [{"code": "hrm", "sub_modules": [{"code": "leave"}, {"code": "leave"}]}]
            )


class TestAuthoring:
    def test_unknown_parent(self) -> None:
        catalog = InMemoryCatalog()
        with pytest.raises(CatalogError, match="unknown module"):
            catalog.add_sub_module(SubModule(id=1, module_id=9, code="leave", name="Leave"))

    def test_duplicate_id(self) -> None:
        catalog = InMemoryCatalog()
        catalog.add_module(Module(id=1, code="hrm", name="HRM"))
        with pytest.raises(CatalogError):
            catalog.add_module(Module(id=1, code="crm", name="CRM"))

    def test_chain(self) -> None:
        catalog = InMemoryCatalog()
        catalog.add_module(Module(id=1, code="hrm", name="HRM"))
        catalog.add_sub_module(SubModule(id=2, module_id=1, code="leave", name="Leave"))
        catalog.add_component(Component(id=3, sub_module_id=2, code="requests", name="Requests"))
        catalog.add_action(Action(id=4, component_id=3, code="view", name="View"))
        assert catalog.parent_id(HierarchyLevel.ACTION, 4) == 3
        assert catalog.parent_id(HierarchyLevel.COMPONENT, 3) == 2
        assert catalog.parent_id(HierarchyLevel.SUB_MODULE, 2) == 1


class TestLookups:
    def test_parent_id(self, catalog) -> None:
        assert catalog.parent_id(HierarchyLevel.ACTION, DAILY_VIEW) == DAILY
        assert catalog.parent_id(HierarchyLevel.COMPONENT, DAILY) == ATTENDANCE
        assert catalog.parent_id(HierarchyLevel.SUB_MODULE, ATTENDANCE) == HRM
        assert catalog.parent_id(HierarchyLevel.MODULE, HRM) is None
        assert catalog.parent_id(HierarchyLevel.ACTION, 999) is None

    def test_active_modules_ordered(self, catalog) -> None:
        assert [m.code for m in catalog.active_modules()] == ["hrm", "finance", "dashboard"]

    def test_core_module_codes(self, catalog) -> None:
        assert catalog.core_module_codes() == frozenset({"dashboard"})

    def test_inactive_core_module_excluded(self) -> None:
        catalog = InMemoryCatalog.from_definitions([{"code": "old", "is_core": True, "is_active": False}])
        assert catalog.core_module_codes() == frozenset()

    def test_descendants(self, catalog) -> None:
        descendants = catalog.descendants(HRM)
        assert descendants.sub_module_ids == frozenset({LEAVE, ATTENDANCE})
        assert descendants.component_ids == frozenset({REQUESTS, BALANCES, DAILY})
        assert descendants.action_ids == frozenset({REQUESTS_VIEW, REQUESTS_APPROVE, BALANCES_VIEW, DAILY_VIEW})
        assert descendants.targets()[HierarchyLevel.MODULE] == frozenset({HRM})

    def test_descendants_unknown_module(self, catalog) -> None:
        assert catalog.descendants(999) is None
