"""Shared fixtures: a small HRM-style catalog, plans and an engine."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from contextaccess import (
    AccessConfig,
    AccessDecisionEngine,
    InMemoryCache,
    InMemoryCatalog,
    InMemoryGrantStore,
    InMemoryPlanDirectory,
    Principal,
    Role,
    Tenant,
)

CATALOG_DEFINITIONS = [
    {
        "code": "hrm",
        "name": "HRM",
        "icon": "users",
        "route_prefix": "/hrm",
        "sub_modules": [
            {
                "code": "leave",
                "name": "Leave",
                "components": [
                    {
                        "code": "requests",
                        "name": "Leave Requests",
                        "actions": [
                            {"code": "view", "name": "View"},
                            {"code": "approve", "name": "Approve"},
                        ],
                    },
                    {
                        "code": "balances",
                        "name": "Leave Balances",
                        "actions": [{"code": "view", "name": "View"}],
                    },
                ],
            },
            {
                "code": "attendance",
                "name": "Attendance",
                "components": [
                    {
                        "code": "daily",
                        "name": "Daily Attendance",
                        "actions": [{"code": "view", "name": "View"}],
                    },
                ],
            },
        ],
    },
    {
        "code": "finance",
        "name": "Finance",
        "sub_modules": [
            {
                "code": "ledger",
                "name": "Ledger",
                "components": [
                    {
                        "code": "entries",
                        "name": "Entries",
                        "actions": [{"code": "post", "name": "Post"}],
                    },
                ],
            },
        ],
    },
    {
        "code": "dashboard",
        "name": "Dashboard",
        "is_core": True,
        "sub_modules": [
            {
                "code": "overview",
                "name": "Overview",
                "components": [
                    {
                        "code": "widgets",
                        "name": "Widgets",
                        "actions": [{"code": "view", "name": "View"}],
                    },
                ],
            },
        ],
    },
    {"code": "legacy", "name": "Legacy", "is_active": False},
]

# Ids assigned by from_definitions, in definition order
HRM, FINANCE, DASHBOARD, LEGACY = 1, 2, 3, 4
LEAVE, ATTENDANCE, LEDGER, OVERVIEW = 1, 2, 3, 4
REQUESTS, BALANCES, DAILY, ENTRIES, WIDGETS = 1, 2, 3, 4, 5
REQUESTS_VIEW, REQUESTS_APPROVE, BALANCES_VIEW, DAILY_VIEW, ENTRIES_POST, WIDGETS_VIEW = 1, 2, 3, 4, 5, 6

BASIC_PLAN = 1


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog.from_definitions(CATALOG_DEFINITIONS)


@pytest.fixture
def plans() -> InMemoryPlanDirectory:
    return InMemoryPlanDirectory({BASIC_PLAN: {"hrm": True, "finance": False}})


@pytest.fixture
def store() -> InMemoryGrantStore:
    return InMemoryGrantStore()


@pytest.fixture
def clock() -> SimpleNamespace:
    """Manually advanced monotonic clock."""
    return SimpleNamespace(now=1000.0)


@pytest.fixture
def cache(clock) -> InMemoryCache:
    return InMemoryCache(clock=lambda: clock.now)


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(id="acme", plan_id=BASIC_PLAN)


@pytest.fixture
def current(tenant) -> SimpleNamespace:
    """Mutable holder for the tenant the engine sees."""
    return SimpleNamespace(tenant=tenant)


@pytest.fixture
def engine(catalog, store, plans, cache, current) -> AccessDecisionEngine:
    return AccessDecisionEngine(
        catalog,
        store,
        plans,
        cache,
        tenant_resolver=lambda: current.tenant,
        config=AccessConfig(),
    )


@pytest.fixture
def manager_role() -> Role:
    return Role(id=10, name="manager")


@pytest.fixture
def clerk_role() -> Role:
    return Role(id=11, name="clerk")


@pytest.fixture
def manager(manager_role) -> Principal:
    return Principal(id=100, roles=(manager_role,))
