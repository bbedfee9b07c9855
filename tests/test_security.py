"""Tests for contextaccess.security: resource paths, guard and interceptor."""

from __future__ import annotations

import logging
import os
from unittest.mock import AsyncMock, MagicMock, patch

import grpc
import pytest

from contextaccess import (
    AccessDecision,
    CacheBackendError,
    DecisionReason,
    GrantIntegrityError,
    Principal,
    Role,
    Scope,
)
from contextaccess.security import (
    EnforcementMode,
    ModuleAccessGuard,
    ModuleAccessInterceptor,
    get_decision_status_code,
    parse_resource_path,
)
from contextaccess.security.interceptors import _extract_rpc_name, _should_skip

from .conftest import HRM, LEAVE


class TestParseResourcePath:
    @pytest.mark.parametrize(
        "path,codes",
        [
            ("hrm", ("hrm",)),
            ("hrm.leave", ("hrm", "leave")),
            ("hrm,leave,requests", ("hrm", "leave", "requests")),
            ("hrm.leave.requests.approve", ("hrm", "leave", "requests", "approve")),
            ("hrm.leave.", ("hrm", "leave")),
            ("hrm,,", ("hrm",)),
            (" hrm . leave ", ("hrm", "leave")),
        ],
    )
    def test_valid(self, path, codes) -> None:
        assert parse_resource_path(path) == codes

    @pytest.mark.parametrize("path", ["", ".", ".leave", "a.b.c.d.e", "hrm..view"])
    def test_invalid(self, path) -> None:
        with pytest.raises(ValueError):
            parse_resource_path(path)


class TestDecisionStatusCode:
    @pytest.mark.parametrize(
        "reason,status",
        [
            (DecisionReason.NOT_FOUND, grpc.StatusCode.NOT_FOUND),
            (DecisionReason.PLAN_RESTRICTION, grpc.StatusCode.FAILED_PRECONDITION),
            (DecisionReason.INTERNAL_ERROR, grpc.StatusCode.UNAVAILABLE),
            (DecisionReason.NO_MODULE_ACCESS, grpc.StatusCode.PERMISSION_DENIED),
            (DecisionReason.NO_ACTION_ACCESS, grpc.StatusCode.PERMISSION_DENIED),
        ],
    )
    def test_denials(self, reason, status) -> None:
        assert get_decision_status_code(AccessDecision.deny(reason, "")) == status

    def test_allow_is_ok(self) -> None:
        assert get_decision_status_code(AccessDecision.allow()) == grpc.StatusCode.OK

    @pytest.mark.parametrize(
        "error_code,status",
        [
            ("GRANT_INTEGRITY_ERROR", grpc.StatusCode.DATA_LOSS),
            ("STORAGE_ERROR", grpc.StatusCode.UNAVAILABLE),
            ("CATALOG_ERROR", grpc.StatusCode.FAILED_PRECONDITION),
        ],
    )
    def test_internal_error_uses_fault_code(self, error_code, status) -> None:
        decision = AccessDecision.deny(DecisionReason.INTERNAL_ERROR, "", error_code=error_code)
        assert get_decision_status_code(decision) == status


class TestModuleAccessGuard:
    def test_dispatch_by_depth(self, engine, manager, manager_role) -> None:
        engine.sync_role_access(manager_role, {"sub_modules": [LEAVE]})
        guard = ModuleAccessGuard(engine)

        assert guard.check(manager, "hrm").reason is DecisionReason.NO_MODULE_ACCESS
        assert guard.check(manager, "hrm", "leave").allowed
        assert guard.check(manager, "hrm", "leave", "balances").allowed
        decision = guard.check_path(manager, "hrm.leave.requests.approve")
        assert decision.allowed
        assert decision.scope is Scope.ALL

    def test_wrong_code_count(self, engine, manager) -> None:
        guard = ModuleAccessGuard(engine)
        with pytest.raises(ValueError):
            guard.check(manager)
        with pytest.raises(ValueError):
            guard.check(manager, "a", "b", "c", "d", "e")

    @pytest.mark.parametrize(
        "error,status",
        [
            (CacheBackendError("redis down", key="k"), grpc.StatusCode.UNAVAILABLE),
            (GrantIntegrityError("two levels", role_id=10), grpc.StatusCode.DATA_LOSS),
        ],
    )
    def test_fails_closed_on_infrastructure_error(self, manager, caplog, error, status) -> None:
        engine = MagicMock()
        engine.can_access_module.side_effect = error
        guard = ModuleAccessGuard(engine)

        with caplog.at_level(logging.ERROR, logger="contextaccess.security.guard"):
            decision = guard.check(manager, "hrm")

        assert decision.denied
        assert decision.reason is DecisionReason.INTERNAL_ERROR
        assert decision.error_code == error.code
        assert get_decision_status_code(decision) == status
        assert error.code in caplog.text
        assert caplog.records[-1].exc_info is not None

    def test_programming_errors_propagate(self, manager) -> None:
        engine = MagicMock()
        engine.can_access_module.side_effect = TypeError("bug")
        with pytest.raises(TypeError):
            ModuleAccessGuard(engine).check(manager, "hrm")


# ── ModuleAccessInterceptor ─────────────────────────────────────

_TEST_RPC_MAP = {
    "ListLeave": "hrm.leave",
    "PostEntry": "finance.ledger.entries.post",
}


def _make_handler_call_details(method: str, metadata: list | None = None):
    """Create a mock HandlerCallDetails."""
    mock = MagicMock()
    mock.method = method
    mock.invocation_metadata = metadata or []
    return mock


async def _continuation(details):
    return "handler"


@pytest.fixture
def principals(manager) -> dict[str, Principal]:
    return {"100": manager}


@pytest.fixture
def make_interceptor(engine, principals):
    def _make(mode: EnforcementMode) -> ModuleAccessInterceptor:
        return ModuleAccessInterceptor(
            ModuleAccessGuard(engine),
            _TEST_RPC_MAP,
            lambda metadata: principals.get(metadata.get("x-principal-id", "")),
            service_name="Test",
            enforcement=mode,
        )

    return _make


async def _abort_status(handler) -> grpc.StatusCode:
    context = MagicMock()
    context.abort = AsyncMock()
    await handler.unary_unary(None, context)
    return context.abort.call_args.args[0]


class TestModuleAccessInterceptor:
    @pytest.mark.asyncio
    async def test_off_passes_through(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.OFF)
        details = _make_handler_call_details("/hr.LeaveService/Unmapped")
        assert await interceptor.intercept_service(_continuation, details) == "handler"

    @pytest.mark.asyncio
    async def test_health_check_skipped(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/grpc.health.v1.Health/Check")
        assert await interceptor.intercept_service(_continuation, details) == "handler"

    @pytest.mark.asyncio
    async def test_allowed(self, make_interceptor, engine, manager_role):
        engine.grant_module_access(manager_role, HRM)
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/hr.LeaveService/ListLeave", [("x-principal-id", "100")])
        assert await interceptor.intercept_service(_continuation, details) == "handler"

    @pytest.mark.asyncio
    async def test_no_grant_permission_denied(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/hr.LeaveService/ListLeave", [("x-principal-id", "100")])
        result = await interceptor.intercept_service(_continuation, details)
        assert result != "handler"
        assert await _abort_status(result) == grpc.StatusCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_plan_restriction_failed_precondition(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/hr.Ledger/PostEntry", [("x-principal-id", "100")])
        result = await interceptor.intercept_service(_continuation, details)
        assert await _abort_status(result) == grpc.StatusCode.FAILED_PRECONDITION

    @pytest.mark.asyncio
    async def test_corrupt_grants_data_loss(self, manager):
        engine = MagicMock()
        engine.can_access_sub_module.side_effect = GrantIntegrityError("two levels", role_id=10)
        interceptor = ModuleAccessInterceptor(
            ModuleAccessGuard(engine),
            _TEST_RPC_MAP,
            lambda metadata: manager,
            enforcement=EnforcementMode.ENFORCE,
        )
        details = _make_handler_call_details("/hr.LeaveService/ListLeave")
        result = await interceptor.intercept_service(_continuation, details)
        assert await _abort_status(result) == grpc.StatusCode.DATA_LOSS

    @pytest.mark.asyncio
    async def test_unmapped_rpc_denied(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/hr.LeaveService/DeleteAll", [("x-principal-id", "100")])
        result = await interceptor.intercept_service(_continuation, details)
        assert await _abort_status(result) == grpc.StatusCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_unknown_principal_unauthenticated(self, make_interceptor):
        interceptor = make_interceptor(EnforcementMode.ENFORCE)
        details = _make_handler_call_details("/hr.LeaveService/ListLeave", [])
        result = await interceptor.intercept_service(_continuation, details)
        assert await _abort_status(result) == grpc.StatusCode.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_warn_mode_logs_but_allows(self, make_interceptor, caplog):
        interceptor = make_interceptor(EnforcementMode.WARN)
        details = _make_handler_call_details("/hr.LeaveService/ListLeave", [("x-principal-id", "100")])
        with caplog.at_level(logging.WARNING, logger="contextaccess.security.interceptors"):
            result = await interceptor.intercept_service(_continuation, details)
        assert result == "handler"
        assert "WARN_DENIED 'ListLeave'" in caplog.text

    def test_invalid_resource_map_rejected(self, engine):
        with pytest.raises(ValueError):
            ModuleAccessInterceptor(
                ModuleAccessGuard(engine),
                {"Broken": ""},
                lambda metadata: None,
                enforcement=EnforcementMode.ENFORCE,
            )

    def test_mode_from_env(self, engine):
        with patch.dict(os.environ, {"ACCESS_ENFORCEMENT": "enforce"}):
            interceptor = ModuleAccessInterceptor(ModuleAccessGuard(engine), {}, lambda metadata: None)
        assert interceptor.mode == EnforcementMode.ENFORCE


class TestEnforcementMode:
    def test_default_is_warn(self):
        with patch.dict(os.environ, {}, clear=True):
            assert EnforcementMode.from_env() == EnforcementMode.WARN

    def test_unknown_value_falls_back_to_warn(self):
        with patch.dict(os.environ, {"ACCESS_ENFORCEMENT": "strict"}):
            assert EnforcementMode.from_env() == EnforcementMode.WARN


class TestHelpers:
    def test_extract_rpc_name(self):
        assert _extract_rpc_name("/hr.LeaveService/ListLeave") == "ListLeave"
        assert _extract_rpc_name("ListLeave") == "ListLeave"

    def test_should_skip(self):
        assert _should_skip("/grpc.reflection.v1.ServerReflection/ServerReflectionInfo")
        assert not _should_skip("/hr.LeaveService/ListLeave")
