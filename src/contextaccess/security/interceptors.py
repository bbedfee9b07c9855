"""gRPC server interceptor enforcing module access per RPC.

Provides:
- ``EnforcementMode`` — three-state toggle: off / warn / enforce.
- ``ModuleAccessInterceptor`` — maps each RPC to a resource path and asks
  :class:`ModuleAccessGuard` before the handler runs.
- ``_extract_rpc_name``, ``_should_skip`` — helper utilities.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import grpc

from ..permissions import Principal
from .guard import ModuleAccessGuard, get_decision_status_code, parse_resource_path

logger = logging.getLogger(__name__)

PrincipalResolver = Callable[[Mapping[str, str]], Optional[Principal]]


# ── Enforcement Mode ────────────────────────────────────────────


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle.

    - ``off``     — no checks.
    - ``warn``    — check, log denials as WARNING, but allow through.
    - ``enforce`` — check and abort denied calls (production).

    Set via env ``ACCESS_ENFORCEMENT=off|warn|enforce``.
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"

    @classmethod
    def from_env(cls) -> EnforcementMode:
        """Read from ``ACCESS_ENFORCEMENT`` env var (default: warn)."""
        raw = os.environ.get("ACCESS_ENFORCEMENT", "warn").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Unknown ACCESS_ENFORCEMENT=%r, defaulting to 'warn'", raw)
            return cls.WARN


# Method prefixes that bypass access checks
_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)


# ── Helpers ──────────────────────────────────────────────────────


def _extract_rpc_name(full_method: str) -> str:
    """``/hrm.LeaveService/ApproveRequest`` → ``ApproveRequest``"""
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    return any(prefix in method for prefix in _SKIP_PREFIXES)


# ── Interceptor ─────────────────────────────────────────────────


class ModuleAccessInterceptor(grpc.aio.ServerInterceptor):
    """Server interceptor checking catalog access before every handler.

    1. Maps the RPC name to a resource path via ``rpc_resource_map``
    2. Resolves the calling principal from invocation metadata
    3. Asks the guard for a decision
    4. Aborts with the decision's status code when denied (enforce mode)

    Unmapped RPCs and calls without a resolvable principal are **denied**.

    Args:
        guard: Module access guard wrapping the decision engine.
        rpc_resource_map: RPC name → resource path, e.g.
            ``{"ApproveRequest": "hrm.leave.requests.approve"}``.
        principal_resolver: Builds a Principal from metadata, None if unknown.
        service_name: Name used in log lines.
        enforcement: Defaults to ``ACCESS_ENFORCEMENT`` (``warn`` if unset).
    """

    def __init__(
        self,
        guard: ModuleAccessGuard,
        rpc_resource_map: Mapping[str, str],
        principal_resolver: PrincipalResolver,
        *,
        service_name: str = "Service",
        enforcement: EnforcementMode | None = None,
    ) -> None:
        self._guard = guard
        self._paths = {rpc: parse_resource_path(path) for rpc, path in rpc_resource_map.items()}
        self._principal_resolver = principal_resolver
        self._service_name = service_name
        self._mode = enforcement if enforcement is not None else EnforcementMode.from_env()

        if self._mode != EnforcementMode.OFF:
            logger.info("%s module access mode: %s", self._service_name, self._mode.value)

    @property
    def mode(self) -> EnforcementMode:
        return self._mode

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        method = handler_call_details.method or ""

        if self._mode == EnforcementMode.OFF or _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])

        deny_reason: str | None = None
        deny_code = grpc.StatusCode.PERMISSION_DENIED

        codes = self._paths.get(rpc_name)
        principal = self._principal_resolver(metadata)
        if codes is None:
            deny_reason = "RPC not mapped to a resource"
        elif principal is None:
            deny_reason = "no principal"
            deny_code = grpc.StatusCode.UNAUTHENTICATED
        else:
            decision = await asyncio.to_thread(self._guard.check, principal, *codes)
            if decision.denied:
                deny_reason = f"{decision.reason.value}: {decision.message}"
                deny_code = get_decision_status_code(decision)

        if deny_reason:
            if self._mode == EnforcementMode.WARN:
                logger.warning(
                    "%s WARN_DENIED '%s' (%s) (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    deny_reason,
                )
                return await continuation(handler_call_details)

            logger.warning("%s DENIED '%s' (%s)", self._service_name, rpc_name, deny_reason)

            _deny_msg = f"{self._service_name}: {rpc_name} denied ({deny_reason})"
            _deny_status = deny_code

            async def _denied(request, context):
                await context.abort(_deny_status, _deny_msg)

            return grpc.unary_unary_rpc_method_handler(_denied)

        logger.debug(
            "%s ALLOWED '%s' for principal %s",
            self._service_name,
            rpc_name,
            principal.id if principal else "anonymous",
        )
        return await continuation(handler_call_details)


__all__ = [
    "EnforcementMode",
    "ModuleAccessInterceptor",
    "PrincipalResolver",
    "_extract_rpc_name",
    "_should_skip",
]
