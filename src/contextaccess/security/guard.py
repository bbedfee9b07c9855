"""Module access guard — resource paths, fail-closed checks, status mapping.

Provides:
- ``parse_resource_path`` — ``"hrm.leave.requests.approve"`` → codes tuple.
- ``ModuleAccessGuard`` — dispatches a path to the right engine level and
  converts infrastructure faults into a closed deny.
- ``get_decision_status_code`` — decision → gRPC status code.
"""

from __future__ import annotations

import logging
import re

import grpc

from ..exceptions import ContextAccessError, status_for_error_code
from ..permissions import AccessDecision, AccessDecisionEngine, DecisionReason, Principal

logger = logging.getLogger(__name__)

MAX_PATH_DEPTH = 4

_SEPARATORS = re.compile(r"[.,]")


# ── Resource paths ───────────────────────────────────────────────


def parse_resource_path(path: str) -> tuple[str, ...]:
    """Split a dotted or comma-separated resource path into codes.

    ``"hrm.leave"`` and ``"hrm,leave"`` both yield ``("hrm", "leave")``.
    Empty trailing segments are dropped (``"hrm.leave."`` → two codes).

    Raises:
        ValueError: empty module code or more than four segments.
    """
    codes = [segment.strip() for segment in _SEPARATORS.split(path or "")]
    while codes and not codes[-1]:
        codes.pop()
    if not codes or not codes[0]:
        raise ValueError(f"Resource path {path!r} has no module code")
    if len(codes) > MAX_PATH_DEPTH:
        raise ValueError(f"Resource path {path!r} is deeper than {MAX_PATH_DEPTH} levels")
    if not all(codes):
        raise ValueError(f"Resource path {path!r} has an empty segment")
    return tuple(codes)


# ── Status mapping ───────────────────────────────────────────────


_STATUS_BY_REASON = {
    DecisionReason.NOT_FOUND: grpc.StatusCode.NOT_FOUND,
    DecisionReason.PLAN_RESTRICTION: grpc.StatusCode.FAILED_PRECONDITION,
    DecisionReason.INTERNAL_ERROR: grpc.StatusCode.UNAVAILABLE,
}


def get_decision_status_code(decision: AccessDecision) -> grpc.StatusCode:
    """Map a decision to the status code a gRPC handler should abort with.

    Fail-closed denials that carry the fault's error code use the error's own
    status, e.g. DATA_LOSS for corrupt grant rows.
    """
    if decision.allowed:
        return grpc.StatusCode.OK
    if decision.reason is DecisionReason.INTERNAL_ERROR and decision.error_code:
        return status_for_error_code(decision.error_code)
    return _STATUS_BY_REASON.get(decision.reason, grpc.StatusCode.PERMISSION_DENIED)


# ── Guard ────────────────────────────────────────────────────────


class ModuleAccessGuard:
    """Single entrypoint used by middleware and interceptors.

    Usage::

        guard = ModuleAccessGuard(engine)
        decision = guard.check(principal, "hrm", "leave")
        decision = guard.check_path(principal, "hrm.leave.requests.approve")
    """

    def __init__(self, engine: AccessDecisionEngine) -> None:
        self._engine = engine

    def check(self, principal: Principal, *codes: str) -> AccessDecision:
        """Decide access for 1–4 codes; never raises for store or cache faults."""
        if not 1 <= len(codes) <= MAX_PATH_DEPTH:
            raise ValueError(f"Expected 1 to {MAX_PATH_DEPTH} codes, got {len(codes)}")

        checks = (
            self._engine.can_access_module,
            self._engine.can_access_sub_module,
            self._engine.can_access_component,
            self._engine.can_perform_action,
        )
        try:
            return checks[len(codes) - 1](principal, *codes)
        except ContextAccessError as e:
            logger.error(
                "Access check for %s failed closed (%s): %s",
                ".".join(codes),
                e.code,
                e.message,
                exc_info=True,
            )
            return AccessDecision.deny(
                DecisionReason.INTERNAL_ERROR,
                "Access could not be verified. Please try again later.",
                error_code=e.code,
            )

    def check_path(self, principal: Principal, path: str) -> AccessDecision:
        return self.check(principal, *parse_resource_path(path))


__all__ = [
    "MAX_PATH_DEPTH",
    "ModuleAccessGuard",
    "get_decision_status_code",
    "parse_resource_path",
]
