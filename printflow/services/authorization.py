"""
Role-Based Access Control for engine operations.

One policy matrix maps each role to the actions it may perform. Blueprints
call ``require`` once per operation with the acting role taken from
``g.current_user_role``.

Usage:
    from printflow.services.authorization import require, authorize

    # Raises PermissionDenied if not allowed
    require(g.current_user_role, "form_batch_transition", resource="FormInstance")

    # Boolean check
    if authorize(role, "task_schedule").allowed:
        ...
"""

from dataclasses import dataclass

from printflow.core.exceptions import PermissionDenied

ADMIN = "ADMIN"
MANAGER = "MANAGER"
USER = "USER"
ROLES = (ADMIN, MANAGER, USER)

# ── Actions ──────────────────────────────────────────────────────────────────

GRAPH_READ = "graph_read"
FORM_COMPLETION_READ = "form_completion_read"
FORM_RESPONSE_SUBMIT = "form_response_submit"
FORM_DEPENDENCY_EDIT = "form_dependency_edit"
FORM_TRANSITION = "form_transition"
FORM_BATCH_TRANSITION = "form_batch_transition"
TASK_SCHEDULE = "task_schedule"
TASK_SCHEDULE_READ = "task_schedule_read"
TASK_ACTUALS_RECORD = "task_actuals_record"
EFFICIENCY_READ = "efficiency_read"
REQUEST_METRICS_READ = "request_metrics_read"

_USER_ACTIONS = frozenset({
    GRAPH_READ,
    FORM_COMPLETION_READ,
    FORM_RESPONSE_SUBMIT,
    FORM_TRANSITION,
    TASK_SCHEDULE_READ,
    TASK_ACTUALS_RECORD,
    EFFICIENCY_READ,
})

_MANAGER_ACTIONS = _USER_ACTIONS | {
    FORM_DEPENDENCY_EDIT,
    FORM_BATCH_TRANSITION,
    TASK_SCHEDULE,
}

# Admin-only actions sit on top of the manager set
PERMISSION_MATRIX: dict[str, frozenset[str]] = {
    ADMIN: _MANAGER_ACTIONS | {REQUEST_METRICS_READ},
    MANAGER: _MANAGER_ACTIONS,
    USER: _USER_ACTIONS,
}

ALL_ACTIONS = PERMISSION_MATRIX[ADMIN]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str


def normalize_role(role: str | None) -> str | None:
    if not role:
        return None
    role = role.strip().upper()
    return role if role in PERMISSION_MATRIX else None


def authorize(role: str | None, action: str, resource: str | None = None) -> Decision:
    """Decide whether ``role`` may perform ``action``.

    Unknown roles and unknown actions are denied.
    """
    if action not in ALL_ACTIONS:
        return Decision(False, f"Unknown action '{action}'")
    normalized = normalize_role(role)
    if normalized is None:
        return Decision(False, f"Unknown role '{role}'")
    if action in PERMISSION_MATRIX[normalized]:
        return Decision(True, f"{normalized} may perform '{action}'")
    target = f" on {resource}" if resource else ""
    return Decision(False, f"{normalized} may not perform '{action}'{target}")


def require(role: str | None, action: str, resource: str | None = None) -> Decision:
    """Like ``authorize`` but raises PermissionDenied on refusal."""
    decision = authorize(role, action, resource)
    if not decision.allowed:
        raise PermissionDenied(role, action, resource)
    return decision
