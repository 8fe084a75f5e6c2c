"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to consistent HTTP status codes and error codes.

Usage:
    from printflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="FormInstance", resource_id=42)
    raise ValidationError("man_hours must be positive", details={"man_hours": "..."})
    raise IncompleteError([3, 7], details={3: {...}, 7: {...}})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "FormInstance").
        resource_id: The id (or ids) that was looked up.
        message: Optional override for the rendered message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | list | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class IncompleteError(Exception):
    """Raised when one or more form instances fail the completion gate.

    Every failing instance is listed, never only the first, so callers can
    surface all of them in one pass.

    Args:
        failing_ids: Ids of every instance that failed, in request order.
        details: Per-id breakdown (missing fields, unsatisfied dependencies).
    """

    def __init__(self, failing_ids: list[int], details: dict | None = None) -> None:
        self.failing_ids = list(failing_ids)
        self.details = details or {}
        noun = "instance" if len(self.failing_ids) == 1 else "instances"
        super().__init__(
            f"Completion check failed for {len(self.failing_ids)} form {noun}: "
            f"{', '.join(str(i) for i in self.failing_ids)}"
        )


class IntegrityError(Exception):
    """Raised when stored dependency data is inconsistent.

    Covers cycles in a project's dependency graph and, under the strict
    missing-dependency policy, a declared dependency whose template has no
    instance in the project. Fatal for the request: no partial graph is
    returned.

    Args:
        message: Human-readable explanation.
        form_ids: The instance ids involved (cycle members or the declaring form).
    """

    def __init__(self, message: str, form_ids: list[int] | None = None) -> None:
        self.form_ids = list(form_ids or [])
        super().__init__(message)


class PermissionDenied(Exception):
    """Raised when the acting role may not perform an action."""

    def __init__(self, role: str | None, action: str, resource: str | None = None) -> None:
        self.role = role
        self.action = action
        self.resource = resource
        target = f" on {resource}" if resource else ""
        super().__init__(f"Role {role or 'anonymous'} may not perform '{action}'{target}")
