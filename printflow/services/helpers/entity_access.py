"""
Entity access helpers.

Every id lookup in the engine goes through these helpers so a missing or
out-of-scope record always surfaces as NotFoundError with the model name and
id, never as a bare None flowing into business logic.

Usage:
    project = get_or_raise(Project, project_id)
    instance = get_scoped(FormInstance, form_id, project_id=project_id)
    found, missing = get_many(FormInstance, [3, 4, 5])
"""

import logging

from sqlalchemy import select

from printflow.core.exceptions import NotFoundError
from printflow.models import db
from printflow.models.forms import FormCompletionRequirement

logger = logging.getLogger(__name__)

_SCOPE_KWARGS = ("project_id", "template_id", "phase_id")


def get_or_raise(model, pk, label: str | None = None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def get_scoped(model, pk: int, **scope):
    """Fetch a single entity by PK with a mandatory scope filter.

    A record outside the scope is indistinguishable from a missing one: both
    raise NotFoundError.

    Raises:
        ValueError: If no scope is given, or a scope names a column the model lacks.
        NotFoundError: If the entity does not exist within the scope.
    """
    scope = {k: v for k, v in scope.items() if v is not None}
    if not scope:
        raise ValueError(f"{model.__name__} id={pk} requires a scope filter")
    unknown = [k for k in scope if k not in _SCOPE_KWARGS or not hasattr(model, k)]
    if unknown:
        raise ValueError(f"{model.__name__} has no scope column(s) {sorted(unknown)}")

    stmt = select(model).where(model.id == pk)
    for column, value in scope.items():
        stmt = stmt.where(getattr(model, column) == value)
    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, scope)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_many(model, ids: list[int]) -> tuple[dict, list[int]]:
    """Fetch several rows by PK in one query.

    Returns:
        ({id: obj} for found rows, [ids that did not resolve] in input order)
    """
    if not ids:
        return {}, []
    rows = db.session.execute(select(model).where(model.id.in_(ids))).scalars().all()
    found = {row.id: row for row in rows}
    missing = [i for i in ids if i not in found]
    return found, missing


def find_requirement(template_id: int, phase_id: int | None) -> FormCompletionRequirement | None:
    """Return the requirement that governs a template in a phase.

    A phase-specific requirement wins over the template's phase-agnostic one.
    """
    if phase_id is not None:
        req = FormCompletionRequirement.query.filter_by(
            template_id=template_id, phase_id=phase_id,
        ).first()
        if req:
            return req
    return FormCompletionRequirement.query.filter(
        FormCompletionRequirement.template_id == template_id,
        FormCompletionRequirement.phase_id.is_(None),
    ).first()
