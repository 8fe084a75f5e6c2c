"""
Form Status Service: completion checks and gated status transitions.

Business logic for:
    - Completion check:    required-field evaluation of an instance's current response
    - Response submission: append a new current response, keeping history
    - Status transitions:  single and batch, all-or-nothing

Completion gate (target status COMPLETED), applied to every instance in the
batch before anything is written:
    1. every required field of the pinned schema version has a value
    2. every blocking dependency is COMPLETED, or is itself in the batch and
       passes this same gate
All failing ids are collected and raised together as IncompleteError. Other
target statuses are written unconditionally.

The status write for the whole batch is one transaction: either every
instance transitions or none does.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from printflow.core.exceptions import IncompleteError, NotFoundError, ValidationError
from printflow.models import db
from printflow.models.forms import (
    COMPLETED,
    FORM_INSTANCE_STATUSES,
    FormInstance,
    FormResponse,
    FormStatusHistory,
)
from printflow.services.completion import CompletionResult, evaluate_completion
from printflow.services.dependency_graph import topological_positions
from printflow.services.form_dependency_service import get_dependency_graph
from printflow.services.helpers.entity_access import get_many, get_or_raise
from printflow.utils.helpers import config_value

logger = logging.getLogger(__name__)


# ── Completion check ─────────────────────────────────────────────────────────


def _evaluate(instance: FormInstance) -> CompletionResult:
    current = instance.current_response
    return evaluate_completion(instance.schema(), current.data if current else None)


def check_form_completion(form_id: int) -> CompletionResult:
    """Evaluate the instance's current response against its schema.

    Read-only: the instance is never modified.

    Raises:
        NotFoundError: If the instance does not exist.
    """
    instance = get_or_raise(FormInstance, form_id)
    return _evaluate(instance)


# ── Response submission ──────────────────────────────────────────────────────


def submit_form_response(form_id: int, data: dict, submitted_by: str | None = None) -> FormResponse:
    """Store a new current response; the previous one stays as history."""
    instance = get_or_raise(FormInstance, form_id)
    if not isinstance(data, dict):
        raise ValidationError("Response data must be an object", details={"data": "not an object"})

    previous = instance.current_response
    if previous is not None:
        previous.is_current = False
    response = FormResponse(
        instance_id=instance.id,
        data=data,
        is_current=True,
        submitted_by=submitted_by,
    )
    db.session.add(response)
    db.session.commit()
    logger.info(
        "FormResponse submitted id=%s instance_id=%s superseded=%s",
        response.id, instance.id, previous.id if previous else None,
        extra={"form_id": instance.id, "project_id": instance.project_id},
    )
    return response


# ── Status transitions ───────────────────────────────────────────────────────


def _validate_batch(form_ids, status) -> list[int]:
    if status not in FORM_INSTANCE_STATUSES:
        raise ValidationError(
            f"Invalid status value '{status}'",
            details={"status": f"must be one of {sorted(FORM_INSTANCE_STATUSES)}"},
        )
    if not isinstance(form_ids, list) or not form_ids:
        raise ValidationError("form_ids must be a non-empty list", details={"form_ids": "required"})
    bad = [v for v in form_ids if isinstance(v, bool) or not isinstance(v, int)]
    if bad:
        raise ValidationError("form_ids must contain integer ids only", details={"form_ids": f"invalid: {bad}"})
    if len(set(form_ids)) != len(form_ids):
        raise ValidationError("form_ids contains duplicates", details={"form_ids": "duplicates"})
    max_batch = config_value("MAX_BATCH_SIZE", 500)
    if len(form_ids) > max_batch:
        raise ValidationError(
            f"A batch may contain at most {max_batch} forms",
            details={"form_ids": f"{len(form_ids)} given"},
        )
    return form_ids


def _completion_failures(instances: list[FormInstance]) -> dict[int, dict]:
    """Run the completion gate over a batch; return {form_id: reasons} for failures."""
    in_batch = {inst.id: inst for inst in instances}
    field_results = {inst.id: _evaluate(inst) for inst in instances}

    passes: dict[int, bool] = {}
    unsatisfied: dict[int, list[int]] = {}
    for project_id in sorted({inst.project_id for inst in instances}):
        graph = get_dependency_graph(project_id)
        # Dependencies are decided before their dependents
        for pos in topological_positions(graph):
            node = graph.nodes[pos]
            if node.form_id not in in_batch:
                continue
            blocked = []
            if node.is_blocking:
                for dep_id in node.dependencies:
                    dep = graph.node(dep_id)
                    if dep.is_completed:
                        continue
                    if dep_id in in_batch and passes.get(dep_id):
                        continue
                    blocked.append(dep_id)
            unsatisfied[node.form_id] = blocked
            passes[node.form_id] = field_results[node.form_id].is_complete and not blocked

    failures = {}
    for inst in instances:
        if passes.get(inst.id):
            continue
        failures[inst.id] = {
            "missing_fields": list(field_results[inst.id].missing_fields),
            "blocking_dependencies": unsatisfied.get(inst.id, []),
        }
    return failures


def transition_form_status_batch(
    form_ids: list[int],
    status: str,
    *,
    changed_by: str | None = None,
    comment: str | None = None,
    metadata: dict | None = None,
) -> list[FormInstance]:
    """Move every listed instance to ``status``, or none of them.

    Returns:
        The updated instances, in request order.

    Raises:
        ValidationError: Bad status or malformed id list.
        NotFoundError: Any id does not resolve (lists every missing id).
        IncompleteError: Target is COMPLETED and one or more instances fail the
            completion gate (lists every failing id).
        IntegrityError: A project's dependency graph is inconsistent.
    """
    ids = _validate_batch(form_ids, status)
    found, missing = get_many(FormInstance, ids)
    if missing:
        raise NotFoundError("FormInstance", missing)
    instances = [found[i] for i in ids]

    if status == COMPLETED:
        failures = _completion_failures(instances)
        if failures:
            failing_ids = [i for i in ids if i in failures]
            logger.warning(
                "Completion gate rejected batch: %d of %d forms failing %s",
                len(failing_ids), len(ids), failing_ids,
            )
            raise IncompleteError(failing_ids, details=failures)

    now = datetime.now(timezone.utc)
    meta = dict(metadata or {})
    meta.update({
        "updated_at": now.isoformat(),
        "updated_by": changed_by,
        "batch_update": len(ids) > 1,
    })
    try:
        for inst in instances:
            db.session.add(FormStatusHistory(
                instance_id=inst.id,
                from_status=inst.status,
                to_status=status,
                changed_by=changed_by,
                comment=comment,
                meta=meta,
                batch_update=len(ids) > 1,
            ))
            inst.status = status
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Status transition rolled back for forms %s", ids)
        raise

    logger.info(
        "Form status updated forms=%s status=%s by=%s", ids, status, changed_by,
    )
    return instances


def transition_form_status(
    form_id: int,
    status: str,
    *,
    changed_by: str | None = None,
    comment: str | None = None,
    metadata: dict | None = None,
) -> FormInstance:
    """Single-instance transition; same gate as the batch form."""
    (instance,) = transition_form_status_batch(
        [form_id], status, changed_by=changed_by, comment=comment, metadata=metadata,
    )
    return instance


def get_status_history(form_id: int) -> list[FormStatusHistory]:
    instance = get_or_raise(FormInstance, form_id)
    return instance.status_history.all()
