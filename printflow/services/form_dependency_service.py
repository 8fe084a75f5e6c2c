"""
Form Dependency Service.

Business logic for:
    - Dependency graph:       build a project's graph fresh from stored records
    - Dependency view:        blocking / dependents / can-proceed / next-in-sequence
    - Dependency editing:     replace or remove a template's declared prerequisites,
                              with project scoping and cycle detection

Blueprint → Service (here) → dependency_graph (pure) / Model/DB
"""

import logging

from printflow.core.exceptions import NotFoundError, ValidationError
from printflow.models import db
from printflow.models.forms import (
    BLOCKING_SCOPES,
    FormCompletionRequirement,
    FormInstance,
    FormTemplate,
    RequirementDependency,
)
from printflow.models.project import Project
from printflow.services.dependency_graph import (
    DependencyGraph,
    FormDependencyView,
    FormRecord,
    build_graph,
    find_key_cycle,
    query_form,
)
from printflow.services.helpers.entity_access import find_requirement, get_many, get_or_raise, get_scoped
from printflow.utils.helpers import config_value

logger = logging.getLogger(__name__)


# ── Graph loading ────────────────────────────────────────────────────────────


def _pick_requirement(reqs: list[FormCompletionRequirement], phase_id: int | None):
    """Phase-specific requirement first, then the phase-agnostic one."""
    agnostic = None
    for req in reqs:
        if phase_id is not None and req.phase_id == phase_id:
            return req
        if req.phase_id is None:
            agnostic = req
    return agnostic


def load_form_records(project_id: int) -> list[FormRecord]:
    """Read every form instance of a project with its governing requirement.

    Instances come back ordered by ``order`` (unordered last) then id, which
    is the stable input order the graph keeps for tie-breaking.
    """
    instances = (
        FormInstance.query
        .filter_by(project_id=project_id)
        .order_by(FormInstance.order.is_(None), FormInstance.order, FormInstance.id)
        .all()
    )
    template_ids = {inst.template_id for inst in instances}
    reqs_by_template: dict[int, list[FormCompletionRequirement]] = {}
    if template_ids:
        for req in FormCompletionRequirement.query.filter(
            FormCompletionRequirement.template_id.in_(template_ids),
        ).all():
            reqs_by_template.setdefault(req.template_id, []).append(req)

    records = []
    for inst in instances:
        req = _pick_requirement(reqs_by_template.get(inst.template_id, []), inst.phase_id)
        records.append(FormRecord(
            form_id=inst.id,
            form_name=inst.template.name,
            status=inst.status,
            template_id=inst.template_id,
            order=inst.order,
            depends_on_templates=tuple(req.depends_on_ids) if req else (),
            is_blocking=bool(req.is_blocking) if req else False,
        ))
    return records


def get_dependency_graph(project_id: int) -> DependencyGraph:
    """Build the dependency graph for a project.

    Raises:
        NotFoundError: If the project does not exist.
        IntegrityError: On a cycle, or an unresolvable dependency under the
            "error" missing-dependency policy.
    """
    get_or_raise(Project, project_id)
    records = load_form_records(project_id)
    graph = build_graph(
        records,
        missing_policy=config_value("DEPENDENCY_MISSING_POLICY", "warn"),
    )
    logger.debug(
        "Dependency graph built project_id=%s nodes=%d warnings=%d",
        project_id, len(graph), len(graph.warnings),
        extra={"project_id": project_id},
    )
    return graph


def get_form_dependency_view(project_id: int, form_id: int) -> FormDependencyView:
    """Dependency view of one form within its project's freshly built graph.

    Raises:
        NotFoundError: If the project does not exist, or the form does not
            belong to it.
    """
    get_or_raise(Project, project_id)
    get_scoped(FormInstance, form_id, project_id=project_id)
    graph = get_dependency_graph(project_id)
    return query_form(graph, form_id)


# ── Dependency editing ───────────────────────────────────────────────────────


def _validate_ids(depends_on) -> list[int]:
    if not isinstance(depends_on, list):
        raise ValidationError("depends_on must be a list of form ids", details={"depends_on": "not a list"})
    bad = [v for v in depends_on if isinstance(v, bool) or not isinstance(v, int)]
    if bad:
        raise ValidationError(
            "depends_on must contain integer form ids only",
            details={"depends_on": f"invalid entries: {bad}"},
        )
    seen, dupes = set(), []
    for v in depends_on:
        if v in seen:
            dupes.append(v)
        seen.add(v)
    if dupes:
        raise ValidationError(
            "depends_on contains duplicate form ids",
            details={"depends_on": f"duplicates: {dupes}"},
        )
    return list(depends_on)


def _template_adjacency(replace_req: FormCompletionRequirement | None,
                        template_id: int, new_targets: list[int]) -> dict[int, list[int]]:
    """Template-level edges from every stored requirement, with one requirement replaced."""
    adjacency: dict[int, list[int]] = {}
    for req in FormCompletionRequirement.query.all():
        if replace_req is not None and req.id == replace_req.id:
            continue
        adjacency.setdefault(req.template_id, []).extend(req.depends_on_ids)
    adjacency.setdefault(template_id, []).extend(new_targets)
    return adjacency


def update_form_dependencies(
    form_id: int,
    depends_on: list[int],
    *,
    is_blocking: bool | None = None,
    blocking_scope: str | None = None,
) -> FormCompletionRequirement:
    """Replace the declared prerequisites of a form's template.

    ``depends_on`` lists form instance ids of the same project; they are
    stored as their templates, in the given order. An empty list clears the
    prerequisites.

    Raises:
        NotFoundError: If the form or any listed dependency does not exist in
            the form's project.
        ValidationError: On malformed input, self-dependency, or a set that
            would create a dependency cycle.
    """
    instance = get_or_raise(FormInstance, form_id)
    ids = _validate_ids(depends_on)
    if form_id in ids:
        raise ValidationError(
            "A form cannot depend on itself",
            details={"depends_on": f"contains the form itself ({form_id})"},
        )
    if blocking_scope is not None and blocking_scope not in BLOCKING_SCOPES:
        raise ValidationError(
            f"blocking_scope must be one of {sorted(BLOCKING_SCOPES)}",
            details={"blocking_scope": blocking_scope},
        )
    if is_blocking is not None and not isinstance(is_blocking, bool):
        raise ValidationError("is_blocking must be a boolean", details={"is_blocking": is_blocking})

    found, missing = get_many(FormInstance, ids)
    out_of_project = [i for i in ids if i in found and found[i].project_id != instance.project_id]
    unresolved = missing + out_of_project
    if unresolved:
        raise NotFoundError(
            "FormInstance", unresolved,
            message=f"Dependency form(s) {unresolved} not found in project {instance.project_id}",
        )
    template_ids = [found[i].template_id for i in ids]

    req = find_requirement(instance.template_id, instance.phase_id)
    cycle = find_key_cycle(_template_adjacency(req, instance.template_id, template_ids))
    if cycle:
        names = {t.id: t.name for t in FormTemplate.query.filter(FormTemplate.id.in_(cycle)).all()}
        path = " → ".join(names.get(t, str(t)) for t in cycle)
        raise ValidationError(
            f"Adding these dependencies would create a cycle: {path}",
            details={"cycle_template_ids": cycle},
        )

    if req is None:
        req = FormCompletionRequirement(template_id=instance.template_id, phase_id=None)
        db.session.add(req)
    if is_blocking is not None:
        req.is_blocking = is_blocking
    if blocking_scope is not None:
        req.blocking_scope = blocking_scope

    # Old rows must be gone before re-inserting the same template ids
    req.dependencies = []
    db.session.flush()
    req.dependencies = [
        RequirementDependency(depends_on_template_id=t_id, position=pos)
        for pos, t_id in enumerate(template_ids)
    ]
    db.session.commit()
    logger.info(
        "Form dependencies updated form_id=%s template_id=%s depends_on=%s",
        form_id, instance.template_id, template_ids,
        extra={"form_id": form_id, "project_id": instance.project_id},
    )
    return req


def remove_form_dependency(form_id: int, dependency_form_id: int) -> FormCompletionRequirement:
    """Drop one prerequisite from a form's template, keeping the others in order.

    Raises:
        NotFoundError: If either form is unknown, or the dependency is not declared.
    """
    instance = get_or_raise(FormInstance, form_id)
    dependency = get_or_raise(FormInstance, dependency_form_id)
    req = find_requirement(instance.template_id, instance.phase_id)
    current = req.depends_on_ids if req else []
    if dependency.project_id != instance.project_id or dependency.template_id not in current:
        raise NotFoundError(
            "FormDependency", dependency_form_id,
            message=f"Form {form_id} does not depend on form {dependency_form_id}",
        )

    remaining = [t for t in current if t != dependency.template_id]
    req.dependencies = []
    db.session.flush()
    req.dependencies = [
        RequirementDependency(depends_on_template_id=t_id, position=pos)
        for pos, t_id in enumerate(remaining)
    ]
    db.session.commit()
    logger.info(
        "Form dependency removed form_id=%s dependency_form_id=%s",
        form_id, dependency_form_id, extra={"form_id": form_id},
    )
    return req
