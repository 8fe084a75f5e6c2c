"""
Forms blueprint: dependency graph, completion and status transitions.

Endpoint groups:
  Dependency graph     GET    /api/v1/projects/<project_id>/forms/dependency-graph
  Dependency view      GET    /api/v1/projects/<project_id>/forms/<form_id>/dependencies
  Dependency editing   PUT    /api/v1/forms/instances/<form_id>/dependencies
                       DELETE /api/v1/forms/instances/<form_id>/dependencies/<dependency_id>
  Completion check     GET    /api/v1/forms/instances/<form_id>/completion
  Responses            POST   /api/v1/forms/instances/<form_id>/responses
  Status transitions   PATCH  /api/v1/forms/instances/<form_id>/status
                       PATCH  /api/v1/forms/instances/batch-status
  Status history       GET    /api/v1/forms/instances/<form_id>/status-history

Each route checks the acting role once, then hands off to the service layer,
which owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from printflow.auth import current_role, current_user_id
from printflow.blueprints import register_error_handlers
from printflow.services import authorization as authz
from printflow.services import form_dependency_service as deps
from printflow.services import form_status_service as status_svc
from printflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

forms_bp = Blueprint("forms", __name__, url_prefix="/api/v1")
register_error_handlers(forms_bp)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ═════════════════════════════════════════════════════════════════════════
# Dependency graph
# ═════════════════════════════════════════════════════════════════════════


@forms_bp.route("/projects/<int:project_id>/forms/dependency-graph", methods=["GET"])
def get_dependency_graph(project_id):
    """All form nodes of a project with forward and reverse edges."""
    authz.require(current_role(), authz.GRAPH_READ, "Project")
    graph = deps.get_dependency_graph(project_id)
    return jsonify({"project_id": project_id, **graph.to_dict()}), 200


@forms_bp.route("/projects/<int:project_id>/forms/<int:form_id>/dependencies", methods=["GET"])
def get_form_dependencies(project_id, form_id):
    """Blocking dependencies, dependents, can_proceed and next-in-sequence for one form."""
    authz.require(current_role(), authz.GRAPH_READ, "FormInstance")
    view = deps.get_form_dependency_view(project_id, form_id)
    return jsonify(view.to_dict()), 200


@forms_bp.route("/forms/instances/<int:form_id>/dependencies", methods=["PUT"])
def update_form_dependencies(form_id):
    """Replace the form template's prerequisites.

    Body: {"depends_on": [form_id, ...], "is_blocking"?: bool, "blocking_scope"?: "PHASE"|"TASK"}
    """
    authz.require(current_role(), authz.FORM_DEPENDENCY_EDIT, "FormInstance")
    data = _body()
    if "depends_on" not in data:
        return api_error(E.VALIDATION_REQUIRED, "depends_on is required")
    req = deps.update_form_dependencies(
        form_id,
        data["depends_on"],
        is_blocking=data.get("is_blocking"),
        blocking_scope=data.get("blocking_scope"),
    )
    return jsonify(req.to_dict()), 200


@forms_bp.route("/forms/instances/<int:form_id>/dependencies/<int:dependency_id>", methods=["DELETE"])
def remove_form_dependency(form_id, dependency_id):
    authz.require(current_role(), authz.FORM_DEPENDENCY_EDIT, "FormInstance")
    req = deps.remove_form_dependency(form_id, dependency_id)
    return jsonify(req.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Completion + responses
# ═════════════════════════════════════════════════════════════════════════


@forms_bp.route("/forms/instances/<int:form_id>/completion", methods=["GET"])
def check_completion(form_id):
    authz.require(current_role(), authz.FORM_COMPLETION_READ, "FormInstance")
    result = status_svc.check_form_completion(form_id)
    return jsonify({"form_id": form_id, **result.to_dict()}), 200


@forms_bp.route("/forms/instances/<int:form_id>/responses", methods=["POST"])
def submit_response(form_id):
    """Body: {"data": {field_id: value, ...}}"""
    authz.require(current_role(), authz.FORM_RESPONSE_SUBMIT, "FormInstance")
    data = _body()
    if "data" not in data:
        return api_error(E.VALIDATION_REQUIRED, "data is required")
    response = status_svc.submit_form_response(form_id, data["data"], submitted_by=current_user_id())
    return jsonify(response.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Status transitions
# ═════════════════════════════════════════════════════════════════════════


@forms_bp.route("/forms/instances/<int:form_id>/status", methods=["PATCH"])
def transition_status(form_id):
    """Body: {"status": "...", "comment"?: str, "metadata"?: {...}}"""
    authz.require(current_role(), authz.FORM_TRANSITION, "FormInstance")
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        return api_error(E.VALIDATION_INVALID, "metadata must be an object")
    instance = status_svc.transition_form_status(
        form_id,
        data["status"],
        changed_by=current_user_id(),
        comment=data.get("comment"),
        metadata=metadata,
    )
    return jsonify(instance.to_dict()), 200


@forms_bp.route("/forms/instances/batch-status", methods=["PATCH"])
def transition_status_batch():
    """All-or-nothing status change for several instances.

    Body: {"form_ids": [...], "status": "...", "comment"?: str, "metadata"?: {...}}
    """
    authz.require(current_role(), authz.FORM_BATCH_TRANSITION, "FormInstance")
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    if "form_ids" not in data:
        return api_error(E.VALIDATION_REQUIRED, "form_ids is required")
    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        return api_error(E.VALIDATION_INVALID, "metadata must be an object")
    instances = status_svc.transition_form_status_batch(
        data["form_ids"],
        data["status"],
        changed_by=current_user_id(),
        comment=data.get("comment"),
        metadata=metadata,
    )
    return jsonify({
        "status": data["status"],
        "count": len(instances),
        "items": [inst.to_dict() for inst in instances],
    }), 200


@forms_bp.route("/forms/instances/<int:form_id>/status-history", methods=["GET"])
def status_history(form_id):
    authz.require(current_role(), authz.FORM_COMPLETION_READ, "FormInstance")
    rows = status_svc.get_status_history(form_id)
    return jsonify({"form_id": form_id, "items": [r.to_dict() for r in rows]}), 200
