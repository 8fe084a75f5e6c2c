"""
Tasks blueprint: scheduling, actual dates and efficiency.

Endpoints:
  POST  /api/v1/tasks/<task_id>/schedule           scheduled window from man-hours
  PATCH /api/v1/tasks/<task_id>/actual-dates       record actual_start / actual_end
  GET   /api/v1/tasks/<task_id>/schedule           task dates + activity trail
  GET   /api/v1/tasks/<task_id>/efficiency         planned / actual duration
  GET   /api/v1/projects/<project_id>/schedule-metrics

Date/time values are ISO 8601 strings; naive values are read as UTC.
"""

import logging

from flask import Blueprint, jsonify, request

from printflow.auth import current_role, current_user_id
from printflow.blueprints import register_error_handlers
from printflow.services import authorization as authz
from printflow.services import task_scheduling_service as sched
from printflow.services.task_scheduling_service import ACTUAL_DATE_FIELDS
from printflow.utils.errors import E, api_error
from printflow.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")
register_error_handlers(tasks_bp)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@tasks_bp.route("/tasks/<int:task_id>/schedule", methods=["POST"])
def schedule_task(task_id):
    """Body: {"scheduled_start": "2025-03-03T09:00:00"}"""
    authz.require(current_role(), authz.TASK_SCHEDULE, "ProjectTask")
    data = _body()
    if not data.get("scheduled_start"):
        return api_error(E.VALIDATION_REQUIRED, "scheduled_start is required")
    try:
        start = parse_datetime(data["scheduled_start"])
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))
    task = sched.schedule_task(task_id, start, user_id=current_user_id())
    return jsonify(task.to_dict()), 200


@tasks_bp.route("/tasks/<int:task_id>/actual-dates", methods=["PATCH"])
def record_actual_dates(task_id):
    """Body: any of {"actual_start": iso|null, "actual_end": iso|null}; null clears."""
    authz.require(current_role(), authz.TASK_ACTUALS_RECORD, "ProjectTask")
    data = _body()
    updates = {}
    for key in ACTUAL_DATE_FIELDS:
        if key not in data:
            continue
        try:
            updates[key] = parse_datetime(data[key])
        except ValueError as exc:
            return api_error(E.VALIDATION_INVALID, f"{key}: {exc}")
    if not updates:
        return api_error(E.VALIDATION_REQUIRED, "Provide actual_start and/or actual_end")
    task = sched.record_actual_dates(task_id, updates, user_id=current_user_id())
    return jsonify(task.to_dict()), 200


@tasks_bp.route("/tasks/<int:task_id>/schedule", methods=["GET"])
def get_task_schedule(task_id):
    authz.require(current_role(), authz.TASK_SCHEDULE_READ, "ProjectTask")
    task = sched.get_task(task_id)
    return jsonify(task.to_dict(include_activity=True)), 200


@tasks_bp.route("/tasks/<int:task_id>/efficiency", methods=["GET"])
def get_task_efficiency(task_id):
    authz.require(current_role(), authz.EFFICIENCY_READ, "ProjectTask")
    value = sched.get_task_efficiency(task_id)
    return jsonify({"task_id": task_id, **sched.efficiency_payload(value)}), 200


@tasks_bp.route("/projects/<int:project_id>/schedule-metrics", methods=["GET"])
def get_schedule_metrics(project_id):
    authz.require(current_role(), authz.EFFICIENCY_READ, "Project")
    return jsonify(sched.get_project_schedule_metrics(project_id)), 200
