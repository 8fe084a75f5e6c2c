"""
Task Scheduling Service.

Business logic for:
    - Scheduling:     scheduled_end = scheduled_start + man_hours on the working calendar
    - Actual dates:   partial recording of actual_start / actual_end, with status follow-up
    - Efficiency:     scheduled duration / actual duration, or UNDETERMINED
    - Project metrics: average efficiency and planned hours over completed tasks

Every write appends a TaskActivity row.
"""

import logging

from printflow.core.exceptions import ValidationError
from printflow.models import db
from printflow.models.project import Project, ProjectTask, TaskActivity
from printflow.services.helpers.entity_access import get_or_raise
from printflow.services.working_calendar import WorkingCalendar
from printflow.utils.helpers import to_utc

logger = logging.getLogger(__name__)

ACTUAL_DATE_FIELDS = ("actual_start", "actual_end")


class _Undetermined:
    """Marker for an efficiency that cannot be computed yet."""

    __slots__ = ()

    def __repr__(self):
        return "UNDETERMINED"


UNDETERMINED = _Undetermined()


def _iso(value):
    return value.isoformat() if value else None


# ── Efficiency ───────────────────────────────────────────────────────────────


def calculate_efficiency(task) -> float | _Undetermined:
    """Planned over actual duration for a task.

    Values below 1.0 mean the task took longer than planned. Returns
    UNDETERMINED when any of the four timestamps is missing or a duration is
    not positive.
    """
    stamps = (task.scheduled_start, task.scheduled_end, task.actual_start, task.actual_end)
    if any(s is None for s in stamps):
        return UNDETERMINED
    s_start, s_end, a_start, a_end = (to_utc(s) for s in stamps)
    planned = (s_end - s_start).total_seconds()
    actual = (a_end - a_start).total_seconds()
    if planned <= 0 or actual <= 0:
        return UNDETERMINED
    return planned / actual


def efficiency_payload(value) -> dict:
    if value is UNDETERMINED:
        return {"efficiency": None, "determined": False}
    return {"efficiency": round(value, 4), "determined": True}


def get_task(task_id: int) -> ProjectTask:
    return get_or_raise(ProjectTask, task_id)


def get_task_efficiency(task_id: int) -> float | _Undetermined:
    return calculate_efficiency(get_or_raise(ProjectTask, task_id))


# ── Scheduling ───────────────────────────────────────────────────────────────


def schedule_task(
    task_id: int,
    scheduled_start,
    *,
    user_id: str | None = None,
    calendar: WorkingCalendar | None = None,
) -> ProjectTask:
    """Set a task's scheduled window from its start and planned man-hours.

    Raises:
        NotFoundError: If the task does not exist.
        ValidationError: If man_hours is unset or not positive, or the window
            falls outside the project's start/end dates.
    """
    task = get_or_raise(ProjectTask, task_id)
    if scheduled_start is None:
        raise ValidationError("scheduled_start is required", details={"scheduled_start": "required"})
    if task.man_hours is None or task.man_hours <= 0:
        raise ValidationError(
            f"Task {task_id} needs positive man_hours to be scheduled",
            details={"man_hours": task.man_hours},
        )

    calendar = calendar or WorkingCalendar.from_config()
    start = calendar.roll_forward(to_utc(scheduled_start))
    end = calendar.add_working_hours(start, task.man_hours)

    project = db.session.get(Project, task.project_id)
    if project is not None:
        if project.start_date and start < to_utc(project.start_date):
            raise ValidationError(
                "Task cannot start before project start date",
                details={"scheduled_start": start.isoformat(),
                         "project_start": to_utc(project.start_date).isoformat()},
            )
        if project.end_date and end > to_utc(project.end_date):
            raise ValidationError(
                "Task duration exceeds project end date",
                details={"scheduled_end": end.isoformat(),
                         "project_end": to_utc(project.end_date).isoformat()},
            )

    task.scheduled_start = start
    task.scheduled_end = end
    db.session.add(TaskActivity(
        task_id=task.id,
        type="SCHEDULE_UPDATE",
        user_id=user_id,
        content=f"Task scheduled: {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}",
        details={
            "scheduled_start": start.isoformat(),
            "scheduled_end": end.isoformat(),
            "man_hours": task.man_hours,
            "calendar": calendar.to_dict(),
        },
    ))
    db.session.commit()
    logger.info(
        "Task scheduled id=%s start=%s end=%s man_hours=%s",
        task.id, start.isoformat(), end.isoformat(), task.man_hours,
        extra={"task_id": task.id, "project_id": task.project_id},
    )
    return task


# ── Actual dates ─────────────────────────────────────────────────────────────


def record_actual_dates(task_id: int, updates: dict, *, user_id: str | None = None) -> ProjectTask:
    """Record actual_start and/or actual_end.

    Only the keys present in ``updates`` are touched; an explicit None clears
    a field. The plan is not consulted: reality is always recorded. The first
    actual_start moves an unfinished task to IN_PROGRESS, the first actual_end
    to COMPLETED. A task with an actual_end stays COMPLETED.

    Raises:
        NotFoundError: If the task does not exist.
        ValidationError: No recognised field given, or actual_end ends up
            earlier than actual_start.
    """
    task = get_or_raise(ProjectTask, task_id)
    unknown = sorted(set(updates) - set(ACTUAL_DATE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            details={f: "not an actual-date field" for f in unknown},
        )
    if not updates:
        raise ValidationError(
            "Provide actual_start and/or actual_end",
            details={"actual_start": "missing", "actual_end": "missing"},
        )

    new_start = to_utc(updates["actual_start"]) if "actual_start" in updates else to_utc(task.actual_start)
    new_end = to_utc(updates["actual_end"]) if "actual_end" in updates else to_utc(task.actual_end)
    if new_start is not None and new_end is not None and new_end < new_start:
        raise ValidationError(
            "actual_end cannot be earlier than actual_start",
            details={"actual_start": new_start.isoformat(), "actual_end": new_end.isoformat()},
        )

    old_status = task.status
    if "actual_start" in updates and new_start is not None and task.actual_start is None and new_end is None:
        task.status = "IN_PROGRESS"
    if "actual_end" in updates and new_end is not None and task.actual_end is None:
        task.status = "COMPLETED"

    if "actual_start" in updates:
        task.actual_start = new_start
    if "actual_end" in updates:
        task.actual_end = new_end

    details = {f: _iso(to_utc(updates[f])) for f in ACTUAL_DATE_FIELDS if f in updates}
    if task.status != old_status:
        details["status"] = {"from": old_status, "to": task.status}
    db.session.add(TaskActivity(
        task_id=task.id,
        type="ACTUAL_DATES_UPDATE",
        user_id=user_id,
        content="Task actual dates updated",
        details=details,
    ))
    db.session.commit()
    logger.info(
        "Task actual dates recorded id=%s fields=%s status=%s",
        task.id, sorted(updates), task.status,
        extra={"task_id": task.id, "project_id": task.project_id},
    )
    return task


# ── Project metrics ──────────────────────────────────────────────────────────


def get_project_schedule_metrics(project_id: int) -> dict:
    """Efficiency and effort summary over a project's COMPLETED tasks."""
    get_or_raise(Project, project_id)
    tasks = ProjectTask.query.filter_by(project_id=project_id, status="COMPLETED").all()

    efficiencies = []
    undetermined = 0
    for task in tasks:
        value = calculate_efficiency(task)
        if value is UNDETERMINED:
            undetermined += 1
        else:
            efficiencies.append(value)

    average = sum(efficiencies) / len(efficiencies) if efficiencies else UNDETERMINED
    return {
        "project_id": project_id,
        "completed_tasks": len(tasks),
        "total_planned_hours": sum(t.man_hours or 0 for t in tasks),
        "average_efficiency": efficiency_payload(average),
        "undetermined_tasks": undetermined,
    }
