"""
PrintFlow: project domain models.

Models:
    - Project:       a production job (e.g. one vehicle wrap) with a date window
    - ProjectPhase:  ordered stage of a project (design, print, install ...)
    - ProjectTask:   unit of planned work inside a phase, carries man-hours and
                     scheduled / actual timestamps
    - TaskActivity:  append-only audit trail of task changes

Architecture:
    Project ──1:N──▶ ProjectPhase ──1:N──▶ ProjectTask ──1:N──▶ TaskActivity
    Project ──1:N──▶ FormInstance (see models/forms.py)

Task lifecycle:
    NOT_STARTED → (scheduled) → IN_PROGRESS (actual_start) → COMPLETED (actual_end)
    ON_HOLD may be entered from any non-terminal state.
"""

from datetime import datetime, timezone

from printflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = {"PLANNING", "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED"}

TASK_STATUSES = {"NOT_STARTED", "IN_PROGRESS", "ON_HOLD", "COMPLETED"}

TASK_PRIORITIES = {"LOW", "MEDIUM", "HIGH", "URGENT"}

ACTIVITY_TYPES = {
    "SCHEDULE_UPDATE",
    "ACTUAL_DATES_UPDATE",
    "STATUS_CHANGE",
    "PRIORITY_CHANGE",
    "ASSIGNMENT_CHANGE",
}


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Project
# ═════════════════════════════════════════════════════════════════════════════


class Project(db.Model):
    """Top-level production job. Forms and tasks are always scoped to one project."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), default="PLANNING",
        comment="PLANNING | ACTIVE | ON_HOLD | COMPLETED | CANCELLED",
    )
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "ProjectPhase", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProjectPhase.order",
    )
    tasks = db.relationship(
        "ProjectTask", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    form_instances = db.relationship(
        "FormInstance", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ProjectPhase
# ═════════════════════════════════════════════════════════════════════════════


class ProjectPhase(db.Model):
    """Ordered stage within a project."""

    __tablename__ = "project_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    order = db.Column(db.Integer, default=0)

    tasks = db.relationship(
        "ProjectTask", backref="phase", lazy="dynamic",
        order_by="ProjectTask.order",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "order": self.order,
        }

    def __repr__(self):
        return f"<ProjectPhase {self.id}: {self.name[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. ProjectTask
# ═════════════════════════════════════════════════════════════════════════════


class ProjectTask(db.Model):
    """
    Planned unit of work within a phase.

    ``man_hours`` is planned effort in working hours; the scheduler converts it
    to calendar time using the configured working calendar.
    """

    __tablename__ = "project_tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), default="NOT_STARTED",
        comment="NOT_STARTED | IN_PROGRESS | ON_HOLD | COMPLETED",
    )
    priority = db.Column(
        db.String(10), default="MEDIUM",
        comment="LOW | MEDIUM | HIGH | URGENT",
    )
    man_hours = db.Column(db.Float, nullable=True, comment="Planned effort in working hours")
    order = db.Column(db.Integer, default=0, comment="Position within the phase")
    assigned_to = db.Column(db.String(100), nullable=True)

    # Timing
    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=True)
    scheduled_end = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('NOT_STARTED','IN_PROGRESS','ON_HOLD','COMPLETED')",
            name="ck_project_task_status",
        ),
        db.CheckConstraint(
            "priority IN ('LOW','MEDIUM','HIGH','URGENT')",
            name="ck_project_task_priority",
        ),
    )

    activities = db.relationship(
        "TaskActivity", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskActivity.id",
    )

    def to_dict(self, include_activity=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "man_hours": self.man_hours,
            "order": self.order,
            "assigned_to": self.assigned_to,
            "scheduled_start": _iso(self.scheduled_start),
            "scheduled_end": _iso(self.scheduled_end),
            "actual_start": _iso(self.actual_start),
            "actual_end": _iso(self.actual_end),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_activity:
            result["activity"] = [a.to_dict() for a in self.activities]
        return result

    def __repr__(self):
        return f"<ProjectTask {self.id}: {self.name[:40]} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. TaskActivity
# ═════════════════════════════════════════════════════════════════════════════


class TaskActivity(db.Model):
    """Append-only audit record for task schedule / status changes."""

    __tablename__ = "task_activities"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("project_tasks.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(
        db.String(30), nullable=False,
        comment="SCHEDULE_UPDATE | ACTUAL_DATES_UPDATE | STATUS_CHANGE | ...",
    )
    user_id = db.Column(db.String(100), nullable=True)
    content = db.Column(db.String(500), default="")
    details = db.Column(db.JSON, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "type": self.type,
            "user_id": self.user_id,
            "content": self.content,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TaskActivity {self.id}: task={self.task_id} {self.type}>"
