"""
PrintFlow: form domain models.

Models:
    - FormTemplate:               named form definition attached to a workflow phase
    - FormVersion:                immutable, append-only schema snapshot of a template
    - FormInstance:               one per (project, template) pair; carries status + order
    - FormResponse:               submitted payload; one "current" per instance, history kept
    - FormStatusHistory:          audit trail of instance status changes
    - FormCompletionRequirement:  template-level "depends on" declaration per phase
    - RequirementDependency:      ordered edge row: requirement → prerequisite template

Architecture:
    FormTemplate ──1:N──▶ FormVersion
    FormTemplate ──1:N──▶ FormCompletionRequirement ──1:N──▶ RequirementDependency ──N:1──▶ FormTemplate
    Project ──1:N──▶ FormInstance ──1:N──▶ FormResponse
                     FormInstance ──1:N──▶ FormStatusHistory

Schema JSON (FormVersion.schema):
    {"sections": [{"id": "...", "title": "...",
                   "fields": [{"id": "...", "label": "...", "type": "TEXT", "required": true}]}]}

Instance lifecycle:
    DRAFT → ACTIVE → IN_PROGRESS → PENDING_REVIEW → COMPLETED → ARCHIVED
    ON_HOLD reachable from any state. COMPLETED is gated by the completion check.
"""

from datetime import datetime, timezone

from printflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

FORM_INSTANCE_STATUSES = {
    "DRAFT", "ACTIVE", "IN_PROGRESS", "PENDING_REVIEW",
    "COMPLETED", "ARCHIVED", "ON_HOLD",
}

COMPLETED = "COMPLETED"

FIELD_TYPES = {
    "TEXT", "TEXTAREA", "SELECT", "MULTISELECT",
    "RADIO", "CHECKBOX", "NUMBER", "DATE",
}

BLOCKING_SCOPES = {"PHASE", "TASK"}


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. FormTemplate + FormVersion
# ═════════════════════════════════════════════════════════════════════════════


class FormTemplate(db.Model):
    """Named form definition. The field schema lives in versioned snapshots."""

    __tablename__ = "form_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    phase_name = db.Column(
        db.String(100), nullable=True,
        comment="Workflow phase this template belongs to (e.g. DESIGN, PRINT)",
    )
    current_version = db.Column(db.Integer, default=0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    versions = db.relationship(
        "FormVersion", backref="template", lazy="dynamic",
        cascade="all, delete-orphan", order_by="FormVersion.version",
    )
    requirements = db.relationship(
        "FormCompletionRequirement", backref="template", lazy="dynamic",
        cascade="all, delete-orphan",
        foreign_keys="FormCompletionRequirement.template_id",
    )

    def add_version(self, schema: dict, created_by: str | None = None) -> "FormVersion":
        """Append a new immutable schema version and make it current."""
        self.current_version = (self.current_version or 0) + 1
        version = FormVersion(
            template=self,
            version=self.current_version,
            schema=schema,
            created_by=created_by,
        )
        db.session.add(version)
        return version

    def latest_version(self):
        return self.versions.filter_by(version=self.current_version).first()

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "phase_name": self.phase_name,
            "current_version": self.current_version,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<FormTemplate {self.id}: {self.name[:40]} v{self.current_version}>"


class FormVersion(db.Model):
    """Immutable schema snapshot. Never updated after insert."""

    __tablename__ = "form_versions"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("form_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    schema = db.Column(db.JSON, nullable=False, default=dict)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("template_id", "version", name="uq_form_version"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "version": self.version,
            "schema": self.schema,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<FormVersion template={self.template_id} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. FormInstance + FormResponse + FormStatusHistory
# ═════════════════════════════════════════════════════════════════════════════


class FormInstance(db.Model):
    """Per-project occurrence of a template. ``order`` sequences forms in a phase."""

    __tablename__ = "form_instances"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("form_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_id = db.Column(
        db.Integer, db.ForeignKey("form_versions.id", ondelete="SET NULL"),
        nullable=True, comment="Schema version pinned at instantiation",
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("project_tasks.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    status = db.Column(
        db.String(20), default="DRAFT",
        comment="DRAFT | ACTIVE | IN_PROGRESS | PENDING_REVIEW | COMPLETED | ARCHIVED | ON_HOLD",
    )
    order = db.Column(db.Integer, nullable=True, comment="Sequencing hint within the phase")

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
        db.UniqueConstraint("project_id", "template_id", name="uq_form_instance_project_template"),
        db.CheckConstraint(
            "status IN ('DRAFT','ACTIVE','IN_PROGRESS','PENDING_REVIEW',"
            "'COMPLETED','ARCHIVED','ON_HOLD')",
            name="ck_form_instance_status",
        ),
    )

    template = db.relationship("FormTemplate")
    version = db.relationship("FormVersion")
    responses = db.relationship(
        "FormResponse", backref="instance", lazy="dynamic",
        cascade="all, delete-orphan", order_by="FormResponse.id",
    )
    status_history = db.relationship(
        "FormStatusHistory", backref="instance", lazy="dynamic",
        cascade="all, delete-orphan", order_by="FormStatusHistory.id",
    )

    @property
    def current_response(self):
        return self.responses.filter_by(is_current=True).first()

    def schema(self) -> dict:
        """Field schema of the pinned version, falling back to the template's latest."""
        version = self.version or self.template.latest_version()
        return version.schema if version else {}

    def to_dict(self, include_response=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "template_id": self.template_id,
            "template_name": self.template.name if self.template else None,
            "version_id": self.version_id,
            "phase_id": self.phase_id,
            "task_id": self.task_id,
            "status": self.status,
            "order": self.order,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_response:
            current = self.current_response
            result["current_response"] = current.to_dict() if current else None
        return result

    def __repr__(self):
        return f"<FormInstance {self.id}: project={self.project_id} template={self.template_id} [{self.status}]>"


class FormResponse(db.Model):
    """Submitted payload. Rows are never edited; a new submission supersedes the current one."""

    __tablename__ = "form_responses"

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("form_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    data = db.Column(db.JSON, nullable=False, default=dict)
    is_current = db.Column(db.Boolean, nullable=False, default=True)
    submitted_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "data": self.data,
            "is_current": self.is_current,
            "submitted_by": self.submitted_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<FormResponse {self.id}: instance={self.instance_id} current={self.is_current}>"


class FormStatusHistory(db.Model):
    """One row per status write, including batch writes."""

    __tablename__ = "form_status_history"

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("form_instances.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=False)
    changed_by = db.Column(db.String(100), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, default=dict)
    batch_update = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "comment": self.comment,
            "metadata": self.meta,
            "batch_update": self.batch_update,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<FormStatusHistory {self.instance_id}: {self.from_status} → {self.to_status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. FormCompletionRequirement + RequirementDependency
# ═════════════════════════════════════════════════════════════════════════════


class FormCompletionRequirement(db.Model):
    """
    Declares which templates must be satisfied before this template's instances.

    ``phase_id`` NULL means the requirement applies in every phase. The ordered
    ``dependencies`` rows preserve declaration order.
    """

    __tablename__ = "form_completion_requirements"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("form_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    is_blocking = db.Column(db.Boolean, nullable=False, default=True)
    blocking_scope = db.Column(
        db.String(10), nullable=False, default="PHASE",
        comment="PHASE | TASK",
    )

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
        db.UniqueConstraint("template_id", "phase_id", name="uq_completion_requirement"),
        db.CheckConstraint(
            "blocking_scope IN ('PHASE','TASK')",
            name="ck_completion_requirement_scope",
        ),
    )

    dependencies = db.relationship(
        "RequirementDependency", backref="requirement",
        cascade="all, delete-orphan", order_by="RequirementDependency.position",
    )

    @property
    def depends_on_ids(self) -> list[int]:
        return [d.depends_on_template_id for d in self.dependencies]

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "phase_id": self.phase_id,
            "is_blocking": self.is_blocking,
            "blocking_scope": self.blocking_scope,
            "depends_on": self.depends_on_ids,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<FormCompletionRequirement template={self.template_id} depends_on={self.depends_on_ids}>"


class RequirementDependency(db.Model):
    """Ordered prerequisite edge of a completion requirement."""

    __tablename__ = "requirement_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    requirement_id = db.Column(
        db.Integer, db.ForeignKey("form_completion_requirements.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    depends_on_template_id = db.Column(
        db.Integer, db.ForeignKey("form_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint(
            "requirement_id", "depends_on_template_id",
            name="uq_requirement_dependency",
        ),
    )

    def __repr__(self):
        return f"<RequirementDependency req={self.requirement_id} → template={self.depends_on_template_id}>"
