"""engine_core_tables

Create project, task, form and completion-requirement tables.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d30"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            _ts("start_date"),
            _ts("end_date"),
            _ts("created_at"),
            _ts("updated_at"),
        )

    if "project_phases" not in existing_tables:
        op.create_table(
            "project_phases",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("order", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_project_phases_project_id", "project_phases", ["project_id"])

    if "project_tasks" not in existing_tables:
        op.create_table(
            "project_tasks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=True),
            sa.Column("man_hours", sa.Float(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=True),
            sa.Column("assigned_to", sa.String(length=100), nullable=True),
            _ts("scheduled_start"),
            _ts("scheduled_end"),
            _ts("actual_start"),
            _ts("actual_end"),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["phase_id"], ["project_phases.id"], ondelete="SET NULL"),
            sa.CheckConstraint(
                "status IN ('NOT_STARTED','IN_PROGRESS','ON_HOLD','COMPLETED')",
                name="ck_project_task_status",
            ),
            sa.CheckConstraint(
                "priority IN ('LOW','MEDIUM','HIGH','URGENT')",
                name="ck_project_task_priority",
            ),
        )
        op.create_index("ix_project_tasks_project_id", "project_tasks", ["project_id"])
        op.create_index("ix_project_tasks_phase_id", "project_tasks", ["phase_id"])

    if "task_activities" not in existing_tables:
        op.create_table(
            "task_activities",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("user_id", sa.String(length=100), nullable=True),
            sa.Column("content", sa.String(length=500), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["task_id"], ["project_tasks.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_task_activities_task_id", "task_activities", ["task_id"])

    if "form_templates" not in existing_tables:
        op.create_table(
            "form_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("phase_name", sa.String(length=100), nullable=True),
            sa.Column("current_version", sa.Integer(), nullable=True),
            _ts("created_at"),
        )

    if "form_versions" not in existing_tables:
        op.create_table(
            "form_versions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("schema", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["template_id"], ["form_templates.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("template_id", "version", name="uq_form_version"),
        )
        op.create_index("ix_form_versions_template_id", "form_versions", ["template_id"])

    if "form_instances" not in existing_tables:
        op.create_table(
            "form_instances",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("version_id", sa.Integer(), nullable=True),
            sa.Column("phase_id", sa.Integer(), nullable=True),
            sa.Column("task_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("order", sa.Integer(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_id"], ["form_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["version_id"], ["form_versions.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["phase_id"], ["project_phases.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["task_id"], ["project_tasks.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("project_id", "template_id", name="uq_form_instance_project_template"),
            sa.CheckConstraint(
                "status IN ('DRAFT','ACTIVE','IN_PROGRESS','PENDING_REVIEW',"
                "'COMPLETED','ARCHIVED','ON_HOLD')",
                name="ck_form_instance_status",
            ),
        )
        for col in ("project_id", "template_id", "phase_id", "task_id"):
            op.create_index(f"ix_form_instances_{col}", "form_instances", [col])

    if "form_responses" not in existing_tables:
        op.create_table(
            "form_responses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("submitted_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["instance_id"], ["form_instances.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_form_responses_instance_id", "form_responses", ["instance_id"])

    if "form_status_history" not in existing_tables:
        op.create_table(
            "form_status_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=20), nullable=True),
            sa.Column("to_status", sa.String(length=20), nullable=False),
            sa.Column("changed_by", sa.String(length=100), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("batch_update", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["instance_id"], ["form_instances.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_form_status_history_instance_id", "form_status_history", ["instance_id"])

    if "form_completion_requirements" not in existing_tables:
        op.create_table(
            "form_completion_requirements",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=True),
            sa.Column("is_blocking", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("blocking_scope", sa.String(length=10), nullable=False, server_default="PHASE"),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["template_id"], ["form_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["phase_id"], ["project_phases.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("template_id", "phase_id", name="uq_completion_requirement"),
            sa.CheckConstraint(
                "blocking_scope IN ('PHASE','TASK')",
                name="ck_completion_requirement_scope",
            ),
        )
        op.create_index(
            "ix_form_completion_requirements_template_id",
            "form_completion_requirements", ["template_id"],
        )
        op.create_index(
            "ix_form_completion_requirements_phase_id",
            "form_completion_requirements", ["phase_id"],
        )

    if "requirement_dependencies" not in existing_tables:
        op.create_table(
            "requirement_dependencies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("requirement_id", sa.Integer(), nullable=False),
            sa.Column("depends_on_template_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(
                ["requirement_id"], ["form_completion_requirements.id"], ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(
                ["depends_on_template_id"], ["form_templates.id"], ondelete="CASCADE",
            ),
            sa.UniqueConstraint(
                "requirement_id", "depends_on_template_id", name="uq_requirement_dependency",
            ),
        )
        op.create_index(
            "ix_requirement_dependencies_requirement_id",
            "requirement_dependencies", ["requirement_id"],
        )
        op.create_index(
            "ix_requirement_dependencies_depends_on_template_id",
            "requirement_dependencies", ["depends_on_template_id"],
        )


def downgrade():
    for table in (
        "requirement_dependencies",
        "form_completion_requirements",
        "form_status_history",
        "form_responses",
        "form_instances",
        "form_versions",
        "form_templates",
        "task_activities",
        "project_tasks",
        "project_phases",
        "projects",
    ):
        op.drop_table(table)
