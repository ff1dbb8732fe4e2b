"""Initial automation tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create automation tables."""
    # Create automation_workflows table
    op.create_table(
        "automation_workflows",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("trigger_type", sa.String(length=50), nullable=False),
        sa.Column("trigger_config", JSONType, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_template", sa.Boolean(), nullable=False),
        sa.Column("template_category", sa.String(length=100), nullable=True),
        sa.Column("metadata", JSONType, nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_automation_workflows_user_id", "automation_workflows", ["user_id"])
    op.create_index("ix_automation_workflows_status", "automation_workflows", ["status"])
    op.create_index("ix_automation_workflows_is_template", "automation_workflows", ["is_template"])

    # Create automation_workflow_states table
    op.create_table(
        "automation_workflow_states",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("state_type", sa.String(length=50), nullable=False),
        sa.Column("action_type", sa.String(length=100), nullable=True),
        sa.Column("action_config", JSONType, nullable=False),
        sa.Column("position_x", sa.Integer(), nullable=False),
        sa.Column("position_y", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("timeout_seconds", sa.Integer(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("retry_delay_seconds", sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["workflow_id"], ["automation_workflows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_automation_workflow_states_workflow_id", "automation_workflow_states", ["workflow_id"])

    # Create automation_workflow_transitions table
    op.create_table(
        "automation_workflow_transitions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_id", sa.Uuid(), nullable=False),
        sa.Column("from_state_id", sa.Uuid(), nullable=False),
        sa.Column("to_state_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("condition", JSONType, nullable=False),
        sa.Column("condition_expression", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("routing_points", JSONType, nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["workflow_id"], ["automation_workflows.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["from_state_id"], ["automation_workflow_states.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_state_id"], ["automation_workflow_states.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_automation_workflow_transitions_workflow_id",
        "automation_workflow_transitions",
        ["workflow_id"],
    )
    op.create_index(
        "ix_automation_workflow_transitions_from_state",
        "automation_workflow_transitions",
        ["from_state_id", "priority"],
    )

    # Create automation_workflow_schedules table
    op.create_table(
        "automation_workflow_schedules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_id", sa.Uuid(), nullable=False),
        sa.Column("cron_expression", sa.String(length=100), nullable=False),
        sa.Column("timezone", sa.String(length=50), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("input_data", JSONType, nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("run_count", sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["workflow_id"], ["automation_workflows.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_automation_workflow_schedules_workflow_id",
        "automation_workflow_schedules",
        ["workflow_id"],
    )

    # Create automation_workflow_instances table
    op.create_table(
        "automation_workflow_instances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("current_state_id", sa.Uuid(), nullable=True),
        sa.Column("context", JSONType, nullable=False),
        sa.Column("input_data", JSONType, nullable=False),
        sa.Column("output_data", JSONType, nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("trigger_source", sa.String(length=50), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["workflow_id"], ["automation_workflows.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["current_state_id"], ["automation_workflow_states.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_automation_workflow_instances_workflow_id",
        "automation_workflow_instances",
        ["workflow_id"],
    )
    op.create_index("ix_automation_workflow_instances_status", "automation_workflow_instances", ["status"])
    op.create_index("ix_automation_workflow_instances_user_id", "automation_workflow_instances", ["user_id"])

    # Create automation_workflow_logs table
    op.create_table(
        "automation_workflow_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("instance_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("state_id", sa.Uuid(), nullable=True),
        sa.Column("transition_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("input_data", JSONType, nullable=True),
        sa.Column("output_data", JSONType, nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["instance_id"], ["automation_workflow_instances.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_automation_workflow_logs_instance_sequence",
        "automation_workflow_logs",
        ["instance_id", "sequence"],
        unique=True,
    )


def downgrade() -> None:
    """Drop automation tables."""
    op.drop_table("automation_workflow_logs")
    op.drop_table("automation_workflow_instances")
    op.drop_table("automation_workflow_schedules")
    op.drop_table("automation_workflow_transitions")
    op.drop_table("automation_workflow_states")
    op.drop_table("automation_workflows")
