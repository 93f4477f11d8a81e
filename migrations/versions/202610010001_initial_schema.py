"""Initial action engine schema."""

from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

from agent_actions.models import ExecutionStatus, ScheduleMode, ScheduleStatus, StepType
from agent_actions.models.base import GUID, JSONBType

# revision identifiers, used by Alembic.
revision: str = "202610010001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("user_id", GUID(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_agents_user_id", "agents", ["user_id"], unique=False)

    op.create_table(
        "data_models",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("agent_id", GUID(), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("fields", JSONBType(), nullable=False),
        sa.Column("forms", JSONBType(), nullable=False),
        sa.UniqueConstraint("agent_id", "name", name="uq_data_models_agent_name"),
    )
    op.create_index("ix_data_models_agent_id", "data_models", ["agent_id"], unique=False)

    op.create_table(
        "records",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("model_id", GUID(), sa.ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False),
        sa.Column("data", JSONBType(), nullable=False),
    )
    op.create_index("ix_records_model_id_deleted_at", "records", ["model_id", "deleted_at"], unique=False)

    op.create_table(
        "agent_credentials",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("agent_id", GUID(), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(length=100), nullable=False),
        sa.Column("token_data", JSONBType(), nullable=False),
        sa.Column("scopes", JSONBType(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("agent_id", "provider", name="uq_agent_credentials_agent_provider"),
    )
    op.create_index("ix_agent_credentials_agent_id", "agent_credentials", ["agent_id"], unique=False)

    op.create_table(
        "actions",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("agent_id", GUID(), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_model", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_actions_agent_id", "actions", ["agent_id"], unique=False)

    op.create_table(
        "action_steps",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("action_id", GUID(), sa.ForeignKey("actions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.Enum(StepType, name="step_type"), nullable=False),
        sa.Column("config", JSONBType(), nullable=False),
    )
    op.create_index("ix_action_steps_action_id", "action_steps", ["action_id"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("agent_id", GUID(), sa.ForeignKey("agents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("mode", sa.Enum(ScheduleMode, name="schedule_mode"), nullable=False),
        sa.Column("interval_hours", sa.Float(), nullable=True),
        sa.Column("status", sa.Enum(ScheduleStatus, name="schedule_status"), nullable=False),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_agent_id", "schedules", ["agent_id"], unique=False)
    op.create_index(
        "ix_schedules_status_next_run_at",
        "schedules",
        ["status", "next_run_at"],
        unique=False,
    )

    op.create_table(
        "schedule_steps",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("schedule_id", GUID(), sa.ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("model_id", GUID(), sa.ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action_id", GUID(), sa.ForeignKey("actions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("query", JSONBType(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_schedule_steps_schedule_id", "schedule_steps", ["schedule_id"], unique=False)

    op.create_table(
        "executions",
        sa.Column("id", GUID(), primary_key=True),
        *_timestamps(),
        sa.Column("record_id", GUID(), sa.ForeignKey("records.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action_id", GUID(), sa.ForeignKey("actions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("schedule_id", GUID(), sa.ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.Enum(ExecutionStatus, name="execution_status"), nullable=False),
        sa.Column("result", JSONBType(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("input_tokens", sa.Integer(), nullable=True),
        sa.Column("output_tokens", sa.Integer(), nullable=True),
        sa.Column("total_tokens", sa.Integer(), nullable=True),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_executions_status", "executions", ["status"], unique=False)
    op.create_index("ix_executions_record_action", "executions", ["record_id", "action_id"], unique=False)
    op.create_index("ix_executions_schedule_id", "executions", ["schedule_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_executions_schedule_id", table_name="executions")
    op.drop_index("ix_executions_record_action", table_name="executions")
    op.drop_index("ix_executions_status", table_name="executions")
    op.drop_table("executions")

    op.drop_index("ix_schedule_steps_schedule_id", table_name="schedule_steps")
    op.drop_table("schedule_steps")

    op.drop_index("ix_schedules_status_next_run_at", table_name="schedules")
    op.drop_index("ix_schedules_agent_id", table_name="schedules")
    op.drop_table("schedules")

    op.drop_index("ix_action_steps_action_id", table_name="action_steps")
    op.drop_table("action_steps")

    op.drop_index("ix_actions_agent_id", table_name="actions")
    op.drop_table("actions")

    op.drop_index("ix_agent_credentials_agent_id", table_name="agent_credentials")
    op.drop_table("agent_credentials")

    op.drop_index("ix_records_model_id_deleted_at", table_name="records")
    op.drop_table("records")

    op.drop_index("ix_data_models_agent_id", table_name="data_models")
    op.drop_table("data_models")

    op.drop_index("ix_agents_user_id", table_name="agents")
    op.drop_table("agents")

    for enum_name in ("execution_status", "schedule_status", "schedule_mode", "step_type"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
