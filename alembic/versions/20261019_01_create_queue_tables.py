"""Create task queue, job definition, lock and audit tables"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from rsf_queue.database.types import GUID, UTCDateTime


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    payload_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")

    op.create_table(
        "task_queue",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("data", payload_type, nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_task_queue_status", "task_queue", ["status"])
    op.create_index(
        "ix_task_queue_claim_order",
        "task_queue",
        ["status", "priority", "created_at"],
    )

    op.create_table(
        "job_definitions",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("start_date", UTCDateTime(), nullable=False),
        sa.Column("end_date", UTCDateTime(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.CheckConstraint("end_date > start_date", name="ck_job_definitions_date_order"),
    )
    op.create_index(
        "ix_job_definitions_type_range",
        "job_definitions",
        ["type", "start_date", "end_date"],
    )

    op.create_table(
        "execution_logs",
        sa.Column("log_id", GUID(), primary_key=True, nullable=False),
        sa.Column("job_definition_id", GUID(), nullable=False),
        sa.Column("start_time", UTCDateTime(), nullable=False),
        sa.Column("end_time", UTCDateTime(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("affected_units", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_execution_logs_definition_start",
        "execution_logs",
        ["job_definition_id", "start_time"],
    )

    op.create_table(
        "job_locks",
        sa.Column("lock_key", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("owner", sa.String(length=255), nullable=False),
        sa.Column("acquired_at", UTCDateTime(), nullable=False),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("actor_name", sa.String(length=255), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("resource", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("target", sa.String(length=255), nullable=True),
        sa.Column("details", sa.String(length=1024), nullable=True),
        sa.Column("event_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_actor", "audit_events", ["actor_id", "created_at"])
    op.create_index(
        "ix_audit_events_resource",
        "audit_events",
        ["resource", "action", "created_at"],
    )

    if _is_postgres():
        # same-type definitions may not share any instant, bounds inclusive
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE job_definitions
            ADD CONSTRAINT ex_job_definitions_no_overlap
            EXCLUDE USING gist (type WITH =, tstzrange(start_date, end_date, '[]') WITH &&)
            """
        )
        op.execute(
            """
            CREATE OR REPLACE FUNCTION job_definitions_immutable() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION 'job_definitions rows are immutable';
            END;
            $$ LANGUAGE plpgsql
            """
        )
        op.execute(
            """
            CREATE TRIGGER trg_job_definitions_immutable
            BEFORE UPDATE OR DELETE ON job_definitions
            FOR EACH ROW EXECUTE FUNCTION job_definitions_immutable()
            """
        )


def downgrade() -> None:
    if _is_postgres():
        op.execute("DROP TRIGGER IF EXISTS trg_job_definitions_immutable ON job_definitions")
        op.execute("DROP FUNCTION IF EXISTS job_definitions_immutable()")

    op.drop_index("ix_audit_events_resource", table_name="audit_events")
    op.drop_index("ix_audit_events_actor", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("job_locks")
    op.drop_index("ix_execution_logs_definition_start", table_name="execution_logs")
    op.drop_table("execution_logs")
    op.drop_index("ix_job_definitions_type_range", table_name="job_definitions")
    op.drop_table("job_definitions")
    op.drop_index("ix_task_queue_claim_order", table_name="task_queue")
    op.drop_index("ix_task_queue_status", table_name="task_queue")
    op.drop_table("task_queue")
