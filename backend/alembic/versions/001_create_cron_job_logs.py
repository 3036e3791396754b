"""Create cron_job_logs table

Revision ID: 001
Revises: None
Create Date: 2024-07-01 00:00:00.000000+00:00

What:  Audit table for scheduled jobs (one row per start and per outcome).
How:   UUID primary key with gen_random_uuid(), TIMESTAMP WITH TIME ZONE.
       See notewise/models/job_log.py.

Rollback: downgrade() drops the table and its audit history.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "cron_job_logs",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("job_name", sa.Text(), nullable=False),
        # started | completed | error
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="cron_job_logs_pkey"),
    )

    op.create_index("cron_job_logs_job_name_idx", "cron_job_logs", ["job_name"])
    op.create_index(
        "cron_job_logs_created_at_idx",
        "cron_job_logs",
        [sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("cron_job_logs_created_at_idx", table_name="cron_job_logs")
    op.drop_index("cron_job_logs_job_name_idx", table_name="cron_job_logs")
    op.drop_table("cron_job_logs")
