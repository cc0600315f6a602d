"""task assignees

Revision ID: 0002_task_assignees
Revises: 0001_init
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_task_assignees"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "task_assignees",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("task_id", "user_id", name="ux_task_assignees_task_user"),
  )
  op.create_index("ix_task_assignees_task_id", "task_assignees", ["task_id"], unique=False)
  op.create_index("ix_task_assignees_user_id", "task_assignees", ["user_id"], unique=False)


def downgrade() -> None:
  op.drop_table("task_assignees")
