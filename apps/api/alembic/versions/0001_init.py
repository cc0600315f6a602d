"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
  return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    _ts("created_at"),
    _ts("expires_at"),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "boards",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("color", sa.String(32), nullable=False, server_default="#6366f1"),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"], unique=False)

  op.create_table(
    "board_members",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_board_id", "board_members", ["board_id"], unique=False)
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"], unique=False)

  op.create_table(
    "lists",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_lists_board_id", "lists", ["board_id"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("list_id", sa.String(36), sa.ForeignKey("lists.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("priority", sa.String(16), nullable=False, server_default="medium"),
    _ts("due_date", nullable=True),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_tasks_board_id", "tasks", ["board_id"], unique=False)
  op.create_index("ix_tasks_list_id", "tasks", ["list_id"], unique=False)

  op.create_table(
    "comments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_comments_task_id", "comments", ["task_id"], unique=False)

  op.create_table(
    "labels",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(32), nullable=False, server_default="#64748b"),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "name", name="ux_labels_board_name"),
  )
  op.create_index("ix_labels_board_id", "labels", ["board_id"], unique=False)

  op.create_table(
    "task_labels",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("label_id", sa.String(36), sa.ForeignKey("labels.id"), nullable=False),
    sa.UniqueConstraint("task_id", "label_id", name="ux_task_labels_task_label"),
  )
  op.create_index("ix_task_labels_task_id", "task_labels", ["task_id"], unique=False)
  op.create_index("ix_task_labels_label_id", "task_labels", ["label_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), nullable=True),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"], unique=False)
  op.create_index("ix_audit_events_task_id", "audit_events", ["task_id"], unique=False)


def downgrade() -> None:
  for table in (
    "audit_events",
    "task_labels",
    "labels",
    "comments",
    "tasks",
    "lists",
    "board_members",
    "boards",
    "sessions",
    "users",
  ):
    op.drop_table(table)
