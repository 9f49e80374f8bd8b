"""Initial schema — tasks and checklist_items with row-level security.

Revision ID: 0001
Revises:
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TASK_OWNER = "auth.uid() = user_id"
CHECKLIST_OWNER = (
    "EXISTS (SELECT 1 FROM tasks "
    "WHERE tasks.id = checklist_items.task_id AND tasks.user_id = auth.uid())"
)

# (table, policy name, command, clause); INSERT policies use WITH CHECK
POLICIES = [
    ("tasks", "Users can view own tasks", "SELECT", TASK_OWNER),
    ("tasks", "Users can insert own tasks", "INSERT", TASK_OWNER),
    ("tasks", "Users can update own tasks", "UPDATE", TASK_OWNER),
    ("tasks", "Users can delete own tasks", "DELETE", TASK_OWNER),
    ("checklist_items", "Users can view own checklist items", "SELECT", CHECKLIST_OWNER),
    ("checklist_items", "Users can insert own checklist items", "INSERT", CHECKLIST_OWNER),
    ("checklist_items", "Users can update own checklist items", "UPDATE", CHECKLIST_OWNER),
    ("checklist_items", "Users can delete own checklist items", "DELETE", CHECKLIST_OWNER),
]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── tasks ────────────────────────────────────────────────────────
    op.create_table(
        "tasks",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("uuid_generate_v4()"),
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("auth.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("jira_ticket_link", sa.Text, nullable=True),
        sa.Column("encrypted_data", sa.Text, nullable=False),
        sa.Column("status", sa.Text, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("is_today", sa.Boolean, server_default=sa.text("true")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'completed')", name="tasks_status_check"),
    )
    op.create_index("idx_tasks_user_id", "tasks", ["user_id"])
    op.create_index("idx_tasks_status", "tasks", ["status"])
    op.create_index("idx_tasks_is_today", "tasks", ["is_today"])

    # ── checklist_items ──────────────────────────────────────────────
    op.create_table(
        "checklist_items",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("uuid_generate_v4()"),
        ),
        sa.Column(
            "task_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("encrypted_data", sa.Text, nullable=False),
        sa.Column("completed", sa.Boolean, server_default=sa.text("false")),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_checklist_items_task_id", "checklist_items", ["task_id"])

    # ── row-level security ───────────────────────────────────────────
    op.execute("ALTER TABLE tasks ENABLE ROW LEVEL SECURITY")
    op.execute("ALTER TABLE checklist_items ENABLE ROW LEVEL SECURITY")
    for table, name, command, clause in POLICIES:
        check = "WITH CHECK" if command == "INSERT" else "USING"
        op.execute(f'CREATE POLICY "{name}" ON {table} FOR {command} {check} ({clause})')

    # ── updated_at triggers ──────────────────────────────────────────
    op.execute(
        """
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
          NEW.updated_at = NOW();
          RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    for table in ("tasks", "checklist_items"):
        op.execute(
            f"CREATE TRIGGER update_{table}_updated_at BEFORE UPDATE ON {table} "
            "FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()"
        )


def downgrade() -> None:
    for table in ("checklist_items", "tasks"):
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    for table, name, _command, _clause in POLICIES:
        op.execute(f'DROP POLICY IF EXISTS "{name}" ON {table}')

    op.drop_table("checklist_items")
    op.drop_table("tasks")
