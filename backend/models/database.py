"""SQLAlchemy models for the tasks schema in the Supabase Postgres database.

The client never connects with these models at runtime (it talks to the
REST API); they describe the tables for Alembic migrations.
"""

import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


# Supabase-managed auth schema; only referenced for the user_id foreign key.
auth_metadata = MetaData(schema="auth")
auth_users = Table("users", auth_metadata, Column("id", UUID(as_uuid=True), primary_key=True))


# ─── Enums ────────────────────────────────────────────────────────────────────


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"

    @property
    def toggled(self) -> "TaskStatus":
        return TaskStatus.COMPLETED if self is TaskStatus.PENDING else TaskStatus.PENDING


# ─── Models ───────────────────────────────────────────────────────────────────


class Task(Base):
    """A task owned by one user. The description lives in ``encrypted_data``."""

    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_user_id", "user_id"),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_is_today", "is_today"),
        CheckConstraint("status IN ('pending', 'completed')", name="tasks_status_check"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, server_default=text("uuid_generate_v4()"))
    user_id = Column(UUID(as_uuid=True), ForeignKey(auth_users.c.id, ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    jira_ticket_link = Column(Text, nullable=True)
    encrypted_data = Column(Text, nullable=False)
    status = Column(Text, default=TaskStatus.PENDING.value, server_default=TaskStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    is_today = Column(Boolean, default=True, server_default=text("true"))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    checklist_items = relationship(
        "ChecklistItem",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChecklistItem.position",
    )


class ChecklistItem(Base):
    """One step under a task. The step text lives in ``encrypted_data``."""

    __tablename__ = "checklist_items"
    __table_args__ = (
        Index("idx_checklist_items_task_id", "task_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, server_default=text("uuid_generate_v4()"))
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    encrypted_data = Column(Text, nullable=False)
    completed = Column(Boolean, default=False, server_default=text("false"))
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", back_populates="checklist_items")
