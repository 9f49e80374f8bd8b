"""Pydantic schemas for stored rows, user input, and decrypted views."""

import enum
from datetime import datetime, timedelta, timezone
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from models.database import TaskStatus


class TaskFilter(str, enum.Enum):
    TODAY = "today"
    PENDING = "pending"
    COMPLETED = "completed"
    ALL = "all"


# ─── Auth ─────────────────────────────────────────────────────────────────────


class AuthSession(BaseModel):
    access_token: str
    refresh_token: str
    user_id: UUID
    email: str
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.expires_within(0)

    def expires_within(self, seconds: float) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + timedelta(seconds=seconds) >= self.expires_at


# ─── Stored rows (ciphertext) ─────────────────────────────────────────────────


class ChecklistItemRecord(BaseModel):
    id: UUID
    task_id: UUID
    encrypted_data: str
    completed: bool = False
    position: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaskRecord(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    jira_ticket_link: str | None = None
    encrypted_data: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_today: bool = True
    completed_at: datetime | None = None
    checklist_items: list[ChecklistItemRecord] = Field(default_factory=list)


# ─── Input ────────────────────────────────────────────────────────────────────


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    jira_ticket_link: str | None = None
    checklist: list[str] = Field(default_factory=list)
    is_today: bool = True

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("jira_ticket_link")
    @classmethod
    def _normalize_link(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("Ticket link must be an http(s) URL")
        return value

    @field_validator("checklist")
    @classmethod
    def _drop_blank_steps(cls, value: list[str]) -> list[str]:
        return [step for step in value if step.strip()]


# ─── Decrypted views ──────────────────────────────────────────────────────────


class DecryptedChecklistItem(BaseModel):
    id: UUID
    task_id: UUID
    text: str
    completed: bool = False
    position: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DecryptedTask(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    jira_ticket_link: str | None = None
    description: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_today: bool = True
    completed_at: datetime | None = None
    checklist: list[DecryptedChecklistItem] = Field(default_factory=list)
    decryption_failed: bool = False

    @property
    def progress(self) -> tuple[int, int]:
        """(completed steps, total steps)."""
        done = sum(1 for item in self.checklist if item.completed)
        return done, len(self.checklist)
