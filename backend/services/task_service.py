"""Task and checklist operations with client-side encryption.

Descriptions and checklist text are encrypted with the signed-in user's email
immediately before they are written, and decrypted per record immediately
after they are read.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from config import get_settings
from crypto import encrypt
from db.rest_client import SupabaseClient
from models.database import TaskStatus
from models.schemas import (
    AuthSession,
    DecryptedTask,
    TaskCreate,
    TaskFilter,
    TaskRecord,
)
from services.decryption import decrypt_task, decrypt_tasks

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"
CHECKLIST_TABLE = "checklist_items"
TASK_COLUMNS = "*, checklist_items(*)"

FILTER_CONDITIONS: dict[TaskFilter, dict[str, Any]] = {
    TaskFilter.TODAY: {"is_today": True},
    TaskFilter.PENDING: {"status": TaskStatus.PENDING.value},
    TaskFilter.COMPLETED: {"status": TaskStatus.COMPLETED.value},
    TaskFilter.ALL: {},
}


class TaskNotFoundError(Exception):
    """The task (or checklist item) does not exist or is not visible to this user."""


def _day_bounds(on_date: date) -> tuple[str, str]:
    start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    return start.isoformat(), end.isoformat()


class TaskService:
    """Operations on the signed-in user's tasks.

    ``session.email`` is the encryption passphrase for every field this
    service writes or reads.
    """

    def __init__(
        self,
        client: SupabaseClient,
        session: AuthSession,
        *,
        placeholder: str | None = None,
    ):
        self.client = client
        self.session = session
        self.placeholder = placeholder or get_settings().decryption_failure_placeholder

    @property
    def passphrase(self) -> str:
        return self.session.email

    def _decrypt(self, row: dict[str, Any]) -> DecryptedTask:
        return decrypt_task(
            TaskRecord.model_validate(row), self.passphrase, placeholder=self.placeholder
        )

    async def _fetch_row(self, task_id: uuid.UUID) -> dict[str, Any]:
        rows = await self.client.select(
            TASKS_TABLE,
            columns=TASK_COLUMNS,
            filters={"id": task_id, "user_id": self.session.user_id},
        )
        if not rows:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return rows[0]

    # ─── Create ───────────────────────────────────────────────────────────────

    async def create_task(self, body: TaskCreate) -> DecryptedTask:
        """Encrypt and insert a task, then its checklist steps in order."""
        rows = await self.client.insert(
            TASKS_TABLE,
            {
                "user_id": str(self.session.user_id),
                "title": body.title,
                "jira_ticket_link": body.jira_ticket_link,
                "encrypted_data": encrypt(body.description, self.passphrase),
                "status": TaskStatus.PENDING.value,
                "is_today": body.is_today,
            },
        )
        task_row = rows[0]

        if body.checklist:
            items = await self.client.insert(
                CHECKLIST_TABLE,
                [
                    {
                        "task_id": task_row["id"],
                        "encrypted_data": encrypt(step, self.passphrase),
                        "position": index,
                        "completed": False,
                    }
                    for index, step in enumerate(body.checklist)
                ],
            )
            task_row = {**task_row, "checklist_items": items}

        logger.info("Created task %s with %d step(s)", task_row["id"], len(body.checklist))
        return self._decrypt(task_row)

    # ─── Read ─────────────────────────────────────────────────────────────────

    async def list_tasks(
        self,
        task_filter: TaskFilter = TaskFilter.TODAY,
        *,
        on_date: date | None = None,
    ) -> list[DecryptedTask]:
        """Newest first. A record that fails to decrypt gets the placeholder."""
        filters: dict[str, Any] = {
            "user_id": self.session.user_id,
            **FILTER_CONDITIONS[task_filter],
        }
        if on_date is not None:
            start, end = _day_bounds(on_date)
            filters["created_at"] = [("gte", start), ("lt", end)]

        rows = await self.client.select(
            TASKS_TABLE,
            columns=TASK_COLUMNS,
            filters=filters,
            order="created_at.desc",
        )
        records = [TaskRecord.model_validate(row) for row in rows]
        return decrypt_tasks(records, self.passphrase, placeholder=self.placeholder)

    async def get_task(self, task_id: uuid.UUID) -> DecryptedTask:
        return self._decrypt(await self._fetch_row(task_id))

    # ─── Update ───────────────────────────────────────────────────────────────

    async def set_task_status(self, task_id: uuid.UUID, status: TaskStatus) -> DecryptedTask:
        completed_at = datetime.now(timezone.utc).isoformat() if status is TaskStatus.COMPLETED else None
        rows = await self.client.update(
            TASKS_TABLE,
            {"status": status.value, "completed_at": completed_at},
            filters={"id": task_id},
        )
        if not rows:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return await self.get_task(task_id)

    async def toggle_task_status(self, task_id: uuid.UUID) -> DecryptedTask:
        row = await self._fetch_row(task_id)
        return await self.set_task_status(task_id, TaskStatus(row["status"]).toggled)

    async def set_today(self, task_id: uuid.UUID, is_today: bool = True) -> DecryptedTask:
        rows = await self.client.update(
            TASKS_TABLE, {"is_today": is_today}, filters={"id": task_id}
        )
        if not rows:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return await self.get_task(task_id)

    async def toggle_checklist_item(self, item_id: uuid.UUID) -> bool:
        """Flip one step's completed flag and return the new value."""
        items = await self.client.select(
            CHECKLIST_TABLE, columns="id,completed", filters={"id": item_id}
        )
        if not items:
            raise TaskNotFoundError(f"Checklist item {item_id} not found")
        completed = not items[0]["completed"]
        await self.client.update(
            CHECKLIST_TABLE, {"completed": completed}, filters={"id": item_id}
        )
        return completed

    async def add_checklist_item(self, task_id: uuid.UUID, text: str) -> DecryptedTask:
        if not text.strip():
            raise ValueError("Checklist item text is required")
        row = await self._fetch_row(task_id)
        positions = [item["position"] for item in row.get("checklist_items") or []]
        await self.client.insert(
            CHECKLIST_TABLE,
            {
                "task_id": str(task_id),
                "encrypted_data": encrypt(text, self.passphrase),
                "position": max(positions, default=-1) + 1,
                "completed": False,
            },
        )
        return await self.get_task(task_id)

    # ─── Delete ───────────────────────────────────────────────────────────────

    async def delete_task(self, task_id: uuid.UUID) -> None:
        """Delete a task; its checklist items go with it (ON DELETE CASCADE)."""
        rows = await self.client.delete(TASKS_TABLE, filters={"id": task_id})
        if not rows:
            raise TaskNotFoundError(f"Task {task_id} not found")
        logger.info("Deleted task %s", task_id)
