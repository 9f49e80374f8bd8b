"""Tests for services/decryption.py — per-record decryption of fetched tasks.

Covers:
- decrypt_field() outcomes (Decrypted / DecryptFailed)
- decrypt_task() ordering, empty descriptions, and whole-task fallback
- decrypt_tasks() isolating a bad record from the rest of a listing
"""

import uuid
from unittest.mock import patch

import pytest

from crypto import encrypt
from models.database import TaskStatus
from models.schemas import ChecklistItemRecord, TaskRecord
from services.decryption import (
    DEFAULT_PLACEHOLDER,
    DecryptFailed,
    Decrypted,
    decrypt_field,
    decrypt_task,
    decrypt_tasks,
)

from conftest import EMAIL, USER_ID


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _make_item(task_id, text, position, *, passphrase=EMAIL, completed=False):
    return ChecklistItemRecord(
        id=uuid.uuid4(),
        task_id=task_id,
        encrypted_data=encrypt(text, passphrase),
        position=position,
        completed=completed,
    )


def _make_task(description="Write the report", steps=(), *, passphrase=EMAIL, title="Report"):
    task_id = uuid.uuid4()
    return TaskRecord(
        id=task_id,
        user_id=USER_ID,
        title=title,
        encrypted_data=encrypt(description, passphrase),
        status=TaskStatus.PENDING,
        checklist_items=[
            _make_item(task_id, text, position, passphrase=passphrase)
            for position, text in steps
        ],
    )


# ─── decrypt_field ────────────────────────────────────────────────────────────


class TestDecryptField:
    def test_success(self):
        outcome = decrypt_field(encrypt("hello", EMAIL), EMAIL)
        assert isinstance(outcome, Decrypted)
        assert outcome.ok is True
        assert outcome.value == "hello"

    def test_failure_carries_placeholder(self):
        outcome = decrypt_field("not-valid-ciphertext", EMAIL, placeholder="???")
        assert isinstance(outcome, DecryptFailed)
        assert outcome.ok is False
        assert outcome.value == "???"
        assert outcome.reason

    def test_empty_result_fails_unless_allowed(self):
        cipher = encrypt("", EMAIL)
        assert isinstance(decrypt_field(cipher, EMAIL), DecryptFailed)
        assert decrypt_field(cipher, EMAIL, allow_empty=True) == Decrypted("")

    def test_non_decryption_errors_propagate(self):
        with patch("services.decryption.decrypt", side_effect=RuntimeError("bug")):
            with pytest.raises(RuntimeError):
                decrypt_field("anything", EMAIL)


# ─── decrypt_task ─────────────────────────────────────────────────────────────


class TestDecryptTask:
    def test_decrypts_description_and_checklist(self):
        record = _make_task("Ship it", [(0, "Build"), (1, "Test")])
        task = decrypt_task(record, EMAIL)
        assert task.description == "Ship it"
        assert [item.text for item in task.checklist] == ["Build", "Test"]
        assert task.decryption_failed is False
        assert task.id == record.id
        assert task.title == "Report"

    def test_checklist_sorted_by_position(self):
        record = _make_task("Ordered", [(2, "third"), (0, "first"), (1, "second")])
        task = decrypt_task(record, EMAIL)
        assert [item.text for item in task.checklist] == ["first", "second", "third"]
        assert [item.position for item in task.checklist] == [0, 1, 2]

    def test_empty_description_is_not_a_failure(self):
        task = decrypt_task(_make_task(""), EMAIL)
        assert task.description == ""
        assert task.decryption_failed is False

    def test_wrong_passphrase_falls_back_to_placeholder(self):
        record = _make_task("Secret", [(0, "step")], passphrase="someone@else.com")
        task = decrypt_task(record, EMAIL)
        assert task.description == DEFAULT_PLACEHOLDER
        assert task.checklist == []
        assert task.decryption_failed is True
        assert task.title == "Report", "Plaintext fields survive a decryption failure"

    def test_one_bad_step_fails_the_whole_task(self):
        record = _make_task("Fine", [(0, "good")])
        record.checklist_items.append(
            ChecklistItemRecord(
                id=uuid.uuid4(),
                task_id=record.id,
                encrypted_data="corrupted",
                position=1,
            )
        )
        task = decrypt_task(record, EMAIL)
        assert task.description == DEFAULT_PLACEHOLDER
        assert task.checklist == []
        assert task.decryption_failed is True

    def test_custom_placeholder(self):
        record = _make_task("Secret", passphrase="someone@else.com")
        task = decrypt_task(record, EMAIL, placeholder="<locked>")
        assert task.description == "<locked>"

    def test_checklist_item_flags_are_kept(self):
        record = _make_task("Flags")
        record.checklist_items = [
            _make_item(record.id, "done step", 0, completed=True),
            _make_item(record.id, "open step", 1),
        ]
        task = decrypt_task(record, EMAIL)
        assert [item.completed for item in task.checklist] == [True, False]
        assert task.progress == (1, 2)


# ─── decrypt_tasks ────────────────────────────────────────────────────────────


class TestDecryptTasks:
    def test_one_bad_record_does_not_abort_listing(self):
        records = [
            _make_task("first", title="A"),
            _make_task("second", title="B", passphrase="old-email@example.com"),
            _make_task("third", title="C"),
        ]
        tasks = decrypt_tasks(records, EMAIL)
        assert [t.title for t in tasks] == ["A", "B", "C"]
        assert [t.description for t in tasks] == ["first", DEFAULT_PLACEHOLDER, "third"]
        assert [t.decryption_failed for t in tasks] == [False, True, False]

    def test_empty_listing(self):
        assert decrypt_tasks([], EMAIL) == []
