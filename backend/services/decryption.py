"""Per-record decryption of fetched tasks.

A record that cannot be decrypted (wrong key, corrupted ciphertext) is
replaced by a placeholder instead of failing the whole listing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from crypto import DecryptionError, decrypt
from models.schemas import DecryptedChecklistItem, DecryptedTask, TaskRecord

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "[Decryption failed]"


@dataclass(frozen=True, slots=True)
class Decrypted:
    text: str

    ok = True

    @property
    def value(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class DecryptFailed:
    placeholder: str
    reason: str

    ok = False

    @property
    def value(self) -> str:
        return self.placeholder


DecryptOutcome = Decrypted | DecryptFailed


def decrypt_field(
    cipher: str,
    passphrase: str,
    *,
    placeholder: str = DEFAULT_PLACEHOLDER,
    allow_empty: bool = False,
) -> DecryptOutcome:
    """Decrypt one value, turning a DecryptionError into a DecryptFailed outcome."""
    try:
        return Decrypted(decrypt(cipher, passphrase, allow_empty=allow_empty))
    except DecryptionError as exc:
        return DecryptFailed(placeholder=placeholder, reason=str(exc))


def decrypt_task(
    record: TaskRecord,
    passphrase: str,
    *,
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> DecryptedTask:
    """Decrypt a task and its checklist.

    If any field fails, the whole task falls back to the placeholder
    description with an empty checklist.
    """
    fields = record.model_dump(exclude={"encrypted_data", "checklist_items"})

    # Descriptions are optional in the task form, so "" is a legitimate value.
    description = decrypt_field(
        record.encrypted_data, passphrase, placeholder=placeholder, allow_empty=True
    )

    checklist: list[DecryptedChecklistItem] = []
    failure = description if isinstance(description, DecryptFailed) else None
    if failure is None:
        for item in sorted(record.checklist_items, key=lambda i: i.position):
            outcome = decrypt_field(item.encrypted_data, passphrase, placeholder=placeholder)
            if isinstance(outcome, DecryptFailed):
                failure = outcome
                break
            checklist.append(
                DecryptedChecklistItem(
                    **item.model_dump(exclude={"encrypted_data"}),
                    text=outcome.text,
                )
            )

    if failure is not None:
        logger.warning("Could not decrypt task %s: %s", record.id, failure.reason)
        return DecryptedTask(
            **fields,
            description=placeholder,
            checklist=[],
            decryption_failed=True,
        )

    return DecryptedTask(**fields, description=description.value, checklist=checklist)


def decrypt_tasks(
    records: Iterable[TaskRecord],
    passphrase: str,
    *,
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> list[DecryptedTask]:
    return [decrypt_task(r, passphrase, placeholder=placeholder) for r in records]
