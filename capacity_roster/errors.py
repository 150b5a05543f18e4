from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EngineerRecord


class RosterError(RuntimeError):
    """Base class for identity-resolution and migration failures."""


class ValidationError(RosterError):
    def __init__(self, record_key: str, reason: str) -> None:
        super().__init__(f"Record {record_key} invalid: {reason}")
        self.record_key = record_key
        self.reason = reason


class ConflictError(RosterError):
    def __init__(self, slug: str, reason: str = "slug already exists") -> None:
        super().__init__(f"Engineer slug '{slug}' conflict: {reason}")
        self.slug = slug
        self.reason = reason


class PersistenceError(RosterError):
    """Raised by a store when a read or write is rejected."""


class CollisionDetected(RosterError):
    def __init__(self, key: str, records: Sequence["EngineerRecord"]) -> None:
        ids = ", ".join(f"{record.display_name} [{record.id}]" for record in records)
        super().__init__(f"Engineers share normalized name '{key}': {ids}")
        self.key = key
        self.records = tuple(records)


class EngineerNotFound(PersistenceError):
    def __init__(self, engineer_id: str) -> None:
        super().__init__(f"engineer {engineer_id} does not exist")
        self.engineer_id = engineer_id
