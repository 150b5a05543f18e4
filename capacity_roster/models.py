from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple


EngineerStatus = str
CanonicalKey = str


ENGINEER_STATUSES: Tuple[EngineerStatus, ...] = ("active", "inactive", "contractor", "on_leave")
CURRENCIES: Tuple[str, ...] = ("EUR", "CZK")
EDITABLE_FIELDS: Tuple[str, ...] = ("display_name", "status", "company", "hourly_rate", "currency", "fte_percent")


@dataclass(frozen=True)
class EngineerRecord:
    """Canonical registry entry for one real engineer."""

    id: str
    display_name: str
    slug: str
    status: EngineerStatus = "active"
    company: str = ""
    hourly_rate: Optional[float] = None
    currency: Optional[str] = None
    fte_percent: int = 100

    def edited(self, **changes: object) -> "EngineerRecord":
        # id and slug are fixed at creation so existing references keep working
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValueError(f"cannot edit engineer fields: {', '.join(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "slug": self.slug,
            "status": self.status,
            "company": self.company,
            "hourly_rate": self.hourly_rate,
            "currency": self.currency,
            "fte_percent": self.fte_percent,
        }


@dataclass(frozen=True)
class LegacyPlanningRecord:
    """One (engineer name, calendar week) assignment predating the registry."""

    record_key: str
    konstrukter: str
    cw: str
    month: str
    hours_per_week: Optional[float]
    project_code: Optional[str]
    engineer_id: Optional[str] = None

    def is_linked(self) -> bool:
        return self.engineer_id is not None

    def with_engineer_id(self, engineer_id: str) -> "LegacyPlanningRecord":
        return replace(self, engineer_id=engineer_id)


@dataclass(frozen=True)
class MigrationConfig:
    default_status: EngineerStatus = "active"
    default_company: str = ""
    status_filter: Tuple[EngineerStatus, ...] = ENGINEER_STATUSES
    aliases: Mapping[str, str] = field(default_factory=dict)
    logging_level: str = "INFO"
    free_project_code: str = "FREE"


@dataclass
class MigrationReport:
    """Outcome of one migration run.

    ``to_dict`` is the payload rendered verbatim by the CLI and the web API, so
    its keys must stay stable.
    """

    success: bool = True
    message: str = ""
    migrated: int = 0
    planning_entries_updated: int = 0
    error_details: List[str] = field(default_factory=list)
    collisions: List[str] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_details)

    def add_error(self, detail: str) -> None:
        self.error_details.append(detail)
        self.success = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "message": self.message,
            "migrated": self.migrated,
            "planningEntriesUpdated": self.planning_entries_updated,
            "errors": self.errors,
            "errorDetails": list(self.error_details),
            "collisions": list(self.collisions),
        }
