from __future__ import annotations

import abc
import threading
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .errors import ConflictError, EngineerNotFound, PersistenceError, RosterError
from .io_utils import (
    load_engineers,
    load_planning_entries,
    planning_records_from_df,
    planning_records_to_df,
    write_csv,
    write_engineers,
)
from .models import CURRENCIES, ENGINEER_STATUSES, EngineerRecord, EngineerStatus, LegacyPlanningRecord

ENGINEERS_FILE = "engineers.json"
PLANNING_FILE = "planning_entries.csv"
CONFIG_FILE = "config.json"


def _check_new_engineer(display_name: str, status: EngineerStatus, currency: Optional[str]) -> None:
    if not display_name or not display_name.strip():
        raise PersistenceError("display_name must not be empty")
    if status not in ENGINEER_STATUSES:
        raise PersistenceError(f"unsupported status '{status}'")
    if currency is not None and currency not in CURRENCIES:
        raise PersistenceError(f"unsupported currency '{currency}'")


def _edit_record(record: EngineerRecord, changes: Mapping[str, object]) -> EngineerRecord:
    try:
        edited = record.edited(**changes)
    except ValueError as exc:
        raise PersistenceError(str(exc)) from exc
    _check_new_engineer(edited.display_name, edited.status, edited.currency)
    return edited


def _filter_status(
    records: Iterable[EngineerRecord], status_filter: Optional[Sequence[EngineerStatus]]
) -> List[EngineerRecord]:
    if status_filter is None:
        return list(records)
    allowed = set(status_filter)
    return [record for record in records if record.status in allowed]


class RosterStore(abc.ABC):
    """Storage collaborator consumed by the migration and lookups.

    ``create_engineer`` must reject duplicate slugs with ``ConflictError``;
    that constraint is what keeps concurrent migrations from creating the same
    engineer twice.
    """

    @abc.abstractmethod
    def read_engineers(
        self, status_filter: Optional[Sequence[EngineerStatus]] = None
    ) -> List[EngineerRecord]:
        ...

    @abc.abstractmethod
    def read_legacy_planning_records(self) -> List[LegacyPlanningRecord]:
        ...

    @abc.abstractmethod
    def create_engineer(
        self,
        display_name: str,
        slug: str,
        status: EngineerStatus = "active",
        company: Optional[str] = None,
        hourly_rate: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> str:
        ...

    @abc.abstractmethod
    def update_engineer(self, engineer_id: str, **changes: object) -> EngineerRecord:
        """Apply ``changes`` to an existing engineer; the slug never changes."""

    @abc.abstractmethod
    def update_planning_record_engineer_id(self, record_key: str, engineer_id: str) -> None:
        ...

    def update_planning_record_engineer_ids(self, assignments: Mapping[str, str]) -> Dict[str, str]:
        """Link many records at once. Returns ``record_key -> reason`` for rejected updates."""
        failures: Dict[str, str] = {}
        for record_key, engineer_id in assignments.items():
            try:
                self.update_planning_record_engineer_id(record_key, engineer_id)
            except RosterError as exc:
                failures[record_key] = str(exc)
        return failures

    def planning_frame(self) -> pd.DataFrame:
        return planning_records_to_df(self.read_legacy_planning_records())


class InMemoryStore(RosterStore):
    """Thread-safe store held in process memory."""

    def __init__(
        self,
        engineers: Iterable[EngineerRecord] = (),
        planning_records: Iterable[LegacyPlanningRecord] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._engineers: Dict[str, EngineerRecord] = {}
        self._planning: Dict[str, LegacyPlanningRecord] = {}
        for record in engineers:
            self._engineers[record.id] = record
        for entry in planning_records:
            self._planning[entry.record_key] = entry

    def read_engineers(
        self, status_filter: Optional[Sequence[EngineerStatus]] = None
    ) -> List[EngineerRecord]:
        with self._lock:
            records = list(self._engineers.values())
        return _filter_status(records, status_filter)

    def read_legacy_planning_records(self) -> List[LegacyPlanningRecord]:
        with self._lock:
            return list(self._planning.values())

    def create_engineer(
        self,
        display_name: str,
        slug: str,
        status: EngineerStatus = "active",
        company: Optional[str] = None,
        hourly_rate: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> str:
        _check_new_engineer(display_name, status, currency)
        with self._lock:
            if any(record.slug == slug for record in self._engineers.values()):
                raise ConflictError(slug)
            record = EngineerRecord(
                id=str(uuid.uuid4()),
                display_name=display_name,
                slug=slug,
                status=status,
                company=company or "",
                hourly_rate=hourly_rate,
                currency=currency,
            )
            self._engineers[record.id] = record
        return record.id

    def update_engineer(self, engineer_id: str, **changes: object) -> EngineerRecord:
        with self._lock:
            current = self._engineers.get(engineer_id)
            if current is None:
                raise EngineerNotFound(engineer_id)
            record = _edit_record(current, changes)
            self._engineers[engineer_id] = record
        return record

    def update_planning_record_engineer_id(self, record_key: str, engineer_id: str) -> None:
        with self._lock:
            entry = self._planning.get(record_key)
            if entry is None:
                raise PersistenceError(f"planning record {record_key} not found")
            if engineer_id not in self._engineers:
                raise EngineerNotFound(engineer_id)
            self._planning[record_key] = entry.with_engineer_id(engineer_id)


class PortfolioStore(RosterStore):
    """Store backed by a portfolio directory.

    Layout: ``<project_dir>/input/engineers.json`` (registry, created on first
    write) and ``<project_dir>/input/planning_entries.csv`` (legacy rows).
    """

    def __init__(self, project_dir: str | Path, *, engineers_path: str | Path | None = None,
                 planning_path: str | Path | None = None) -> None:
        self.project_dir = Path(project_dir)
        input_dir = self.project_dir / "input"
        self.engineers_path = Path(engineers_path) if engineers_path else input_dir / ENGINEERS_FILE
        self.planning_path = Path(planning_path) if planning_path else input_dir / PLANNING_FILE
        self._lock = threading.Lock()

    def _load_engineers(self) -> List[EngineerRecord]:
        if not self.engineers_path.exists():
            return []
        return load_engineers(self.engineers_path)

    def read_engineers(
        self, status_filter: Optional[Sequence[EngineerStatus]] = None
    ) -> List[EngineerRecord]:
        with self._lock:
            try:
                records = self._load_engineers()
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot read {self.engineers_path}: {exc}") from exc
        return _filter_status(records, status_filter)

    def read_legacy_planning_records(self) -> List[LegacyPlanningRecord]:
        df = self.planning_frame()
        try:
            return planning_records_from_df(df)
        except ValueError as exc:
            raise PersistenceError(f"cannot read {self.planning_path}: {exc}") from exc

    def planning_frame(self) -> pd.DataFrame:
        with self._lock:
            try:
                return load_planning_entries(self.planning_path)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot read {self.planning_path}: {exc}") from exc

    def create_engineer(
        self,
        display_name: str,
        slug: str,
        status: EngineerStatus = "active",
        company: Optional[str] = None,
        hourly_rate: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> str:
        _check_new_engineer(display_name, status, currency)
        with self._lock:
            try:
                records = self._load_engineers()
                if any(record.slug == slug for record in records):
                    raise ConflictError(slug)
                record = EngineerRecord(
                    id=str(uuid.uuid4()),
                    display_name=display_name,
                    slug=slug,
                    status=status,
                    company=company or "",
                    hourly_rate=hourly_rate,
                    currency=currency,
                )
                records.append(record)
                write_engineers(records, self.engineers_path)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot write {self.engineers_path}: {exc}") from exc
        return record.id

    def update_engineer(self, engineer_id: str, **changes: object) -> EngineerRecord:
        with self._lock:
            try:
                records = self._load_engineers()
                position = next((i for i, record in enumerate(records) if record.id == engineer_id), None)
                if position is None:
                    raise EngineerNotFound(engineer_id)
                records[position] = _edit_record(records[position], changes)
                write_engineers(records, self.engineers_path)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot write {self.engineers_path}: {exc}") from exc
        return records[position]

    def update_planning_record_engineer_id(self, record_key: str, engineer_id: str) -> None:
        failures = self.update_planning_record_engineer_ids({record_key: engineer_id})
        if record_key in failures:
            raise PersistenceError(failures[record_key])

    def update_planning_record_engineer_ids(self, assignments: Mapping[str, str]) -> Dict[str, str]:
        """Apply all links with one read of each file and a single CSV rewrite."""
        failures: Dict[str, str] = {}
        with self._lock:
            try:
                known = {record.id for record in self._load_engineers()}
                df = load_planning_entries(self.planning_path)
                present = set(df["id"])
                applied: Dict[str, str] = {}
                for record_key, engineer_id in assignments.items():
                    if record_key not in present:
                        failures[record_key] = f"planning record {record_key} not found"
                    elif engineer_id not in known:
                        failures[record_key] = str(EngineerNotFound(engineer_id))
                    else:
                        applied[record_key] = engineer_id
                if applied:
                    mask = df["id"].isin(list(applied))
                    df.loc[mask, "engineer_id"] = df.loc[mask, "id"].map(applied)
                    write_csv(df, self.planning_path)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot update {self.planning_path}: {exc}") from exc
        return failures
