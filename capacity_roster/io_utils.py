from __future__ import annotations

import json
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd
from dateutil import parser as dateparser

from .models import CURRENCIES, ENGINEER_STATUSES, EngineerRecord, LegacyPlanningRecord, MigrationConfig

PLANNING_COLUMNS = (
    "id",
    "konstrukter",
    "cw",
    "month",
    "hours_per_week",
    "project_code",
    "engineer_id",
)

_PLANNING_REQUIRED_COLUMNS = {"id", "konstrukter", "cw"}


def _require_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [col for col in sorted(required) if col not in df.columns]
    if missing:
        raise ValueError(f"{source} missing required columns: {', '.join(missing)}")


def _parse_optional_date(value: object, field_name: str) -> Optional[date]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        return dateparser.isoparse(str(value)).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid date in '{field_name}': {value}") from exc


def _parse_optional_float(value: object, field_name: str) -> Optional[float]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid number in '{field_name}': {value}") from exc


def _optional_text(value: object) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def _write_atomically(path: Path, write: Callable[[Path], object]) -> None:
    """Write to a sibling temp file, then swap it in so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        write(tmp_path)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def load_planning_entries(path: str | Path) -> pd.DataFrame:
    """Read legacy planning rows as text so untouched payload is written back verbatim."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    _require_columns(df, _PLANNING_REQUIRED_COLUMNS, "planning_entries.csv")
    for col in PLANNING_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    if (df["id"].str.strip() == "").any():
        raise ValueError("planning_entries.csv contains rows without an id")
    duplicated = df["id"][df["id"].duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"planning_entries.csv contains duplicate ids: {', '.join(duplicated)}")
    for value in df["hours_per_week"]:
        _parse_optional_float(value, "hours_per_week")
    if "week_monday" in df.columns:
        for value in df["week_monday"]:
            _parse_optional_date(value, "week_monday")
    return df


def planning_records_from_df(df: pd.DataFrame) -> List[LegacyPlanningRecord]:
    records: List[LegacyPlanningRecord] = []
    for row in df.to_dict(orient="records"):
        records.append(
            LegacyPlanningRecord(
                record_key=str(row["id"]),
                konstrukter=str(row.get("konstrukter") or ""),
                cw=str(row.get("cw") or ""),
                month=str(row.get("month") or ""),
                hours_per_week=_parse_optional_float(row.get("hours_per_week"), "hours_per_week"),
                project_code=_optional_text(row.get("project_code")),
                engineer_id=_optional_text(row.get("engineer_id")),
            )
        )
    return records


def planning_records_to_df(records: Iterable[LegacyPlanningRecord]) -> pd.DataFrame:
    rows = [
        {
            "id": record.record_key,
            "konstrukter": record.konstrukter,
            "cw": record.cw,
            "month": record.month,
            "hours_per_week": record.hours_per_week,
            "project_code": record.project_code,
            "engineer_id": record.engineer_id,
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=list(PLANNING_COLUMNS))


def _engineer_from_entry(entry: Dict[str, object]) -> EngineerRecord:
    engineer_id = entry.get("id")
    name = entry.get("display_name")
    slug = entry.get("slug")
    if not engineer_id or not isinstance(engineer_id, str):
        raise ValueError("engineer id is required")
    if not name or not isinstance(name, str):
        raise ValueError(f"display_name is required for engineer {engineer_id}")
    if not slug or not isinstance(slug, str):
        raise ValueError(f"slug is required for engineer {engineer_id}")
    status = str(entry.get("status", "active"))
    if status not in ENGINEER_STATUSES:
        raise ValueError(f"unsupported status '{status}' for {name}")
    currency = entry.get("currency")
    if currency is not None and currency not in CURRENCIES:
        raise ValueError(f"unsupported currency '{currency}' for {name}")
    fte = entry.get("fte_percent", 100)
    if not isinstance(fte, (int, float)) or not (0 <= fte <= 100):
        raise ValueError(f"fte_percent must be in [0, 100] for {name}")
    return EngineerRecord(
        id=engineer_id,
        display_name=name,
        slug=slug,
        status=status,
        company=str(entry.get("company", "") or ""),
        hourly_rate=_parse_optional_float(entry.get("hourly_rate"), "hourly_rate"),
        currency=currency,
        fte_percent=int(fte),
    )


def load_engineers(path: str | Path) -> List[EngineerRecord]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("engineers file must be a JSON array")
    records: List[EngineerRecord] = []
    seen_ids = set()
    seen_slugs = set()
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError("engineer entries must be objects")
        record = _engineer_from_entry(entry)
        if record.id in seen_ids:
            raise ValueError(f"duplicate engineer id '{record.id}'")
        if record.slug in seen_slugs:
            raise ValueError(f"duplicate engineer slug '{record.slug}'")
        seen_ids.add(record.id)
        seen_slugs.add(record.slug)
        records.append(record)
    return records


def write_engineers(records: Iterable[EngineerRecord], path: str | Path) -> None:
    text = json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False) + "\n"
    _write_atomically(Path(path), lambda target: target.write_text(text, encoding="utf-8"))


def load_config(path: str | Path) -> MigrationConfig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("config must be a JSON object")
    default_status = data.get("default_status", "active")
    if default_status not in ENGINEER_STATUSES:
        raise ValueError(f"default_status must be one of {', '.join(ENGINEER_STATUSES)}")
    default_company = data.get("default_company", "")
    if not isinstance(default_company, str):
        raise ValueError("default_company must be a string")
    status_filter_raw = data.get("status_filter")
    if status_filter_raw is None:
        status_filter = ENGINEER_STATUSES
    else:
        if not isinstance(status_filter_raw, list) or not status_filter_raw:
            raise ValueError("status_filter must be a non-empty array")
        invalid = [value for value in status_filter_raw if value not in ENGINEER_STATUSES]
        if invalid:
            raise ValueError(f"status_filter contains unsupported statuses: {', '.join(map(str, invalid))}")
        status_filter = tuple(status_filter_raw)
    aliases = data.get("aliases") or {}
    if not isinstance(aliases, dict):
        raise ValueError("aliases must be an object mapping names to engineer slugs")
    for alias, slug in aliases.items():
        if not isinstance(slug, str) or not slug.strip():
            raise ValueError(f"alias '{alias}' must map to a non-empty slug")
    free_project_code = data.get("free_project_code", "FREE")
    if not isinstance(free_project_code, str) or not free_project_code:
        raise ValueError("free_project_code must be a non-empty string")
    logging_level = data.get("logging_level", "INFO")
    return MigrationConfig(
        default_status=default_status,
        default_company=default_company,
        status_filter=status_filter,
        aliases={str(alias): str(slug).strip() for alias, slug in aliases.items()},
        logging_level=str(logging_level),
        free_project_code=free_project_code,
    )


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    _write_atomically(Path(path), lambda target: df.to_csv(target, index=False))
