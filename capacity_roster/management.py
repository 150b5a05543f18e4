"""
Direct engineer maintenance outside the migration.

Creating an engineer derives a unique slug from the display name. Editing
never touches the slug, so a renamed engineer keeps every existing reference
and the next migration resolves planning rows spelled with the new name.
Contractors carry an hourly rate and currency; every other status clears them.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from .errors import ConflictError, EngineerNotFound
from .models import CURRENCIES, EDITABLE_FIELDS, ENGINEER_STATUSES, EngineerRecord, EngineerStatus
from .normalization import normalize, unique_slug
from .storage import RosterStore

logger = logging.getLogger(__name__)

CONTRACTOR = "contractor"
DEFAULT_CURRENCY = "CZK"


def _clean_name(display_name: object) -> str:
    name = display_name.strip() if isinstance(display_name, str) else ""
    if not normalize(name):
        raise ValueError("display_name must not be empty")
    return name


def _check_status(status: object) -> EngineerStatus:
    if status not in ENGINEER_STATUSES:
        raise ValueError(f"status must be one of {', '.join(ENGINEER_STATUSES)}")
    return str(status)


def _contract_terms(
    status: EngineerStatus, hourly_rate: object, currency: object
) -> Tuple[Optional[float], Optional[str]]:
    if status != CONTRACTOR:
        return None, None
    if hourly_rate is None or hourly_rate == "":
        raise ValueError("hourly_rate is required for contractors")
    try:
        rate = float(hourly_rate)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid hourly_rate: {hourly_rate}") from exc
    if rate <= 0:
        raise ValueError("hourly_rate must be positive")
    currency = currency or DEFAULT_CURRENCY
    if currency not in CURRENCIES:
        raise ValueError(f"currency must be one of {', '.join(CURRENCIES)}")
    return rate, str(currency)


def _create(
    store: RosterStore,
    name: str,
    status: EngineerStatus,
    company: Optional[str],
    hourly_rate: Optional[float],
    currency: Optional[str],
) -> EngineerRecord:
    slug = unique_slug(name, {record.slug for record in store.read_engineers(None)})
    engineer_id = store.create_engineer(
        name, slug, status, company=company, hourly_rate=hourly_rate, currency=currency
    )
    logger.info("Created engineer %s -> %s", name, slug)
    return EngineerRecord(
        id=engineer_id,
        display_name=name,
        slug=slug,
        status=status,
        company=company or "",
        hourly_rate=hourly_rate,
        currency=currency,
    )


def add_engineer(
    store: RosterStore,
    display_name: object,
    status: object = "active",
    company: Optional[str] = None,
    hourly_rate: object = None,
    currency: object = None,
) -> EngineerRecord:
    name = _clean_name(display_name)
    status = _check_status(status)
    if company is not None and not isinstance(company, str):
        raise ValueError("company must be a string")
    rate, currency = _contract_terms(status, hourly_rate, currency)
    try:
        return _create(store, name, status, company, rate, currency)
    except ConflictError as exc:
        logger.info("Slug %s taken while creating %r; picking another", exc.slug, name)
    return _create(store, name, status, company, rate, currency)


def edit_engineer(store: RosterStore, engineer_id: str, **changes: object) -> EngineerRecord:
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValueError(f"unsupported engineer fields: {', '.join(unknown)}")
    current = next((record for record in store.read_engineers(None) if record.id == engineer_id), None)
    if current is None:
        raise EngineerNotFound(engineer_id)

    updates: Dict[str, object] = dict(changes)
    if "display_name" in updates:
        updates["display_name"] = _clean_name(updates["display_name"])
    status = _check_status(updates.get("status", current.status))
    if "company" in updates and not isinstance(updates["company"], str):
        raise ValueError("company must be a string")
    if "fte_percent" in updates:
        fte = updates["fte_percent"]
        if isinstance(fte, bool) or not isinstance(fte, (int, float)) or not (0 <= fte <= 100):
            raise ValueError("fte_percent must be in [0, 100]")
        updates["fte_percent"] = int(fte)
    updates["hourly_rate"], updates["currency"] = _contract_terms(
        status,
        updates.get("hourly_rate", current.hourly_rate),
        updates.get("currency", current.currency),
    )

    record = store.update_engineer(engineer_id, **updates)
    if record.display_name != current.display_name:
        logger.info("Renamed engineer %s: %r -> %r", record.slug, current.display_name, record.display_name)
    return record
