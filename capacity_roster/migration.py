"""
Backfill canonical engineer ids onto legacy planning records.

The run reads the registry, builds an identity index, resolves every distinct
``konstrukter`` name on records not yet linked to a registered engineer,
creates engineers for names nobody matches and finally writes ``engineer_id``
on each planning record in one batch. Failures are recorded per item
and never abort the batch; re-running over already linked data only rewrites
the same ids.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ConflictError, PersistenceError, RosterError, ValidationError
from .identity_index import IdentityIndex
from .models import EngineerRecord, LegacyPlanningRecord, MigrationConfig, MigrationReport
from .normalization import normalize, unique_slug
from .resolver import Matched, resolve
from .storage import RosterStore

logger = logging.getLogger(__name__)

NO_OP_MESSAGE = "Engineers already migrated. Nothing to do."
SUCCESS_MESSAGE = "Engineer migration completed successfully"


def _describe(record: LegacyPlanningRecord) -> str:
    return f"{record.record_key} ({record.konstrukter!r})"


def _already_migrated(
    legacy_records: Sequence[LegacyPlanningRecord], existing_engineers: Sequence[EngineerRecord]
) -> bool:
    return bool(existing_engineers) and all(record.is_linked() for record in legacy_records)


def _distinct_names(legacy_records: Sequence[LegacyPlanningRecord]) -> List[str]:
    names: "OrderedDict[str, None]" = OrderedDict()
    for record in legacy_records:
        if normalize(record.konstrukter):
            names.setdefault(record.konstrukter, None)
    return list(names)


def _create_engineer(
    name: str, index: IdentityIndex, store: RosterStore, config: MigrationConfig
) -> EngineerRecord:
    slug = unique_slug(name, index.slugs)
    engineer_id = store.create_engineer(
        name,
        slug,
        config.default_status,
        company=config.default_company or None,
    )
    record = EngineerRecord(
        id=engineer_id,
        display_name=name,
        slug=slug,
        status=config.default_status,
        company=config.default_company,
    )
    # visible to later spellings of the same name in this pass
    index.insert(record)
    logger.info("Created engineer %s -> %s", name, slug)
    return record


def _link_name(
    name: str, index: IdentityIndex, store: RosterStore, config: MigrationConfig
) -> Tuple[EngineerRecord, bool]:
    """Return the engineer for ``name`` and whether it was created by this call."""
    resolution = resolve(name, index, config.aliases)
    if isinstance(resolution, Matched):
        if resolution.collision:
            logger.warning(
                "Name %r matches %d engineers; linking first-seen %s",
                name,
                len(resolution.colliding),
                resolution.record.id,
            )
        return resolution.record, False
    try:
        return _create_engineer(name, index, store, config), True
    except ConflictError as exc:
        logger.info("Slug %s already taken while creating %r; re-reading registry", exc.slug, name)
    for record in store.read_engineers(None):
        index.insert(record)
    resolution = resolve(name, index, config.aliases)
    if isinstance(resolution, Matched):
        return resolution.record, False
    return _create_engineer(name, index, store, config), True


def migrate(
    legacy_records: Sequence[LegacyPlanningRecord],
    existing_engineers: Sequence[EngineerRecord],
    store: RosterStore,
    config: Optional[MigrationConfig] = None,
) -> MigrationReport:
    config = config or MigrationConfig()
    report = MigrationReport()
    if _already_migrated(legacy_records, existing_engineers):
        logger.info("All %d planning records already linked; skipping", len(legacy_records))
        report.message = NO_OP_MESSAGE
        return report

    logger.info(
        "Starting engineer migration: %d planning records, %d existing engineers",
        len(legacy_records),
        len(existing_engineers),
    )
    index = IdentityIndex.build(existing_engineers)
    # links to registered engineers stand even if the name has since been edited
    registered = {engineer.id for engineer in existing_engineers}
    pending = [record for record in legacy_records if record.engineer_id not in registered]

    mapping: Dict[str, str] = {}
    failures: Dict[str, str] = {}
    for name in _distinct_names(pending):
        try:
            engineer, created = _link_name(name, index, store, config)
        except RosterError as exc:
            logger.error("Failed to resolve or create %r: %s", name, exc)
            failures[name] = str(exc)
            continue
        mapping[name] = engineer.id
        if created:
            report.migrated += 1

    for collision in index.collision_errors():
        logger.warning("%s", collision)
        report.collisions.append(str(collision))

    assignments: Dict[str, str] = {}
    for record in legacy_records:
        if record.engineer_id in registered:
            assignments[record.record_key] = record.engineer_id
        elif record.konstrukter in mapping:
            assignments[record.record_key] = mapping[record.konstrukter]
    try:
        rejected = store.update_planning_record_engineer_ids(assignments)
    except RosterError as exc:
        logger.error("Failed to write planning links: %s", exc)
        rejected = {record_key: str(exc) for record_key in assignments}

    for record in legacy_records:
        if record.record_key in rejected:
            logger.error("Failed to update planning record %s: %s", _describe(record), rejected[record.record_key])
            report.add_error(f"{_describe(record)}: {rejected[record.record_key]}")
        elif record.record_key in assignments:
            report.planning_entries_updated += 1
        elif not normalize(record.konstrukter):
            report.add_error(str(ValidationError(record.record_key, "engineer name is empty")))
        else:
            report.add_error(f"{_describe(record)}: {failures[record.konstrukter]}")

    if report.success:
        report.message = SUCCESS_MESSAGE
    else:
        report.message = f"Engineer migration completed with {report.errors} error(s)"
    logger.info(
        "Migration finished: %d created, %d planning entries updated, %d errors",
        report.migrated,
        report.planning_entries_updated,
        report.errors,
    )
    return report


def run_migration(store: RosterStore, config: Optional[MigrationConfig] = None) -> MigrationReport:
    """Entry point used by the CLI and the web API."""
    config = config or MigrationConfig()
    try:
        existing = store.read_engineers(config.status_filter)
        legacy = store.read_legacy_planning_records()
    except PersistenceError as exc:
        logger.error("Cannot read roster data: %s", exc)
        report = MigrationReport(message="Engineer migration could not read its input")
        report.add_error(str(exc))
        return report
    return migrate(legacy, existing, store, config)
