from dataclasses import replace

from capacity_roster.errors import ConflictError, PersistenceError
from capacity_roster.migration import NO_OP_MESSAGE, SUCCESS_MESSAGE, migrate, run_migration
from capacity_roster.models import MigrationConfig
from capacity_roster.storage import InMemoryStore

from conftest import make_engineer, make_entry


class FailingUpdateStore(InMemoryStore):
    def __init__(self, *args, failing=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.failing = set(failing)

    def update_planning_record_engineer_id(self, record_key, engineer_id):
        if record_key in self.failing:
            raise PersistenceError("write rejected")
        super().update_planning_record_engineer_id(record_key, engineer_id)


class RacingStore(InMemoryStore):
    """Simulates another migration creating the engineer first."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.raced = False

    def create_engineer(self, display_name, slug, status="active", company=None, hourly_rate=None, currency=None):
        if not self.raced:
            self.raced = True
            super().create_engineer(display_name, slug, status, company)
            raise ConflictError(slug)
        return super().create_engineer(display_name, slug, status, company, hourly_rate, currency)


def _entries_by_key(store):
    return {entry.record_key: entry for entry in store.read_legacy_planning_records()}


def test_variant_spellings_create_one_engineer():
    entries = [make_entry("p1", "Jan Novák"), make_entry("p2", "JAN NOVAK"), make_entry("p3", "jan  novák")]
    store = InMemoryStore(planning_records=entries)

    report = migrate(entries, [], store)

    engineers = store.read_engineers()
    assert len(engineers) == 1
    assert engineers[0].display_name == "Jan Novák"
    assert engineers[0].slug == "jan-novak"
    assert engineers[0].status == "active"
    assert report.migrated == 1
    assert report.planning_entries_updated == 3
    assert report.success
    assert report.message == SUCCESS_MESSAGE
    assert {entry.engineer_id for entry in _entries_by_key(store).values()} == {engineers[0].id}


def test_matches_existing_engineers_without_creating():
    existing = [make_engineer("e1", "Dvořák Martin", "dvorak-martin")]
    entries = [make_entry("p1", "DVORAK MARTIN"), make_entry("p2", "Dvořák Martin")]
    store = InMemoryStore(existing, entries)

    report = migrate(entries, existing, store)

    assert report.migrated == 0
    assert report.planning_entries_updated == 2
    assert [entry.engineer_id for entry in _entries_by_key(store).values()] == ["e1", "e1"]


def test_second_run_with_same_input_creates_nothing():
    entries = [make_entry(f"p{i}", name) for i, name in enumerate(["Jan Novák", "Fuchs Pavel", "JAN NOVAK"])]
    store = InMemoryStore(planning_records=entries)

    first = migrate(entries, [], store)
    linked = _entries_by_key(store)
    second = migrate(entries, [], store)

    assert first.migrated == 2
    assert second.migrated == 0
    assert second.planning_entries_updated == len(entries)
    assert second.success
    assert len(store.read_engineers()) == 2
    assert _entries_by_key(store) == linked


def test_run_migration_is_noop_once_everything_is_linked():
    entries = [make_entry("p1", "Jan Novák"), make_entry("p2", "Fuchs Pavel")]
    store = InMemoryStore(planning_records=entries)

    first = run_migration(store)
    second = run_migration(store)

    assert first.migrated == 2
    assert second.to_dict() == {
        "success": True,
        "message": NO_OP_MESSAGE,
        "migrated": 0,
        "planningEntriesUpdated": 0,
        "errors": 0,
        "errorDetails": [],
        "collisions": [],
    }
    assert len(store.read_engineers()) == 2


def test_collision_is_reported_and_links_first_seen():
    existing = [make_engineer("a", "Jan Novák", "jan-novak"), make_engineer("b", "Jan Novák", "jan-novak-2")]
    entries = [make_entry("p1", "Jan Novák"), make_entry("p2", "jan novak")]
    store = InMemoryStore(existing, entries)

    report = migrate(entries, existing, store)

    assert len(report.collisions) == 1
    assert "jan novak" in report.collisions[0]
    assert report.migrated == 0
    assert {entry.engineer_id for entry in _entries_by_key(store).values()} == {"a"}


def test_payload_is_preserved():
    entries = [
        make_entry("p1", "Muñoz Marta", cw="CW40", project="ST_BLAVA", hours=12.5),
        make_entry("p2", "Großmann Ute", cw="CW41", project=None, hours=None),
    ]
    store = InMemoryStore(planning_records=entries)

    migrate(entries, [], store)

    after = _entries_by_key(store)
    for before in entries:
        assert replace(after[before.record_key], engineer_id=None) == before
        assert after[before.record_key].engineer_id is not None


def test_partial_failure_keeps_other_links():
    entries = [make_entry(f"p{i}", "Fuchs Pavel", cw=f"CW{36 + i}") for i in range(5)]
    store = FailingUpdateStore(planning_records=entries, failing={"p2"})

    report = migrate(entries, [], store)

    assert report.errors == 1
    assert report.planning_entries_updated == 4
    assert not report.success
    assert report.error_details[0].startswith("p2 ('Fuchs Pavel')")
    assert "write rejected" in report.error_details[0]
    linked = _entries_by_key(store)
    assert linked["p2"].engineer_id is None
    assert all(linked[key].engineer_id for key in ("p0", "p1", "p3", "p4"))


def test_empty_names_are_validation_errors():
    entries = [make_entry("p1", "  "), make_entry("p2", "Fuchs Pavel")]
    store = InMemoryStore(planning_records=entries)

    report = migrate(entries, [], store)

    assert report.errors == 1
    assert "p1" in report.error_details[0]
    assert report.planning_entries_updated == 1
    assert report.migrated == 1
    assert report.to_dict()["success"] is False


def test_conflict_on_create_reresolves_instead_of_failing():
    entries = [make_entry("p1", "Svoboda Petr"), make_entry("p2", "SVOBODA PETR")]
    store = RacingStore(planning_records=entries)

    report = migrate(entries, [], store)

    assert report.success
    assert report.migrated == 0
    assert len(store.read_engineers()) == 1
    assert report.planning_entries_updated == 2


def test_slug_taken_by_other_person_gets_suffix():
    existing = [make_engineer("e1", "Jan Novák Sr", "jan-novak")]
    entries = [make_entry("p1", "Jan Novák")]
    store = InMemoryStore(existing, entries)

    report = migrate(entries, existing, store)

    assert report.migrated == 1
    slugs = sorted(record.slug for record in store.read_engineers())
    assert slugs == ["jan-novak", "jan-novak-2"]


def test_engineer_missing_from_snapshot_is_found_on_conflict():
    hidden = make_engineer("e1", "Jan Novák", "jan-novak", status="inactive")
    entries = [make_entry("p1", "JAN NOVAK")]
    store = InMemoryStore([hidden], entries)

    # the snapshot was read with a status filter that excluded the engineer
    report = migrate(entries, [], store)

    assert report.migrated == 0
    assert len(store.read_engineers()) == 1
    assert _entries_by_key(store)["p1"].engineer_id == "e1"


def test_alias_fallback_links_to_configured_engineer():
    existing = [make_engineer("e1", "Fuchs Pavel", "fuchs-pavel")]
    entries = [make_entry("p1", "PaFu")]
    store = InMemoryStore(existing, entries)
    config = MigrationConfig(aliases={"pafu": "fuchs-pavel"})

    report = migrate(entries, existing, store, config)

    assert report.migrated == 0
    assert _entries_by_key(store)["p1"].engineer_id == "e1"


def test_created_engineers_use_configured_defaults():
    entries = [make_entry("p1", "Marta López")]
    store = InMemoryStore(planning_records=entries)
    config = MigrationConfig(default_status="contractor", default_company="AERTEC")

    migrate(entries, [], store, config)

    engineer = store.read_engineers()[0]
    assert engineer.status == "contractor"
    assert engineer.company == "AERTEC"


def test_create_failure_is_recorded_for_each_affected_record():
    class BrokenCreateStore(InMemoryStore):
        def create_engineer(self, *args, **kwargs):
            raise PersistenceError("registry offline")

    entries = [make_entry("p1", "Ghost One"), make_entry("p2", "ghost one"), make_entry("p3", "Ghost Two")]
    store = BrokenCreateStore(planning_records=entries)

    report = migrate(entries, [], store)

    assert report.errors == 3
    assert report.planning_entries_updated == 0
    assert all("registry offline" in detail for detail in report.error_details)


def test_run_migration_reports_unreadable_store():
    class UnreadableStore(InMemoryStore):
        def read_legacy_planning_records(self):
            raise PersistenceError("planning table unavailable")

    report = run_migration(UnreadableStore())

    assert not report.success
    assert report.error_details == ["planning table unavailable"]


def test_existing_links_stand_and_dangling_links_are_resolved_again():
    existing = [make_engineer("e1", "Fuchs Pavel", "fuchs-pavel")]
    entries = [
        make_entry("p1", "Pavel Fuchs (old spelling)", engineer_id="e1"),
        make_entry("p2", "FUCHS PAVEL", engineer_id="deleted-engineer"),
        make_entry("p3", "Novák Jan"),
    ]
    store = InMemoryStore(existing, entries)

    report = migrate(entries, existing, store)

    linked = _entries_by_key(store)
    assert report.success
    assert report.migrated == 1
    assert report.planning_entries_updated == 3
    assert linked["p1"].engineer_id == "e1"
    assert linked["p2"].engineer_id == "e1"
    assert linked["p3"].engineer_id not in (None, "e1")
