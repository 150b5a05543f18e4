from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from .errors import PersistenceError
from .io_utils import load_config
from .migration import run_migration
from .models import MigrationConfig, MigrationReport
from .storage import CONFIG_FILE, ENGINEERS_FILE, PLANNING_FILE, InMemoryStore, PortfolioStore, RosterStore


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Link legacy planning entries to canonical engineer records."
    )
    parser.add_argument(
        "--project-dir",
        help="Portfolio directory containing an input/ subfolder",
    )
    parser.add_argument("--engineers", help="Path to engineers JSON (overrides project-dir default)")
    parser.add_argument("--planning", help="Path to planning entries CSV (overrides project-dir default)")
    parser.add_argument("--config", help="Path to configuration JSON file (overrides project-dir default)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the migration against an in-memory copy and leave the files untouched",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the migration report as JSON",
    )
    return parser.parse_args(argv)


def _resolve_io_paths(args: argparse.Namespace) -> Tuple[Path, Path, Optional[Path]]:
    project_dir = Path(args.project_dir).resolve() if args.project_dir else None
    if project_dir and not project_dir.exists():
        raise ValueError(f"project directory not found: {project_dir}")
    input_dir = project_dir / "input" if project_dir else None

    def _pick(path_value: Optional[str], default_name: str) -> Optional[Path]:
        if path_value:
            return Path(path_value)
        if input_dir:
            return input_dir / default_name
        return None

    engineers_path = _pick(args.engineers, ENGINEERS_FILE)
    planning_path = _pick(args.planning, PLANNING_FILE)
    config_path = _pick(args.config, CONFIG_FILE)

    if engineers_path is None or planning_path is None:
        raise ValueError("missing required input paths: --engineers, --planning (or provide --project-dir)")
    if not planning_path.exists():
        raise ValueError(f"planning file not found at {planning_path}")
    if args.config and not config_path.exists():
        raise ValueError(f"config file not found at {config_path}")
    if config_path is not None and not config_path.exists():
        config_path = None
    return engineers_path, planning_path, config_path


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _dry_run_store(store: PortfolioStore) -> RosterStore:
    return InMemoryStore(store.read_engineers(None), store.read_legacy_planning_records())


def _print_report(report: MigrationReport) -> None:
    print(report.message)
    print(f"Engineers created: {report.migrated}")
    print(f"Planning entries updated: {report.planning_entries_updated}")
    print(f"Errors: {report.errors}")
    for detail in report.error_details:
        print(f"- {detail}")
    if report.collisions:
        print("\nName collisions in the registry:")
        for collision in report.collisions:
            print(f"- {collision}")


def main(argv: Optional[list] = None) -> int:
    args = _parse_args(argv)
    try:
        engineers_path, planning_path, config_path = _resolve_io_paths(args)
        cfg = load_config(config_path) if config_path else MigrationConfig()
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    _configure_logging(cfg.logging_level)

    store: RosterStore = PortfolioStore(
        planning_path.parent.parent,
        engineers_path=engineers_path,
        planning_path=planning_path,
    )
    if args.dry_run:
        try:
            store = _dry_run_store(store)
        except PersistenceError as exc:
            print(str(exc), file=sys.stderr)
            return 2

    report = run_migration(store, cfg)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_report(report)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
