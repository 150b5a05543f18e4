from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Dict, List, Tuple

from flask import Flask, jsonify, request

from capacity_roster.capacity import free_capacity_overview, weekly_free_totals
from capacity_roster.errors import EngineerNotFound, PersistenceError
from capacity_roster.identity_index import IdentityIndex
from capacity_roster.io_utils import load_config
from capacity_roster.management import add_engineer, edit_engineer
from capacity_roster.migration import run_migration
from capacity_roster.models import EDITABLE_FIELDS, ENGINEER_STATUSES, MigrationConfig
from capacity_roster.resolver import search_engineers
from capacity_roster.storage import CONFIG_FILE, ENGINEERS_FILE, PLANNING_FILE, PortfolioStore
from capacity_roster.views import resolve_view


def _projects_root() -> Path:
    configured = os.getenv("PROJECTS_ROOT")
    if configured:
        return Path(configured).expanduser().resolve()
    return Path(__file__).resolve().parent.parent / "portfolios"


def _has_planning(portfolio_path: Path) -> bool:
    return (portfolio_path / "input" / PLANNING_FILE).is_file()


def _portfolio_path(portfolio_name: str, root: Path) -> Path:
    if not portfolio_name:
        raise ValueError("portfolio name is required")
    portfolio_path = (root / portfolio_name).resolve()
    if portfolio_path != root and root not in portfolio_path.parents:
        raise ValueError(f"Portfolio directory must be inside {root}")
    if not portfolio_path.is_dir():
        raise FileNotFoundError(f"Portfolio not found: {portfolio_name}")
    if not _has_planning(portfolio_path):
        raise ValueError(f"Portfolio {portfolio_name} has no input/{PLANNING_FILE}")
    return portfolio_path


def _portfolio_summaries(root: Path) -> List[Dict[str, object]]:
    if not root.is_dir():
        return []
    return [
        {
            "name": child.name,
            "input_dir": (child / "input").as_posix(),
            "is_valid": _has_planning(child),
            "has_registry": (child / "input" / ENGINEERS_FILE).is_file(),
        }
        for child in sorted(root.iterdir())
        if child.is_dir()
    ]


def _load_portfolio_config(portfolio_path: Path) -> MigrationConfig:
    config_file = portfolio_path / "input" / CONFIG_FILE
    if not config_file.exists():
        return MigrationConfig()
    return load_config(config_file)


def create_app() -> Flask:
    app = Flask(__name__)
    projects_root = _projects_root()
    stores: Dict[Path, PortfolioStore] = {}
    stores_lock = threading.Lock()
    app.config["PROJECTS_ROOT"] = projects_root

    def _store_for(portfolio_name: str) -> Tuple[PortfolioStore, MigrationConfig]:
        # one store per portfolio so its write lock is shared between requests
        portfolio_path = _portfolio_path(portfolio_name, projects_root)
        with stores_lock:
            store = stores.setdefault(portfolio_path, PortfolioStore(portfolio_path))
        return store, _load_portfolio_config(portfolio_path)

    @app.errorhandler(FileNotFoundError)
    def not_found(exc: FileNotFoundError):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(ValueError)
    def bad_request(exc: ValueError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(EngineerNotFound)
    def engineer_missing(exc: EngineerNotFound):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(PersistenceError)
    def storage_failed(exc: PersistenceError):
        return jsonify({"error": str(exc)}), 500

    @app.get("/")
    def index():
        return jsonify({"projects_root": projects_root.as_posix(), "projects": _portfolio_summaries(projects_root)})

    @app.get("/dirs")
    def directories():
        dirs = _portfolio_summaries(projects_root)
        return jsonify({"projects": dirs})

    @app.post("/api/migrate/<portfolio_name>")
    def migrate_engineers(portfolio_name: str):
        """Run the engineer migration and return the report payload"""
        store, cfg = _store_for(portfolio_name)
        report = run_migration(store, cfg)
        return jsonify(report.to_dict())

    @app.get("/api/engineers/<portfolio_name>")
    def get_engineers(portfolio_name: str):
        store, _ = _store_for(portfolio_name)
        statuses = request.args.getlist("status") or list(ENGINEER_STATUSES)
        invalid = [status for status in statuses if status not in ENGINEER_STATUSES]
        if invalid:
            return jsonify({"error": f"unsupported status: {', '.join(invalid)}"}), 400
        engineers = sorted(store.read_engineers(statuses), key=lambda record: record.display_name)
        return jsonify([record.to_dict() for record in engineers])

    @app.post("/api/engineers/<portfolio_name>")
    def create_engineer(portfolio_name: str):
        store, cfg = _store_for(portfolio_name)
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "body must be a JSON object"}), 400
        record = add_engineer(
            store,
            data.get("display_name"),
            data.get("status", "active"),
            company=data.get("company") or cfg.default_company or None,
            hourly_rate=data.get("hourly_rate"),
            currency=data.get("currency"),
        )
        return jsonify(record.to_dict()), 201

    @app.patch("/api/engineers/<portfolio_name>/<engineer_id>")
    def update_engineer(portfolio_name: str, engineer_id: str):
        """Edit name, status or contract terms; the slug is never rewritten"""
        store, _ = _store_for(portfolio_name)
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({"error": f"body must be an object with any of: {', '.join(EDITABLE_FIELDS)}"}), 400
        record = edit_engineer(store, engineer_id, **data)
        return jsonify(record.to_dict())

    @app.get("/api/engineers/<portfolio_name>/search")
    def search(portfolio_name: str):
        """Interactive lookup; results are suggestions, not resolved identities"""
        store, _ = _store_for(portfolio_name)
        query = request.args.get("q", "")
        matches = search_engineers(query, store.read_engineers(None))
        return jsonify([record.to_dict() for record in matches])

    @app.post("/api/views/<portfolio_name>/resolve")
    def resolve_engineer_view(portfolio_name: str):
        store, cfg = _store_for(portfolio_name)
        data = request.get_json(silent=True) or {}
        names = data.get("engineers")
        if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
            return jsonify({"error": "engineers must be an array of names"}), 400
        index = IdentityIndex.build(store.read_engineers(None))
        result = resolve_view(names, index, cfg.aliases)
        payload = result.to_dict()
        payload["name"] = data.get("name", "")
        return jsonify(payload)

    @app.get("/api/capacity/<portfolio_name>")
    def free_capacity(portfolio_name: str):
        store, cfg = _store_for(portfolio_name)
        planning_df = store.planning_frame()
        engineers = store.read_engineers(None)
        overview = free_capacity_overview(planning_df, engineers, cfg.free_project_code)
        weekly = weekly_free_totals(planning_df, cfg.free_project_code)
        return jsonify(
            {
                "engineers": [
                    {"engineer_id": row.engineer_id, "display_name": row.display_name, "free_weeks": int(row.free_weeks)}
                    for row in overview.itertuples(index=False)
                ],
                "weeks": [
                    {"cw": row.cw, "free_engineers": int(row.free_engineers)}
                    for row in weekly.itertuples(index=False)
                ],
                "total_free_weeks": int(weekly["free_engineers"].sum()) if not weekly.empty else 0,
            }
        )

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
