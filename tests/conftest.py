"""Shared fixtures: engineer/planning builders and on-disk portfolios."""

import json
from pathlib import Path

import pytest

from capacity_roster.models import EngineerRecord, LegacyPlanningRecord


def make_engineer(engineer_id, name, slug=None, status="active"):
    return EngineerRecord(id=engineer_id, display_name=name, slug=slug or engineer_id, status=status)


def make_entry(key, name, cw="CW36", project="ST_MAINZ", hours=36.0, engineer_id=None):
    return LegacyPlanningRecord(
        record_key=key,
        konstrukter=name,
        cw=cw,
        month="September",
        hours_per_week=hours,
        project_code=project,
        engineer_id=engineer_id,
    )


PLANNING_CSV = """id,konstrukter,cw,month,hours_per_week,project_code,engineer_id,week_monday
p1,Novák Jan,CW36,September,36,ST_MAINZ,,2025-09-01
p2,NOVAK JAN,CW37,September,36,FREE,,2025-09-08
p3,Dvořák Martin,CW36,September,,FREE,,2025-09-01
p4,Dvořák Martin,CW37,September,40.0,FREE,,2025-09-08
p5,Muñoz Marta,CW36,September,20,ST_BLAVA,,2025-09-01
"""


@pytest.fixture
def portfolio(tmp_path: Path) -> Path:
    project_dir = tmp_path / "sample"
    input_dir = project_dir / "input"
    input_dir.mkdir(parents=True)
    (input_dir / "planning_entries.csv").write_text(PLANNING_CSV, encoding="utf-8")
    (input_dir / "config.json").write_text(
        json.dumps({"default_company": "TM CZ a.s.", "logging_level": "WARNING"}), encoding="utf-8"
    )
    return project_dir
