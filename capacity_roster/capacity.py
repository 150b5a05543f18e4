from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional, Tuple

import pandas as pd
from dateutil import parser as dateparser

from .models import EngineerRecord

_CW_RE = re.compile(r"(\d+)")

OVERVIEW_COLUMNS = ["engineer_id", "display_name", "free_weeks"]
WEEKLY_COLUMNS = ["cw", "free_engineers"]


def _clean(series: pd.Series) -> pd.Series:
    return series.fillna("").astype(str).str.strip()


def _linked_free_rows(planning_df: pd.DataFrame, free_code: str) -> pd.DataFrame:
    """One row per (engineer_id, cw) the engineer is planned as free.

    Rows that were never linked to an engineer are left out; counting them by
    free-text name would split one person across spellings.
    """
    if planning_df.empty or "engineer_id" not in planning_df.columns:
        return pd.DataFrame(columns=["engineer_id", "cw", "week_monday"])
    engineer_ids = _clean(planning_df["engineer_id"])
    codes = _clean(planning_df.get("project_code", pd.Series("", index=planning_df.index)))
    mask = (engineer_ids != "") & (codes.str.upper() == free_code.strip().upper())
    free = pd.DataFrame(
        {
            "engineer_id": engineer_ids[mask],
            "cw": _clean(planning_df.loc[mask, "cw"]),
            "week_monday": _clean(planning_df.loc[mask, "week_monday"])
            if "week_monday" in planning_df.columns
            else "",
        }
    )
    return free.drop_duplicates(subset=["engineer_id", "cw"])


def free_capacity_overview(
    planning_df: pd.DataFrame, engineers: Iterable[EngineerRecord], free_code: str = "FREE"
) -> pd.DataFrame:
    free = _linked_free_rows(planning_df, free_code)
    if free.empty:
        return pd.DataFrame(columns=OVERVIEW_COLUMNS)
    counts = free.groupby("engineer_id").size().rename("free_weeks").reset_index()
    names = {record.id: record.display_name for record in engineers}
    counts["display_name"] = counts["engineer_id"].map(names).fillna("")
    counts = counts.sort_values(["free_weeks", "display_name"], ascending=[False, True])
    return counts[OVERVIEW_COLUMNS].reset_index(drop=True)


def _week_monday(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return dateparser.isoparse(value).date()
    except (ValueError, TypeError):
        return None


def _week_sort_key(cw: str, week_monday: Optional[date]) -> Tuple[date, int, str]:
    match = _CW_RE.search(cw)
    number = int(match.group(1)) if match else 0
    return (week_monday or date.min, number, cw)


def weekly_free_totals(planning_df: pd.DataFrame, free_code: str = "FREE") -> pd.DataFrame:
    free = _linked_free_rows(planning_df, free_code)
    if free.empty:
        return pd.DataFrame(columns=WEEKLY_COLUMNS)
    totals = free.groupby("cw")["engineer_id"].nunique().rename("free_engineers").reset_index()
    mondays = free.groupby("cw")["week_monday"].min().map(_week_monday)
    weeks = totals["cw"].tolist()
    order = sorted(range(len(weeks)), key=lambda idx: _week_sort_key(weeks[idx], mondays.get(weeks[idx])))
    return totals.iloc[order][WEEKLY_COLUMNS].reset_index(drop=True)
