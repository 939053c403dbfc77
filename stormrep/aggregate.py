"""
Aggregation (StormAnalysis)
===========================

This is where the report's numbers come from:

1) Load dataset -> list of StormRecord (immutable)
2) Normalize -> list of NormalizedRecord (one strategy per run)
3) Group by event category (optionally by state) and sum the health and
   economic metrics
4) Rank categories by each metric independently
5) Build audit tables for anything that was corrected or could not be decoded

Damage with an UNKNOWN exponent is never counted as 0 or 1. It is left out of
the damage sum for that field and counted in `unknown_multiplier_records`, and
the record is listed by `unknown_multiplier_audit`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

import pandas as pd

from .loader import CUTOFF_DATE, DATA_URL, StormDataError, load_storm_data
from .models import LoadResult, NormalizedRecord, is_unknown
from .normalize import DEFAULT_STRATEGY, labels_for, normalize_records

logger = logging.getLogger(__name__)

METRICS = (
    "fatalities",
    "injuries",
    "health_total",
    "property_damage",
    "crop_damage",
    "total_damage",
)

SUMMARY_COLUMNS = ["events", *METRICS, "unknown_multiplier_records"]

EXPORT_SUFFIXES = (".csv", ".json", ".xlsx", ".xlsm")


class ExportFormatError(StormDataError):
    pass


def check_export_path(path: str) -> str:
    """Raise ExportFormatError unless `path` has a supported export suffix."""
    if Path(path).suffix.lower() not in EXPORT_SUFFIXES:
        raise ExportFormatError(f"export path {path} must end in .csv, .json or .xlsx")
    return path


def to_frame(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
    """One row per normalized record; unknown damage is NaN."""
    rows = []
    for n in records:
        r = n.record
        rows.append({
            "row_id": r.row_id,
            "begin_date": r.begin_date,
            "event_type": r.event_type,
            "event_category": n.event_category,
            "state": n.state,
            "recorded_state": r.state,
            "state_code": r.state_code,
            "state_corrected": n.state_corrected,
            "fatalities": r.fatalities,
            "injuries": r.injuries,
            "property_damage": n.prop_damage,
            "crop_damage": n.crop_damage,
            "unknown_multiplier": n.has_unknown_multiplier,
        })
    columns = ["row_id", "begin_date", "event_type", "event_category", "state",
               "recorded_state", "state_code", "state_corrected", "fatalities",
               "injuries", "property_damage", "crop_damage", "unknown_multiplier"]
    df = pd.DataFrame(rows, columns=columns)
    df["property_damage"] = df["property_damage"].astype(float)
    df["crop_damage"] = df["crop_damage"].astype(float)
    return df


def summarize(records: Sequence[NormalizedRecord], by_state: bool = False) -> pd.DataFrame:
    """Sum health and damage metrics per event category (and state).

    `total_damage` is property + crop damage over the decoded values only.
    """
    keys = ["event_category", "state"] if by_state else ["event_category"]
    df = to_frame(records)
    if df.empty:
        return pd.DataFrame(columns=keys + SUMMARY_COLUMNS)

    df["health_total"] = df["fatalities"] + df["injuries"]
    # sum() skips NaN: unknown-multiplier damage is left out, not added as 0
    grouped = df.groupby(keys, sort=False)
    out = pd.DataFrame({
        "events": grouped.size(),
        "fatalities": grouped["fatalities"].sum(),
        "injuries": grouped["injuries"].sum(),
        "health_total": grouped["health_total"].sum(),
        "property_damage": grouped["property_damage"].sum(),
        "crop_damage": grouped["crop_damage"].sum(),
        "unknown_multiplier_records": grouped["unknown_multiplier"].sum(),
    })
    out["total_damage"] = out["property_damage"] + out["crop_damage"]
    out["unknown_multiplier_records"] = out["unknown_multiplier_records"].astype(int)
    out = out.reset_index()[keys + SUMMARY_COLUMNS]
    return out.sort_values(keys).reset_index(drop=True)


def rank(summary: pd.DataFrame, metric: str, top_n: Optional[int] = None) -> pd.DataFrame:
    """Sort a summary table descending by one metric."""
    if metric not in summary.columns:
        raise ValueError(f"metric must be one of: {', '.join(c for c in SUMMARY_COLUMNS if c in summary.columns)}")
    out = summary.sort_values(metric, ascending=False, kind="mergesort").reset_index(drop=True)
    if top_n is not None:
        out = out.head(top_n)
    return out


def unknown_multiplier_audit(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
    """One row per (record, damage field) whose exponent could not be decoded."""
    rows = []
    for n in records:
        r = n.record
        for fname, amount, code, mult in (
            ("property", r.prop_dmg, r.prop_dmg_exp, n.prop_multiplier),
            ("crop", r.crop_dmg, r.crop_dmg_exp, n.crop_multiplier),
        ):
            if is_unknown(mult):
                rows.append({
                    "row_id": r.row_id,
                    "event_category": n.event_category,
                    "state": n.state,
                    "field": fname,
                    "amount": amount,
                    "exponent_code": code,
                })
    return pd.DataFrame(rows, columns=["row_id", "event_category", "state", "field", "amount", "exponent_code"])


def state_correction_audit(records: Sequence[NormalizedRecord]) -> pd.DataFrame:
    """Rows whose state was changed by the correction table."""
    rows = [
        {
            "row_id": n.record.row_id,
            "state_code": n.record.state_code,
            "recorded_state": n.record.state,
            "corrected_state": n.state,
            "county_name": n.record.county_name,
        }
        for n in records if n.state_corrected
    ]
    return pd.DataFrame(rows, columns=["row_id", "state_code", "recorded_state", "corrected_state", "county_name"])


@dataclass
class StormAnalysis:
    """Normalized dataset for one run, plus the summaries derived from it.

    Summaries are computed once on first use; the records are not changed
    after that.
    """
    load: LoadResult
    strategy: str = DEFAULT_STRATEGY
    records: List[NormalizedRecord] = field(init=False)
    _cache: Dict[str, pd.DataFrame] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.records = normalize_records(self.load.records, self.strategy)

    @property
    def labels(self):
        return labels_for(self.strategy)

    @property
    def cutoff(self) -> date:
        return self.load.cutoff or CUTOFF_DATE

    def distinct_event_types(self) -> int:
        return len({n.record.event_type for n in self.records})

    def _cached(self, key: str, build) -> pd.DataFrame:
        if key not in self._cache:
            self._cache[key] = build()
        return self._cache[key]

    def by_event_type(self) -> pd.DataFrame:
        return self._cached("by_event_type", lambda: summarize(self.records))

    def by_event_type_and_state(self) -> pd.DataFrame:
        return self._cached("by_state", lambda: summarize(self.records, by_state=True))

    def by_state(self) -> pd.DataFrame:
        """Totals per (corrected) state across all categories."""
        def build():
            s = self.by_event_type_and_state()
            cols = ["events", *METRICS, "unknown_multiplier_records"]
            return s.groupby("state", as_index=False)[cols].sum()
        return self._cached("state_totals", build)

    def top(self, metric: str, top_n: int = 10) -> pd.DataFrame:
        return rank(self.by_event_type(), metric, top_n)

    def unknown_multipliers(self) -> pd.DataFrame:
        return self._cached("unknown", lambda: unknown_multiplier_audit(self.records))

    def state_corrections(self) -> pd.DataFrame:
        return self._cached("corrections", lambda: state_correction_audit(self.records))

    def issues_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [vars(i) for i in self.load.issues],
            columns=["row_number", "column", "value", "message"],
        )

    def export_summary(self, path: str) -> str:
        return export_summary(self.by_event_type(), path)


def run_analysis(
    source: str = DATA_URL,
    *,
    strategy: str = DEFAULT_STRATEGY,
    cutoff: date = CUTOFF_DATE,
    cache_dir: Optional[str] = None,
) -> StormAnalysis:
    """Load + normalize in one call."""
    labels_for(strategy)  # fail before a long load
    load = load_storm_data(source, cutoff=cutoff, cache_dir=cache_dir)
    return StormAnalysis(load=load, strategy=strategy)


def export_summary(frame: pd.DataFrame, path: str) -> str:
    """Write a summary table as CSV, JSON or Excel depending on the extension."""
    check_export_path(path)
    suffix = Path(path).suffix.lower()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".csv":
        frame.to_csv(path, index=False)
    elif suffix == ".json":
        frame.to_json(path, orient="records", indent=2)
    else:
        frame.to_excel(path, index=False, engine="openpyxl")
    logger.info(f"Exported {len(frame)} summary rows to {path}")
    return path
