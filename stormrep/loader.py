"""
Dataset loader (compressed CSV -> StormRecord list)
===================================================

This module fetches the NOAA storm-data CSV (bz2 compressed) and converts each
row into a `StormRecord`.

Key ideas:
- A fixed column schema says which columns are read and how each is typed.
- Everything is read as text first, then typed columns are coerced. A row
  whose required value cannot be coerced is skipped and recorded as a
  `ParseIssue`; one bad row never aborts the whole load.
- Only events starting on or after `CUTOFF_DATE` are kept. Before 1996 the
  database recorded only a few event types, so earlier years are not comparable.
- Downloads are cached locally (`STORMREP_CACHE_DIR`, else `./data`).
"""

from __future__ import annotations
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse
import logging
import os

import pandas as pd
import requests

from .models import LoadResult, ParseIssue, StormRecord

logger = logging.getLogger(__name__)

DATA_URL = "https://d396qusza40orc.cloudfront.net/repdata%2Fdata%2FStormData.csv.bz2"
CACHE_ENV_VAR = "STORMREP_CACHE_DIR"
DEFAULT_CACHE_DIR = "data"

CUTOFF_DATE = date(1996, 1, 1)
DATE_FORMAT = "%m/%d/%Y %H:%M:%S"
FILE_ENCODING = "latin-1"

# column -> (record field, kind)
SCHEMA: Dict[str, Tuple[str, str]] = {
    "STATE__": ("state_code", "int"),
    "BGN_DATE": ("begin_date", "date"),
    "COUNTYNAME": ("county_name", "str"),
    "STATE": ("state", "str"),
    "EVTYPE": ("event_type", "str"),
    "BGN_LOCATI": ("location", "str"),
    "FATALITIES": ("fatalities", "int"),
    "INJURIES": ("injuries", "int"),
    "PROPDMG": ("prop_dmg", "float"),
    "PROPDMGEXP": ("prop_dmg_exp", "str"),
    "CROPDMG": ("crop_dmg", "float"),
    "CROPDMGEXP": ("crop_dmg_exp", "str"),
    "REMARKS": ("remarks", "str"),
    "REFNUM": ("refnum", "int"),
}

# Columns the file must have.
REQUIRED_COLUMNS = (
    "BGN_DATE", "STATE", "EVTYPE",
    "FATALITIES", "INJURIES",
    "PROPDMG", "PROPDMGEXP", "CROPDMG", "CROPDMGEXP",
)

# Typed columns whose value must parse for the row to be kept.
REQUIRED_VALUES = ("BGN_DATE", "FATALITIES", "INJURIES", "PROPDMG", "CROPDMG")


class StormDataError(ValueError):
    pass


class SchemaError(StormDataError):
    pass


class DatasetUnavailableError(StormDataError):
    """The data file could not be found or downloaded."""


class MalformedFileError(StormDataError):
    """The data file exists but is not a readable CSV."""


def _to_int(x) -> Optional[int]:
    """Convert a cell to int, returning None if missing/invalid."""
    if pd.isna(x): return None
    try: return int(float(x))
    except (TypeError, ValueError): return None

def _to_str(x) -> str:
    if pd.isna(x): return ""
    return str(x).strip()

def _is_url(source: str) -> bool:
    return urlparse(str(source)).scheme in ("http", "https")

def _cache_name(url: str) -> str:
    # ".../repdata%2Fdata%2FStormData.csv.bz2" -> "StormData.csv.bz2"
    name = unquote(urlparse(url).path).rstrip("/").split("/")[-1]
    return name or "storm_data.csv.bz2"


def cache_dir_from_env(cache_dir: Optional[str] = None) -> Path:
    """Return the cache directory: explicit argument, env var, then `./data`."""
    return Path(cache_dir or os.environ.get(CACHE_ENV_VAR) or DEFAULT_CACHE_DIR)


def fetch_dataset(source: str = DATA_URL, cache_dir: Optional[str] = None, timeout: int = 120) -> Path:
    """Return a local path for `source`, downloading URLs into the cache once.

    Raises DatasetUnavailableError if the file is missing or the download fails.
    """
    if not _is_url(source):
        path = Path(source)
        if not path.is_file():
            raise DatasetUnavailableError(f"Data file not found: {source}")
        return path

    target = cache_dir_from_env(cache_dir) / _cache_name(source)
    if target.is_file() and target.stat().st_size > 0:
        logger.info(f"Using cached copy of {source}: {target}")
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(target.name + ".part")
    logger.info(f"Downloading {source} -> {target}")
    try:
        with requests.get(source, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            with open(partial, "wb") as fh:
                for chunk in resp.iter_content(chunk_size=1 << 20):
                    fh.write(chunk)
    except requests.RequestException as e:
        if partial.exists():
            partial.unlink()
        raise DatasetUnavailableError(f"Could not download data file {source}: {e}") from e
    partial.replace(target)
    return target


def _read_raw(path: Path) -> pd.DataFrame:
    """Read the schema columns as text. Compression is inferred from the suffix.

    The NOAA export is not UTF-8: free-text columns carry Latin-1 bytes, and
    Latin-1 decodes every byte, so one odd character never stops the load.
    """
    try:
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            usecols=lambda c: str(c).strip() in SCHEMA,
            compression="infer",
            encoding=FILE_ENCODING,
        )
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise MalformedFileError(f"Could not parse data file {path}: {e}") from e
    except (OSError, EOFError) as e:
        raise DatasetUnavailableError(f"Could not read data file {path}: {e}") from e
    df.rename(columns={c: str(c).strip() for c in df.columns}, inplace=True)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required column(s) {missing} in {path}. Available={list(df.columns)}")
    for col in SCHEMA:
        if col not in df.columns:
            df[col] = ""
    return df


def _coerce(df: pd.DataFrame, issues: List[ParseIssue]) -> pd.DataFrame:
    """Coerce typed columns; drop (and record) rows with unusable required values."""
    out: Dict[str, pd.Series] = {}
    bad = pd.Series(False, index=df.index)
    for col, (fname, kind) in SCHEMA.items():
        raw = df[col].astype(str).str.strip()
        if kind == "str":
            out[fname] = raw
            continue
        if kind == "date":
            parsed = pd.to_datetime(raw, format=DATE_FORMAT, errors="coerce")
            expected = f"a date in {DATE_FORMAT} format"
        else:
            parsed = pd.to_numeric(raw, errors="coerce")
            expected = "a whole number" if kind == "int" else "a number"
        out[fname] = parsed

        if col not in REQUIRED_VALUES:
            continue
        failed = parsed.isna()
        if kind == "int":
            # counts such as "1.5" are rejected, not truncated
            failed |= parsed.notna() & (parsed % 1 != 0)
        # report only the first failing column of each row
        for idx in failed[failed & ~bad].index:
            issues.append(ParseIssue(
                row_number=int(idx) + 1,
                column=col,
                value=str(df.at[idx, col]),
                message=f"expected {expected}",
            ))
        bad |= failed
    return pd.DataFrame(out)[~bad]


def read_storm_csv(path) -> LoadResult:
    """Parse the CSV at `path` into StormRecords (no date filtering)."""
    df = _read_raw(Path(path))
    issues: List[ParseIssue] = []
    typed = _coerce(df, issues)
    issues.sort(key=lambda i: i.row_number)

    records: List[StormRecord] = []
    for row in typed.itertuples():
        records.append(StormRecord(
            row_id=int(row.Index) + 1,
            event_type=_to_str(row.event_type),
            begin_date=row.begin_date.date(),
            state=_to_str(row.state),
            state_code=_to_int(row.state_code),
            county_name=_to_str(row.county_name),
            fatalities=int(row.fatalities),
            injuries=int(row.injuries),
            prop_dmg=float(row.prop_dmg),
            prop_dmg_exp=_to_str(row.prop_dmg_exp),
            crop_dmg=float(row.crop_dmg),
            crop_dmg_exp=_to_str(row.crop_dmg_exp),
            location=_to_str(row.location),
            remarks=_to_str(row.remarks),
            refnum=_to_int(row.refnum),
        ))

    if issues:
        logger.warning(f"Skipped {len(issues)} malformed row(s) in {path}")
    logger.info(f"Parsed {len(records)} of {len(df)} rows from {path}")
    return LoadResult(records=records, issues=issues, rows_read=len(df), source=str(path))


def filter_by_cutoff(records: Iterable[StormRecord], cutoff: date = CUTOFF_DATE) -> List[StormRecord]:
    """Keep records whose begin date is on or after `cutoff` (order preserved)."""
    return [r for r in records if r.begin_date >= cutoff]


def load_storm_data(
    source: str = DATA_URL,
    *,
    cutoff: date = CUTOFF_DATE,
    cache_dir: Optional[str] = None,
) -> LoadResult:
    """Fetch, parse and date-filter the dataset."""
    path = fetch_dataset(source, cache_dir=cache_dir)
    result = read_storm_csv(path)
    kept = filter_by_cutoff(result.records, cutoff)
    result.dropped_before_cutoff = len(result.records) - len(kept)
    result.cutoff = cutoff
    result.records = kept
    logger.info(f"Kept {len(kept)} records on or after {cutoff.isoformat()} "
                f"({result.dropped_before_cutoff} earlier records dropped)")
    return result
