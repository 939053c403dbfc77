"""Shared fixtures: synthetic storm records and small storm-data CSV files."""

import bz2
import csv
from datetime import date

import pytest

from stormrep.loader import SCHEMA
from stormrep.models import LoadResult, StormRecord

RECORD_DEFAULTS = dict(
    event_type="TSTM WIND",
    begin_date=date(2005, 6, 1),
    state="KS",
    state_code=20,
    county_name="SEDGWICK",
    fatalities=0,
    injuries=0,
    prop_dmg=0.0,
    prop_dmg_exp="",
    crop_dmg=0.0,
    crop_dmg_exp="",
)

ROW_DEFAULTS = {
    "STATE__": "20.00",
    "BGN_DATE": "6/1/2005 0:00:00",
    "COUNTYNAME": "SEDGWICK",
    "STATE": "KS",
    "EVTYPE": "TSTM WIND",
    "BGN_LOCATI": "WICHITA",
    "FATALITIES": "0.00",
    "INJURIES": "0.00",
    "PROPDMG": "0.00",
    "PROPDMGEXP": "",
    "CROPDMG": "0.00",
    "CROPDMGEXP": "",
    "REMARKS": "",
    "REFNUM": "1.00",
}


@pytest.fixture
def make_record():
    """Factory for StormRecord with sensible defaults; row ids auto-increment."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(RECORD_DEFAULTS, row_id=counter["n"])
        values.update(overrides)
        return StormRecord(**values)

    return _make


@pytest.fixture
def make_load():
    def _make(records, cutoff=date(1996, 1, 1)):
        return LoadResult(records=list(records), rows_read=len(records), cutoff=cutoff)
    return _make


@pytest.fixture
def write_csv(tmp_path):
    """Write rows (dicts of overrides) as a storm-data CSV; `.bz2` names are compressed."""

    def _write(rows, name="StormData.csv", columns=None):
        columns = columns or list(SCHEMA)
        path = tmp_path / name
        opener = bz2.open if name.endswith(".bz2") else open
        with opener(path, "wt", newline="", encoding="latin-1") as fh:
            w = csv.DictWriter(fh, fieldnames=columns, quoting=csv.QUOTE_ALL, extrasaction="ignore")
            w.writeheader()
            for overrides in rows:
                w.writerow(dict(ROW_DEFAULTS, **overrides))
        return path

    return _write


@pytest.fixture
def sample_rows():
    return [
        {"EVTYPE": "TSTM WIND", "PROPDMG": "10.00", "PROPDMGEXP": "K", "INJURIES": "2.00"},
        {"EVTYPE": "TORNADO", "FATALITIES": "3.00", "INJURIES": "40.00",
         "PROPDMG": "2.50", "PROPDMGEXP": "M", "STATE__": "46.00", "STATE": "SC"},
        {"EVTYPE": "FLASH FLOOD", "FATALITIES": "1.00", "CROPDMG": "1.00", "CROPDMGEXP": "B",
         "STATE__": "48.00", "STATE": "TX", "BGN_DATE": "8/30/2001 0:00:00"},
        {"EVTYPE": "HAIL", "PROPDMG": "5.00", "PROPDMGEXP": "Z"},
        {"EVTYPE": "TORNADO", "FATALITIES": "100.00", "BGN_DATE": "5/31/1985 0:00:00"},
        {"EVTYPE": "EXCESSIVE HEAT", "FATALITIES": "7.00", "STATE__": "17.00", "STATE": "IL",
         "BGN_DATE": "7/13/1995 0:00:00"},
        {"EVTYPE": "HEAT", "FATALITIES": "2.00", "STATE__": "17.00", "STATE": "IL",
         "BGN_DATE": "7/20/1999 0:00:00"},
    ]
