"""
Data model (StormRecord / NormalizedRecord)
===========================================

Each row of the NOAA storm CSV is converted into a `StormRecord`.
Records are immutable (`frozen=True`) so that:
- the raw recorded values are always available for auditing, and
- normalization produces a new `NormalizedRecord` instead of editing data.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union


class UnknownMultiplier:
    """Marker for a damage exponent code that could not be decoded.

    There is exactly one instance (`UNKNOWN`). It is not a number, so it can
    never be summed into a total by accident.
    """
    _instance: Optional["UnknownMultiplier"] = None

    def __new__(cls) -> "UnknownMultiplier":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __reduce__(self):
        return (UnknownMultiplier, ())


UNKNOWN = UnknownMultiplier()

Multiplier = Union[float, UnknownMultiplier]


def is_unknown(multiplier: Multiplier) -> bool:
    return multiplier is UNKNOWN


@dataclass(frozen=True)
class StormRecord:
    """Immutable record for one storm-data row (a curated subset of columns)."""
    row_id: int
    event_type: str
    begin_date: date
    state: str
    state_code: Optional[int]
    county_name: str
    fatalities: int
    injuries: int
    prop_dmg: float
    prop_dmg_exp: str
    crop_dmg: float
    crop_dmg_exp: str
    location: str = ""
    remarks: str = ""
    refnum: Optional[int] = None


@dataclass(frozen=True)
class NormalizedRecord:
    """A `StormRecord` plus the cleaned fields derived from it.

    The source record is kept untouched; `state` is the (possibly corrected)
    state and `state_corrected` tells whether the correction table was used.
    """
    record: StormRecord
    event_category: str
    state: str
    state_corrected: bool
    prop_multiplier: Multiplier
    crop_multiplier: Multiplier

    @property
    def prop_damage(self) -> Optional[float]:
        """Property damage in US$, or None when the exponent is unknown."""
        return _damage(self.record.prop_dmg, self.prop_multiplier)

    @property
    def crop_damage(self) -> Optional[float]:
        """Crop damage in US$, or None when the exponent is unknown."""
        return _damage(self.record.crop_dmg, self.crop_multiplier)

    @property
    def has_unknown_multiplier(self) -> bool:
        return is_unknown(self.prop_multiplier) or is_unknown(self.crop_multiplier)


def _damage(amount: float, multiplier: Multiplier) -> Optional[float]:
    if is_unknown(multiplier):
        return None
    return float(amount) * float(multiplier)


@dataclass(frozen=True)
class ParseIssue:
    """One skipped row: where it was and why it could not be parsed."""
    row_number: int
    column: str
    value: str
    message: str


@dataclass
class LoadResult:
    """Output of the loader: records in file order plus what was left out."""
    records: List[StormRecord]
    issues: List[ParseIssue] = field(default_factory=list)
    rows_read: int = 0
    dropped_before_cutoff: int = 0
    cutoff: Optional[date] = None
    source: Optional[str] = None
