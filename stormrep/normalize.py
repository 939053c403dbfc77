"""
Field normalization
===================

Three independent cleaning steps turn a raw `StormRecord` into a
`NormalizedRecord`:

1) `decode_exponent`   - PROPDMGEXP / CROPDMGEXP codes -> numeric multiplier
2) `correct_state`     - fixes a short, fixed list of bad (code, state) pairs
3) event-type canonicalization, with two strategies:
   - "substring" (default): ordered keyword rules, first match wins
   - "fuzzy": nearest official NWS event name by edit distance

Only one canonicalization strategy is used per run; the choice is stored on
the analysis object so reports can say which one produced the numbers.
"""

from __future__ import annotations
from collections import Counter, defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import re

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from .models import UNKNOWN, Multiplier, NormalizedRecord, StormRecord

logger = logging.getLogger(__name__)

OTHER = "OTHER"

# -----------------------------
# 1) Damage exponent codes
# -----------------------------

EXPONENT_MULTIPLIERS: Dict[str, float] = {
    "H": 1e2,
    "K": 1e3,
    "M": 1e6,
    "B": 1e9,
    "+": 1.0,
    "-": 0.0,
    "?": 0.0,
    "": 0.0,
}
DIGIT_MULTIPLIER = 10.0


def decode_exponent(code: Optional[str]) -> Multiplier:
    """Decode a damage exponent code into a multiplier.

    Case-insensitive. A bare digit means 10. Codes outside the documented
    set return `UNKNOWN`, never 0.
    """
    if code is None or (isinstance(code, float) and code != code):
        return 0.0
    c = str(code).strip().upper()
    if len(c) == 1 and c.isdigit():
        return DIGIT_MULTIPLIER
    return EXPONENT_MULTIPLIERS.get(c, UNKNOWN)


# -----------------------------
# 2) State corrections
# -----------------------------

# (recorded STATE__ code, recorded STATE) -> corrected STATE.
# Each pair below is a rare combination: the code belongs (by a wide majority)
# to the corrected state, and the recorded abbreviation is that of the state
# with the neighbouring code. See `suspect_state_pairings` for the audit query.
STATE_CORRECTIONS_VERSION = "2"
STATE_CORRECTIONS: Dict[Tuple[int, str], str] = {
    (20, "KY"): "KS",
    (21, "KS"): "KY",
    (28, "MT"): "MS",
    (30, "MS"): "MT",
    (31, "NV"): "NE",
    (32, "NE"): "NV",
    (45, "SD"): "SC",
    (46, "SC"): "SD",
    (47, "TX"): "TN",
    (48, "TN"): "TX",
}


def correct_state(code: Optional[int], name: str) -> str:
    """Return the corrected state for (code, name), or `name` unchanged."""
    if code is None:
        return name
    return STATE_CORRECTIONS.get((int(code), name), name)


def suspect_state_pairings(records: Iterable[StormRecord], ratio: float = 0.01) -> List[Dict[str, object]]:
    """List (code, state) pairs that look like data-entry errors.

    For each recorded state the most frequent code is taken as the intended
    one. Any other code seen for that state less than `ratio` times as often
    as the dominant code is reported. This is the query the correction table
    was built from; its output is for review and is never applied directly.
    """
    counts: Dict[str, Counter] = defaultdict(Counter)
    for r in records:
        if r.state_code is not None:
            counts[r.state][r.state_code] += 1

    out: List[Dict[str, object]] = []
    for state in sorted(counts):
        (dominant, dominant_n), *rest = counts[state].most_common()
        for code, n in rest:
            if n < ratio * dominant_n:
                out.append({
                    "state": state,
                    "code": code,
                    "count": n,
                    "dominant_code": dominant,
                    "dominant_count": dominant_n,
                    "in_table": (code, state) in STATE_CORRECTIONS,
                })
    return out


# -----------------------------
# 3a) Event types: substring rules
# -----------------------------

# Ordered: the first rule with a keyword found in the text wins.
SUBSTRING_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("TORNADO", ("TORNADO", "FUNNEL", "WATERSPOUT")),
    ("HURRICANE", ("HURRICANE", "TYPHOON", "TROPICAL")),
    ("SURGE", ("SURGE",)),
    ("FLOOD", ("FLOOD", "FLD")),
    ("HEAT", ("HEAT",)),
    ("COLD", ("COLD", "FREEZE", "FROST", "HYPOTHERMIA")),
    ("WINTER", ("WINTER", "SNOW", "BLIZZARD", "ICE", "ICY", "SLEET")),
    ("FIRE", ("FIRE",)),
    ("LIGHTNING", ("LIGHTNING",)),
    ("HAIL", ("HAIL",)),
    ("WIND", ("WIND", "TSTM", "THUNDERSTORM")),
    ("CURRENT", ("CURRENT",)),
]

SUBSTRING_LABELS: Tuple[str, ...] = tuple(label for label, _ in SUBSTRING_RULES) + (OTHER,)


def canonicalize_event_type(text: Optional[str]) -> str:
    """Map free-text EVTYPE to one substring-rule category (OTHER if none)."""
    t = str(text or "").upper()
    for label, keywords in SUBSTRING_RULES:
        if any(k in t for k in keywords):
            return label
    return OTHER


# -----------------------------
# 3b) Event types: fuzzy match against the official names
# -----------------------------

# NWS Directive 10-1605, table 1.
OFFICIAL_EVENT_TYPES: Tuple[str, ...] = (
    "ASTRONOMICAL LOW TIDE", "AVALANCHE", "BLIZZARD", "COASTAL FLOOD",
    "COLD/WIND CHILL", "DEBRIS FLOW", "DENSE FOG", "DENSE SMOKE", "DROUGHT",
    "DUST DEVIL", "DUST STORM", "EXCESSIVE HEAT", "EXTREME COLD/WIND CHILL",
    "FLASH FLOOD", "FLOOD", "FROST/FREEZE", "FUNNEL CLOUD", "FREEZING FOG",
    "HAIL", "HEAT", "HEAVY RAIN", "HEAVY SNOW", "HIGH SURF", "HIGH WIND",
    "HURRICANE (TYPHOON)", "ICE STORM", "LAKE-EFFECT SNOW", "LAKESHORE FLOOD",
    "LIGHTNING", "MARINE HAIL", "MARINE HIGH WIND", "MARINE STRONG WIND",
    "MARINE THUNDERSTORM WIND", "RIP CURRENT", "SEICHE", "SLEET",
    "STORM SURGE/TIDE", "STRONG WIND", "THUNDERSTORM WIND", "TORNADO",
    "TROPICAL DEPRESSION", "TROPICAL STORM", "TSUNAMI", "VOLCANIC ASH",
    "WATERSPOUT", "WILDFIRE", "WINTER STORM", "WINTER WEATHER",
)

FUZZY_LABELS: Tuple[str, ...] = OFFICIAL_EVENT_TYPES + (OTHER,)

# Abbreviations common in the free-text field.
ABBREVIATIONS = {
    r"\bTSTM\b": "THUNDERSTORM",
    r"\bFLD\b": "FLOOD",
    r"\bWINDS\b": "WIND",
}

DEFAULT_MAX_DISTANCE = 3


def _clean_event_text(text: Optional[str]) -> str:
    t = str(text or "").upper().strip()
    t = re.sub(r"\s+", " ", t)
    for pattern, repl in ABBREVIATIONS.items():
        t = re.sub(pattern, repl, t)
    return t


def fuzzy_canonicalize_event_type(text: Optional[str], max_distance: int = DEFAULT_MAX_DISTANCE) -> str:
    """Map free-text EVTYPE to the closest official event name.

    Exact matches (after cleanup) win; otherwise the official name with the
    smallest Levenshtein distance is used if it is within `max_distance`.
    Anything further away is OTHER.
    """
    t = _clean_event_text(text)
    if not t:
        return OTHER
    if t in OFFICIAL_EVENT_TYPES:
        return t
    match = process.extractOne(
        t,
        OFFICIAL_EVENT_TYPES,
        scorer=Levenshtein.distance,
        score_cutoff=max_distance,
    )
    if match is None:
        return OTHER
    return match[0]


# -----------------------------
# Strategy registry
# -----------------------------

STRATEGIES: Dict[str, Tuple[Callable[[Optional[str]], str], Tuple[str, ...]]] = {
    "substring": (canonicalize_event_type, SUBSTRING_LABELS),
    "fuzzy": (fuzzy_canonicalize_event_type, FUZZY_LABELS),
}
DEFAULT_STRATEGY = "substring"


def get_canonicalizer(strategy: str = DEFAULT_STRATEGY) -> Callable[[Optional[str]], str]:
    try:
        return STRATEGIES[strategy][0]
    except KeyError:
        raise ValueError(f"strategy must be one of: {', '.join(STRATEGIES)}") from None


def labels_for(strategy: str = DEFAULT_STRATEGY) -> Tuple[str, ...]:
    """The closed set of categories a strategy can produce."""
    get_canonicalizer(strategy)
    return STRATEGIES[strategy][1]


def normalize_record(record: StormRecord, canonicalize: Callable[[Optional[str]], str]) -> NormalizedRecord:
    state = correct_state(record.state_code, record.state)
    return NormalizedRecord(
        record=record,
        event_category=canonicalize(record.event_type),
        state=state,
        state_corrected=state != record.state,
        prop_multiplier=decode_exponent(record.prop_dmg_exp),
        crop_multiplier=decode_exponent(record.crop_dmg_exp),
    )


def normalize_records(records: Sequence[StormRecord], strategy: str = DEFAULT_STRATEGY) -> List[NormalizedRecord]:
    """Apply exponent decoding, state correction and one canonicalization strategy."""
    canonicalize = get_canonicalizer(strategy)
    # EVTYPE has far fewer distinct values than rows
    cache: Dict[str, str] = {}

    def _cached(text: Optional[str]) -> str:
        key = text or ""
        if key not in cache:
            cache[key] = canonicalize(key)
        return cache[key]

    out = [normalize_record(r, _cached) for r in records]
    n_corrected = sum(1 for n in out if n.state_corrected)
    n_unknown = sum(1 for n in out if n.has_unknown_multiplier)
    logger.info(f"Normalized {len(out)} records with the {strategy!r} strategy "
                f"({len(cache)} distinct event types, {n_corrected} state corrections, "
                f"{n_unknown} with unknown damage exponents)")
    return out
