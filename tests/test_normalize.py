"""Tests for exponent decoding, state correction and event-type canonicalization."""

import math

import pytest

from stormrep.models import UNKNOWN, is_unknown
from stormrep.normalize import (
    FUZZY_LABELS,
    OTHER,
    STATE_CORRECTIONS,
    SUBSTRING_LABELS,
    canonicalize_event_type,
    correct_state,
    decode_exponent,
    fuzzy_canonicalize_event_type,
    get_canonicalizer,
    labels_for,
    normalize_records,
    suspect_state_pairings,
)

EVENT_TEXTS = [
    "TSTM WIND", "TSTM WIND/HAIL", "THUNDERSTORM WINDS", "TORNADO", "TORNADOES, TSTM WIND, HAIL",
    "FLASH FLOOD", "URBAN/SML STREAM FLD", "HURRICANE/TYPHOON", "EXCESSIVE HEAT", "RIP CURRENTS",
    "WILD/FOREST FIRE", "EXTREME COLD/WIND CHILL", "ICE STORM", "HEAVY SNOW", "LIGHTNING",
    "STORM SURGE/TIDE", "DENSE FOG", "Summary of June 3", "", "   ", "?", "coastal flooding",
]


def test_decode_exponent_documented_codes():
    cases = [
        ("H", 100), ("K", 1_000), ("M", 1_000_000), ("B", 1_000_000_000),
        ("h", 100), ("k", 1_000), ("m", 1_000_000), ("b", 1_000_000_000),
        ("+", 1), ("-", 0), ("?", 0), ("", 0),
    ]
    cases += [(str(d), 10) for d in range(10)]
    for code, expected in cases:
        assert decode_exponent(code) == expected, code


def test_decode_exponent_missing_is_zero():
    assert decode_exponent(None) == 0
    assert decode_exponent(float("nan")) == 0
    assert decode_exponent("  k ") == 1_000


def test_decode_exponent_unknown_is_not_a_number():
    for code in ("Z", "z", "KK", "10", "X", "$", "5K"):
        result = decode_exponent(code)
        assert result is UNKNOWN, code
        assert is_unknown(result)
        assert result != 0
        assert not isinstance(result, (int, float))


def test_correct_state_known_error():
    assert correct_state(46, "SC") == "SD"


def test_correct_state_unlisted_pair_unchanged():
    assert correct_state(45, "SC") == "SC"
    assert correct_state(46, "SD") == "SD"
    assert correct_state(None, "SC") == "SC"


def test_correct_state_is_idempotent():
    pairs = list(STATE_CORRECTIONS) + [(1, "AL"), (46, "SD"), (99, "XX"), (None, "SC")]
    for code, name in pairs:
        once = correct_state(code, name)
        assert correct_state(code, once) == once


def test_state_corrections_have_no_chains():
    for (code, _), fixed in STATE_CORRECTIONS.items():
        assert (code, fixed) not in STATE_CORRECTIONS


def test_substring_rules_scenarios():
    assert canonicalize_event_type("TSTM WIND") == "WIND"
    assert canonicalize_event_type("tstm wind") == "WIND"
    assert canonicalize_event_type("TSTM WIND/HAIL") == "HAIL"
    assert canonicalize_event_type("URBAN/SML STREAM FLD") == "FLOOD"
    assert canonicalize_event_type("EXTREME COLD/WIND CHILL") == "COLD"
    assert canonicalize_event_type("DENSE FOG") == OTHER
    assert canonicalize_event_type(None) == OTHER


def test_substring_rules_are_total():
    for text in EVENT_TEXTS:
        label = canonicalize_event_type(text)
        assert isinstance(label, str)
        assert label in SUBSTRING_LABELS


def test_fuzzy_matching():
    assert fuzzy_canonicalize_event_type("TSTM WIND") == "THUNDERSTORM WIND"
    assert fuzzy_canonicalize_event_type("THUNDERSTORM WINDS") == "THUNDERSTORM WIND"
    assert fuzzy_canonicalize_event_type("flash flood") == "FLASH FLOOD"
    assert fuzzy_canonicalize_event_type("TORNADOES") == "TORNADO"
    assert fuzzy_canonicalize_event_type("Summary of June 3") == OTHER
    assert fuzzy_canonicalize_event_type("") == OTHER


def test_fuzzy_max_distance_bounds_matches():
    assert fuzzy_canonicalize_event_type("TORNADOES", max_distance=1) == OTHER
    assert fuzzy_canonicalize_event_type("TORNADOES", max_distance=2) == "TORNADO"


def test_fuzzy_matching_is_total():
    for text in EVENT_TEXTS:
        assert fuzzy_canonicalize_event_type(text) in FUZZY_LABELS


def test_official_vocabulary_size():
    assert len(FUZZY_LABELS) == 49
    assert len(set(FUZZY_LABELS)) == 49


def test_strategy_registry():
    assert get_canonicalizer("substring") is canonicalize_event_type
    assert get_canonicalizer("fuzzy") is fuzzy_canonicalize_event_type
    assert labels_for("substring") == SUBSTRING_LABELS
    with pytest.raises(ValueError):
        get_canonicalizer("both")


def test_normalize_records(make_record):
    records = [
        make_record(event_type="TSTM WIND", prop_dmg=10.0, prop_dmg_exp="K"),
        make_record(state_code=46, state="SC", crop_dmg=2.0, crop_dmg_exp="Z"),
    ]
    wind, sc = normalize_records(records)

    assert wind.event_category == "WIND"
    assert wind.prop_damage == 10_000
    assert wind.crop_damage == 0
    assert not wind.state_corrected
    assert not wind.has_unknown_multiplier

    assert sc.state == "SD"
    assert sc.state_corrected
    assert sc.record.state == "SC"
    assert sc.crop_damage is None
    assert sc.has_unknown_multiplier


def test_normalize_records_fuzzy(make_record):
    out = normalize_records([make_record(event_type="TSTM WIND")], strategy="fuzzy")
    assert out[0].event_category == "THUNDERSTORM WIND"


def test_suspect_state_pairings(make_record):
    records = [make_record(state="SC", state_code=45) for _ in range(200)]
    records += [make_record(state="SC", state_code=46)]
    records += [make_record(state="SD", state_code=46) for _ in range(50)]
    records += [make_record(state="SD", state_code=45) for _ in range(10)]

    suspects = suspect_state_pairings(records, ratio=0.01)

    assert suspects == [{
        "state": "SC", "code": 46, "count": 1,
        "dominant_code": 45, "dominant_count": 200, "in_table": True,
    }]
    # a looser ratio also flags the SD minority
    flagged = {(s["state"], s["code"]) for s in suspect_state_pairings(records, ratio=0.5)}
    assert flagged == {("SC", 46), ("SD", 45)}


def test_unknown_multiplier_is_singleton():
    from stormrep.models import UnknownMultiplier
    assert UnknownMultiplier() is UNKNOWN
    assert repr(UNKNOWN) == "UNKNOWN"
    assert not math.isnan(decode_exponent("K"))
