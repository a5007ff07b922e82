"""Tests for parameter parsing and normalization."""

import math
from pathlib import Path

import pytest

from dsoxscope.options import (
    ACQUISITION_MODES,
    AUTOSCALE_MODES,
    INPUT_COUPLINGS,
    INPUT_UNITS,
    SWITCH_STATES,
    TRIGGER_COUPLINGS,
    TRIGGER_MODES,
    TRIGGER_SOURCES,
    TRIGGER_TYPES,
    AutoFiftyPercent,
    ChannelRef,
    FixedLevel,
    ZoomDisabled,
    ZoomFactor,
    bounded,
    choice,
    format_number,
    is_empty,
    parse_channels,
    parse_file_name,
    parse_options,
    parse_trigger_level,
    parse_zoom_factor,
    parse_zoom_position,
    real,
    round_number,
    switch,
    token,
)
from dsoxscope.outcome import Outcome


@pytest.fixture
def outcome() -> Outcome:
    return Outcome("test")


# token / is_empty


def test_token_normalizes_scalars() -> None:
    """Verify strings, booleans and numbers map to lower-case tokens."""
    assert token(" DC ") == "dc"
    assert token(True) == "1"
    assert token(False) == "0"
    assert token(2) == "2"
    assert token(2.0) == "2"
    assert token(0.5) == "0.5"


def test_is_empty() -> None:
    assert is_empty(None)
    assert is_empty("  ")
    assert is_empty([])
    assert not is_empty(0)
    assert not is_empty("0")


# number formatting


@pytest.mark.parametrize("value", [0.3125, 5e-4, -1.5, 123456.0, 1e-9, 0.0])
def test_format_number_is_idempotent(value: float) -> None:
    """Verify formatting a formatted and re-parsed number gives the same text."""
    text = format_number(value)
    assert format_number(float(text)) == text


def test_format_number_uses_three_significant_digits() -> None:
    assert format_number(0.3125) == "3.12e-01"
    assert format_number(5e-4) == "5.00e-04"
    assert format_number(0.1234, 4) == "1.234e-01"
    assert round_number(0.3125) == 0.312


# channels


def test_parse_channels_accepts_mixed_forms(outcome: Outcome) -> None:
    """Verify numbers, strings and prefixed names are accepted and deduplicated."""
    assert parse_channels("ch1, 2, 2", outcome) == (ChannelRef(1), ChannelRef(2))
    assert parse_channels([2, "channel1"], outcome) == (ChannelRef(2), ChannelRef(1))
    assert parse_channels(1, outcome) == (ChannelRef(1),)
    assert outcome.warnings == []


def test_parse_channels_drops_invalid_tokens(outcome: Outcome) -> None:
    """Verify unknown channels are dropped with a warning."""
    assert parse_channels("1, 5, foo", outcome) == (ChannelRef(1),)
    assert len(outcome.warnings) == 2
    assert outcome.ok


def test_channel_ref_names() -> None:
    channel = ChannelRef(2)
    assert channel.prefix == ":CHANnel2"
    assert channel.source == "CHANnel2"
    assert channel.measure_source == "CHANNEL2"


# parsers


@pytest.mark.parametrize(
    "table",
    [
        SWITCH_STATES,
        INPUT_COUPLINGS,
        INPUT_UNITS,
        ACQUISITION_MODES,
        TRIGGER_MODES,
        TRIGGER_TYPES,
        TRIGGER_SOURCES,
        TRIGGER_COUPLINGS,
        AUTOSCALE_MODES,
    ],
)
def test_choice_round_trips_every_alias(outcome: Outcome, table: dict[str, str]) -> None:
    """Verify every alias of an enumeration maps to its instrument keyword."""
    parse = choice("test", table)
    for alias, keyword in table.items():
        assert parse(alias.upper(), outcome) == keyword
    assert outcome.warnings == []


def test_choice_warns_on_unknown_value(outcome: Outcome) -> None:
    assert choice("source", TRIGGER_SOURCES)("ch3", outcome) is None
    assert "source parameter 'ch3' is unknown" in outcome.warnings[0]
    assert outcome.ok


def test_switch_accepts_common_spellings(outcome: Outcome) -> None:
    parse = switch("trace")
    assert parse("ON", outcome) == "1"
    assert parse(True, outcome) == "1"
    assert parse(0, outcome) == "0"
    assert parse("false", outcome) == "0"


def test_real_and_bounded(outcome: Outcome) -> None:
    assert real("vDiv", magnitude=True)("-0.5", outcome) == 0.5
    assert real("vOffset")("abc", outcome) is None
    assert bounded("numAverage", 2, 65536)(1, outcome) is None
    assert bounded("numAverage", 2, 65536)("16", outcome) == 16.0
    assert len(outcome.warnings) == 2


def test_parse_trigger_level(outcome: Outcome) -> None:
    assert parse_trigger_level(0.25, outcome) == FixedLevel(0.25)
    assert parse_trigger_level(math.nan, outcome) == AutoFiftyPercent()
    assert parse_trigger_level("auto", outcome) == AutoFiftyPercent()


def test_parse_zoom_factor(outcome: Outcome) -> None:
    """Verify small factors disable the zoom and factors below 2 are raised to 2."""
    assert parse_zoom_factor(1, outcome) == ZoomDisabled()
    assert parse_zoom_factor(math.nan, outcome) == ZoomDisabled()
    assert parse_zoom_factor(1.5, outcome) == ZoomFactor(2.0)
    assert parse_zoom_factor("10", outcome) == ZoomFactor(10.0)


def test_parse_zoom_position_defaults_to_center(outcome: Outcome) -> None:
    assert parse_zoom_position("nan", outcome) == 0.0
    assert parse_zoom_position(1e-3, outcome) == 1e-3


def test_parse_file_name_accepts_paths(outcome: Outcome, tmp_path: Path) -> None:
    assert parse_file_name("shot.png", outcome) == "shot.png"
    assert parse_file_name(tmp_path / "shot.bmp", outcome) == str(tmp_path / "shot.bmp")
    assert outcome.warnings == []


def test_parse_file_name_drops_other_values(outcome: Outcome) -> None:
    assert parse_file_name(5, outcome) is None
    assert outcome.warnings == ["fileName parameter '5' is invalid --> ignore and continue"]


# parse_options


def test_parse_options_matches_names_loosely(outcome: Outcome) -> None:
    """Verify 'vDiv', 'v_div' and 'VDIV' select the same parameter."""
    schema = {"v_div": real("vDiv"), "channel": lambda value, _: value}
    assert parse_options("op", {"vDiv": 1}, schema, outcome) == {"v_div": 1.0}
    assert parse_options("op", {"VDIV": 2}, schema, outcome) == {"v_div": 2.0}


def test_parse_options_warns_on_unknown_names(outcome: Outcome) -> None:
    parsed = parse_options("op", {"foo": 1, "v_div": ""}, {"v_div": real("vDiv")}, outcome)

    assert parsed == {}
    assert outcome.warnings == ["op parameter 'foo' is unknown --> ignore"]
