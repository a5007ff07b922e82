"""Tests for the set-then-verify protocol."""

from dsoxscope.outcome import FAILED, OK, Outcome
from dsoxscope.verify import (
    AbsoluteTolerance,
    Criticality,
    ExactMatch,
    NumericEqual,
    PrefixMatch,
    RatioWindow,
    RelativeTolerance,
    verified_set,
)

from conftest import FakeScope


def test_tolerance_rules() -> None:
    assert ExactMatch().accepts("DC", "dc")
    assert not ExactMatch().accepts("DC", "AC")
    assert PrefixMatch().accepts("NORMal", "NORM")
    assert not PrefixMatch().accepts("NORMal", "")
    assert NumericEqual().accepts("10", "1.0E+01")
    assert RelativeTolerance().accepts("5.00e-01", "0.52")
    assert not RelativeTolerance().accepts("5.00e-01", "0.55")
    assert RelativeTolerance().accepts("0.00e+00", "0")
    assert AbsoluteTolerance().accepts("1.00e-01", "0.1005")
    assert not AbsoluteTolerance().accepts("1.00e-01", "0.102")
    assert RatioWindow().accepts("5.00e-04", "5.0E-04")
    assert not RatioWindow().accepts("5.00e-04", "1.0E-04")


def test_unparseable_read_back_is_a_mismatch() -> None:
    assert not RelativeTolerance().accepts("5.00e-01", "abc")
    assert not AbsoluteTolerance().accepts("5.00e-01", "")
    assert not RatioWindow().accepts("5.00e-04", "0")


def test_echoed_value_passes_without_warnings() -> None:
    """Verify a parameter echoed by the instrument yields no warning."""
    fake = FakeScope()
    outcome = Outcome("test")

    result = verified_set(
        fake, ":CHANnel1:SCALe", "5.00e-01", RelativeTolerance(), Criticality.SOFT,
        outcome, "vDiv",
    )

    assert result.within_tolerance
    assert result.read_back == "5.00e-01"
    assert outcome.warnings == []
    assert fake.calls == [
        ("write", ":CHANnel1:SCALe 5.00e-01"),
        ("query", ":CHANnel1:SCALe?"),
    ]


def test_soft_mismatch_only_warns() -> None:
    fake = FakeScope()
    fake.readback[":CHANNEL1:SCALE"] = lambda value: str(float(value) * 1.1)
    outcome = Outcome("test")

    result = verified_set(
        fake, ":CHANnel1:SCALe", "5.00e-01", RelativeTolerance(), Criticality.SOFT,
        outcome, "vDiv",
    )

    assert not result.within_tolerance
    assert outcome.status == OK
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].endswith("Check limits.")


def test_hard_mismatch_fails() -> None:
    fake = FakeScope()
    fake.readback[":TRIGGER:SOURCE"] = lambda value: "CHAN2"
    outcome = Outcome("test")

    verified_set(
        fake, ":TRIGger:SOURce", "CHAN1", ExactMatch(), Criticality.HARD, outcome, "source"
    )

    assert outcome.status == FAILED


def test_write_error_skips_read_back() -> None:
    fake = FakeScope()
    fake.failing.add(":TRIGGER:SOURCE CHAN1")
    outcome = Outcome("test")

    result = verified_set(
        fake, ":TRIGger:SOURce", "CHAN1", ExactMatch(), Criticality.SOFT, outcome, "source"
    )

    assert not result.within_tolerance
    assert outcome.status == FAILED
    assert fake.commands("query") == []
