"""Tests for instrument state queries."""

from dsoxscope.device_state import (
    MAX_ERROR_READS,
    AcquisitionState,
    DeviceError,
    TriggerState,
    acquisition_state,
    data_available,
    drain_error_queue,
    measurement_allowed,
    parse_error_entry,
    trigger_state,
)

from conftest import FakeScope


def test_acquisition_state_from_run_bit() -> None:
    fake = FakeScope()
    fake.responses[":OPEREGISTER:CONDITION?"] = ["8", "0", "garbage"]

    assert acquisition_state(fake) is AcquisitionState.RUNNING
    assert acquisition_state(fake) is AcquisitionState.STOPPED
    assert acquisition_state(fake) is AcquisitionState.UNKNOWN


def test_trigger_state_reads_both_registers() -> None:
    fake = FakeScope()
    fake.responses[":TER?"] = ["1", "0", "0"]
    fake.responses[":AER?"] = ["0", "1", "0"]

    assert trigger_state(fake) is TriggerState.TRIGGERED
    assert trigger_state(fake) is TriggerState.WAIT_FOR_TRIGGER
    assert trigger_state(fake) is TriggerState.UNKNOWN


def test_measurement_allowed_when_stopped_or_auto() -> None:
    fake = FakeScope()
    fake.responses[":OPEREGISTER:CONDITION?"] = "8"
    fake.set(":TRIGGER:SWEEP", "NORM")
    assert not measurement_allowed(fake)

    fake.set(":TRIGGER:SWEEP", "AUTO")
    assert measurement_allowed(fake)

    fake.set(":TRIGGER:SWEEP", "NORM")
    fake.responses[":OPEREGISTER:CONDITION?"] = "0"
    assert measurement_allowed(fake)


def test_data_available_needs_points(fake_scope: FakeScope) -> None:
    fake_scope.responses[":WAVEFORM:POINTS?"] = ["0", "1000"]

    assert not data_available(fake_scope)
    assert data_available(fake_scope)


def test_data_available_recovers_from_timeout(fake_scope: FakeScope) -> None:
    fake_scope.raise_on.add(":WAVEFORM:POINTS?")

    assert not data_available(fake_scope)
    assert fake_scope.calls[-1] == ("opc", "*OPC?")


def test_parse_error_entry() -> None:
    assert parse_error_entry('-113,"Undefined header"\n') == DeviceError(-113, "Undefined header")
    assert parse_error_entry('+0,"No error"') == DeviceError(0, "No error")
    assert parse_error_entry("") == DeviceError(-1, "")


def test_drain_error_queue_stops_at_no_error() -> None:
    fake = FakeScope()
    fake.responses[":SYSTEM:ERROR?"] = [
        '-113,"Undefined header"',
        '-222,"Data out of range"',
        '+0,"No error"',
    ]

    errors = drain_error_queue(fake)

    assert [error.code for error in errors] == [-113, -222]
    assert len(fake.calls) == 3


def test_drain_error_queue_is_bounded() -> None:
    """Verify a queue that never empties is read at most 30 times."""
    fake = FakeScope()
    fake.responses[":SYSTEM:ERROR?"] = '-113,"Undefined header"'

    errors = drain_error_queue(fake)

    assert MAX_ERROR_READS == 30
    assert len(errors) == 30
    assert len(fake.calls) == 30
