"""Shared test fixtures for dsoxscope tests."""

from collections.abc import Callable
from typing import Any

import pytest

from dsoxscope.keysight_dsox1000 import KeysightDSOX1000
from dsoxscope.transport_protocol import TransportTimeout

Response = str | bytes | list[str] | Callable[[str], str]


class FakeScope:
    """Scripted instrument that records every call.

    Set commands (``<fragment> <value>``) are stored and echoed back by the
    matching ``<fragment>?`` query, so verified sets succeed by default.
    ``responses`` overrides queries by exact command; a list is consumed in
    order with the last entry repeated. ``readback`` transforms the echoed
    value of a fragment to simulate an instrument that snaps values.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.settings: dict[str, str] = {}
        self.responses: dict[str, Response] = {}
        self.readback: dict[str, Callable[[str], str]] = {}
        self.binary: dict[str, bytes] = {}
        self.raise_on: set[str] = set()
        self.failing: set[str] = set()
        self.opc_status = 0
        self.supports_split_binary_read = True
        self._pending = b""

    def write(self, command: str) -> int:
        self.calls.append(("write", command))
        key = command.upper()
        if key in self.raise_on:
            raise TransportTimeout(command)
        if key in self.binary:
            self._pending = self.binary[key]
        elif " " in command and not key.split(" ", 1)[0].endswith("?"):
            fragment, value = command.split(" ", 1)
            self.settings[fragment.upper()] = value
        return -1 if key in self.failing else 0

    def query(self, command: str) -> tuple[str | bytes, int]:
        self.calls.append(("query", command))
        key = command.upper()
        if key in self.raise_on:
            raise TransportTimeout(command)
        status = -1 if key in self.failing else 0
        if key in self.responses:
            return self._resolve(key, command), status
        if key in self.binary:
            return self.binary[key], status
        fragment = key[:-1]
        if key.endswith("?") and fragment in self.settings:
            value = self.settings[fragment]
            if fragment in self.readback:
                value = self.readback[fragment](value)
            return value + "\n", status
        return "", status

    def read(self) -> bytes:
        self.calls.append(("read", ""))
        data, self._pending = self._pending, b""
        return data

    def opc(self) -> int:
        self.calls.append(("opc", "*OPC?"))
        return self.opc_status

    def _resolve(self, key: str, command: str) -> str | bytes:
        response = self.responses[key]
        if callable(response):
            return response(command)
        if isinstance(response, list):
            return response.pop(0) if len(response) > 1 else response[0]
        return response

    def ready(self) -> "FakeScope":
        """Put the fake into a state where measurements are allowed."""
        self.responses[":OPEREGISTER:CONDITION?"] = "0"
        self.settings[":TRIGGER:SWEEP"] = "AUTO"
        self.responses["*ESR?"] = "0"
        for channel in (1, 2):
            self.settings[f":CHANNEL{channel}:UNITS"] = "VOLT"
        return self

    def commands(self, kind: str = "write") -> list[str]:
        return [command for call_kind, command in self.calls if call_kind == kind]

    def set(self, key: str, value: Any) -> None:
        self.settings[key.upper()] = str(value)


@pytest.fixture
def fake_scope() -> FakeScope:
    """Provide a fake instrument ready for measurements."""
    return FakeScope().ready()


@pytest.fixture
def scope(fake_scope: FakeScope) -> KeysightDSOX1000:
    """Provide a driver talking to the fake instrument."""
    return KeysightDSOX1000(fake_scope)
