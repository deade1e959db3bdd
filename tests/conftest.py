from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool

from accessory_bridge.channels import Ack, Command, RawStatus, TransportChannel
from accessory_bridge.context import ContextStore
from accessory_bridge.db import make_engine, session_factory
from accessory_bridge.devices import Device


def make_device(**overrides) -> Device:
    fields: Dict[str, Any] = {
        "deviceId": "AABBCCDDEEFF",
        "deviceName": "Basement",
        "deviceType": "Water Detector",
        "connectionType": "OpenAPI",
        "refreshRate": 600,
        "pushRate": 0.01,
        "maxRetries": 1,
        "delayBetweenRetries": 0,
    }
    fields.update(overrides)
    return Device.model_validate(fields)


class FakeChannel(TransportChannel):
    """Scripted channel: each call pops the next outcome (value or exception)."""

    def __init__(self, name: str, statuses: Optional[List[Any]] = None, acks: Optional[List[Any]] = None):
        self.name = name
        self.statuses = list(statuses or [])
        self.acks = list(acks or [])
        self.fetches = 0
        self.commands: List[Command] = []

    async def fetch_state(self, device: Device) -> RawStatus:
        self.fetches += 1
        outcome = self.statuses.pop(0) if self.statuses else RawStatus(self.name, {})
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, dict):
            return RawStatus(self.name, outcome)
        return outcome

    async def send_command(self, device: Device, command: Command) -> Ack:
        self.commands.append(command)
        outcome = self.acks.pop(0) if self.acks else Ack(self.name, 100)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def store():
    s = ContextStore(session_factory(make_engine("sqlite://", poolclass=StaticPool)))
    s.init_db()
    return s
