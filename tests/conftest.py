"""Shared fixtures for the monitor test-suite."""
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.api_client import APIRequestError
from core.data_models import Device, DeviceCommand, MotorState
from core.state_table import DeviceStateTable

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSender:
    """Command sender that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, DeviceCommand]] = []
        self.fail_with: Optional[Exception] = None

    async def send_device_command(self, device_id: str, command: DeviceCommand) -> dict:
        self.calls.append((device_id, command))
        if self.fail_with is not None:
            raise self.fail_with
        return {"ok": True}

    def payloads_for(self, device_id: str) -> List[dict]:
        return [command.to_payload() for did, command in self.calls if did == device_id]


def make_device(device_id: str = "d1", **overrides) -> Device:
    fields = dict(
        motor_state=MotorState.OFF,
        status="ONLINE",
        timer_active=False,
        timer_duration=None,
        ultrasonic=True,
        name=f"Pump {device_id}",
    )
    fields.update(overrides)
    return Device(id=device_id, **fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def failing_sender():
    sender = RecordingSender()
    sender.fail_with = APIRequestError("service unavailable", status_code=503)
    return sender


@pytest.fixture
def table():
    return DeviceStateTable()
