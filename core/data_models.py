"""Core data structures for the pump monitor.

Contains the device snapshot reported by the remote control service, the
monitor's private tracked state and the command payload it sends back.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class MotorState(str, Enum):
    """Reported motor state of a pump."""

    ON = "ON"
    OFF = "OFF"

    @classmethod
    def parse(cls, value: Any) -> "MotorState":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.upper() == cls.ON.value:
            return cls.ON
        return cls.OFF


@dataclass(frozen=True)
class Device:
    """Snapshot of a single device as reported by the remote service."""

    id: str
    motor_state: MotorState = MotorState.OFF
    status: str = "OFFLINE"
    timer_active: bool = False
    timer_duration: Optional[int] = None
    ultrasonic: Optional[bool] = None
    name: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Device":
        device_id = data.get("_id") or data.get("id")
        if not device_id:
            raise ValueError(f"Device payload has no identifier: {data!r}")
        duration = data.get("timerDuration")
        ultrasonic = data.get("ultrasonic")
        return cls(
            id=str(device_id),
            motor_state=MotorState.parse(data.get("motorState")),
            status=data.get("status") or "OFFLINE",
            timer_active=bool(data.get("timerActive", False)),
            timer_duration=int(duration) if duration is not None else None,
            ultrasonic=bool(ultrasonic) if ultrasonic is not None else None,
            name=data.get("name"),
            location=data.get("location"),
        )

    def to_api(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "_id": self.id,
            "motorState": self.motor_state.value,
            "status": self.status,
            "timerActive": self.timer_active,
        }
        optional = {
            "timerDuration": self.timer_duration,
            "ultrasonic": self.ultrasonic,
            "name": self.name,
            "location": self.location,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    def __str__(self) -> str:
        label = self.name or self.id
        timer = f", timer {self.timer_duration}s" if self.timer_active else ""
        return f"{label} ({self.status}) - motor {self.motor_state.value}{timer}"


@dataclass
class TrackedState:
    """The monitor's own memory of a device between ticks."""

    motor_state: MotorState
    status: str
    timer_active: bool
    timer_duration: Optional[int] = None
    timer_start_time: Optional[float] = None  # epoch seconds, estimated
    sensor_flag: bool = True
    timer_end_command_sent: bool = False


@dataclass(frozen=True)
class DeviceCommand:
    """Partial set of fields to change on a device."""

    motor: Optional[MotorState] = None
    timer: Optional[int] = None
    ultrasonic: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.motor is not None:
            payload["motor"] = self.motor.value
        if self.timer is not None:
            payload["timer"] = self.timer
        if self.ultrasonic is not None:
            payload["ultrasonic"] = self.ultrasonic
        return payload


# Sent when a motor was switched off while a countdown was still pending
CLEAR_TIMER_COMMAND = DeviceCommand(timer=0, ultrasonic=False)

# Sent once a countdown has fully elapsed
TIMER_END_COMMAND = DeviceCommand(motor=MotorState.OFF, ultrasonic=False)
