"""
Device State Table.

Single owner of the observed device list and of the tracked state kept for
each device between ticks. Both collections are keyed by device identifier
and always hold the same identifiers while monitoring is active.
"""
import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from .data_models import Device, MotorState, TrackedState

logger = logging.getLogger(__name__)

# Type alias for callbacks told about devices patched locally
DevicePatchCallback = Callable[[Device], None]


def estimate_start_time(timer_active: bool, duration: Optional[int], now: float) -> Optional[float]:
    """
    Reconstruct when a countdown began.

    The remote device does not report an absolute start time, so the first
    time a timer is seen active its start is taken as ``now - duration``.
    """
    if timer_active and duration:
        return now - duration
    return None


def initial_state(device: Device, now: float) -> TrackedState:
    """Build the first tracked state for a device."""
    return TrackedState(
        motor_state=device.motor_state,
        status=device.status,
        timer_active=device.timer_active,
        timer_duration=device.timer_duration,
        timer_start_time=estimate_start_time(device.timer_active, device.timer_duration, now),
        sensor_flag=device.ultrasonic if device.ultrasonic is not None else True,
        timer_end_command_sent=False,
    )


def refreshed_state(previous: Optional[TrackedState], device: Device, now: float) -> TrackedState:
    """
    Tracked state after observing ``device`` again.

    Reported fields are copied verbatim. The start estimate survives while the
    timer stays active, and the expiry guard is reset only when the
    timer-active flag flipped since ``previous``.
    """
    if previous is None:
        return initial_state(device, now)

    if not device.timer_active:
        start_time = None
    elif previous.timer_start_time is not None:
        start_time = previous.timer_start_time
    else:
        start_time = estimate_start_time(True, device.timer_duration, now)

    if device.timer_active != previous.timer_active:
        guard = False
    else:
        guard = previous.timer_end_command_sent

    return TrackedState(
        motor_state=device.motor_state,
        status=device.status,
        timer_active=device.timer_active,
        timer_duration=device.timer_duration,
        timer_start_time=start_time,
        sensor_flag=device.ultrasonic if device.ultrasonic is not None else True,
        timer_end_command_sent=guard,
    )


class DeviceStateTable:
    """
    Keyed store of device snapshots and tracked state.

    Devices are enumerated in the order they were supplied, so every tick
    walks the fleet in the same order.
    """

    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}
        self._states: Dict[str, TrackedState] = {}
        self._callbacks: List[DevicePatchCallback] = []

    def add_listener(self, callback: DevicePatchCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_listener(self, callback: DevicePatchCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_listeners(self, device: Device) -> None:
        for callback in list(self._callbacks):
            try:
                callback(device)
            except Exception as exc:
                logger.error("Device patch listener error: %s", exc)

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def seed(self, devices: Iterable[Device], now: float) -> None:
        """Replace all devices and start tracking each of them from scratch."""
        self.clear()
        for device in devices:
            self._devices[device.id] = device
            self._states[device.id] = initial_state(device, now)
        logger.debug("Seeded state table with %d devices", len(self._devices))

    def replace_devices(self, devices: Iterable[Device], now: float) -> None:
        """
        Swap in a fresh device list.

        Tracked state of devices that are still present is left untouched.
        New devices are seeded and vanished devices are forgotten.
        """
        self._devices = {device.id: device for device in devices}

        for device_id in list(self._states):
            if device_id not in self._devices:
                logger.info("Device %s no longer reported, dropping tracked state", device_id)
                del self._states[device_id]

        for device_id, device in self._devices.items():
            if device_id not in self._states:
                logger.info("Tracking new device %s", device_id)
                self._states[device_id] = initial_state(device, now)

    def devices(self) -> List[Device]:
        return list(self._devices.values())

    def get_device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def get_state(self, device_id: str) -> Optional[TrackedState]:
        return self._states.get(device_id)

    def set_state(self, device_id: str, state: TrackedState) -> None:
        if device_id not in self._devices:
            raise KeyError(f"Device {device_id} is not monitored")
        self._states[device_id] = state

    def apply_cleared_timer(self, device_id: str) -> None:
        """Record that the device's countdown was cleared and its motor is off."""
        state = self._states.get(device_id)
        if state is not None:
            self._states[device_id] = replace(
                state,
                timer_active=False,
                timer_duration=0,
                motor_state=MotorState.OFF,
                sensor_flag=False,
                timer_start_time=None,
            )

        device = self._devices.get(device_id)
        if device is not None:
            self._devices[device_id] = replace(
                device,
                timer_active=False,
                timer_duration=0,
                motor_state=MotorState.OFF,
                ultrasonic=False,
            )
            self._notify_listeners(self._devices[device_id])

    def clear(self) -> None:
        self._devices.clear()
        self._states.clear()
