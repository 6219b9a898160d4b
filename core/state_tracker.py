"""
State Tracker.

Low-frequency pass over the fleet that notices a motor switched off while
its countdown was still pending and clears that countdown on the device.
A failed correction is not remembered; the next pass evaluates the fleet
again from whatever state it then observes.
"""
import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from .api_client import CommandSender
from .data_models import CLEAR_TIMER_COMMAND, Device, MotorState, TrackedState
from .state_table import DeviceStateTable, refreshed_state

logger = logging.getLogger(__name__)

DEFAULT_TRACKER_INTERVAL = 5 * 60.0


def is_timer_anomaly(previous: Optional[TrackedState], device: Device) -> bool:
    """True when the motor went off underneath a running countdown."""
    if previous is None:
        return False
    return (
        previous.timer_active
        and previous.motor_state is MotorState.ON
        and device.motor_state is MotorState.OFF
    )


class StateTracker:
    """Compares fresh snapshots against tracked state once per tick."""

    def __init__(
        self,
        table: DeviceStateTable,
        sender: CommandSender,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.table = table
        self.sender = sender
        self.clock = clock

    async def tick(self) -> int:
        """
        Process every device once.

        Returns:
            Number of corrections delivered successfully
        """
        corrected = 0
        for device in self.table.devices():
            if device.id not in self.table:
                # fleet replaced while a command was in flight
                continue
            if await self._check_device(device):
                corrected += 1
        return corrected

    async def _check_device(self, device: Device) -> bool:
        previous = self.table.get_state(device.id)
        corrected = False

        if is_timer_anomaly(previous, device):
            logger.warning(
                "Motor of %s turned off while its timer was active, clearing timer", device.id
            )
            try:
                await self.sender.send_device_command(device.id, CLEAR_TIMER_COMMAND)
            except Exception as e:
                logger.error("Failed to send timer clear command for device %s: %s", device.id, e)
            else:
                self.table.apply_cleared_timer(device.id)
                corrected = True

            # the watcher may have run while the command was in flight
            device = self.table.get_device(device.id) or device
            current = self.table.get_state(device.id)
            if current is not None and current.timer_end_command_sent:
                previous = replace(previous, timer_end_command_sent=True)

        if device.id in self.table:
            self.table.set_state(device.id, refreshed_state(previous, device, self.clock()))
        return corrected
