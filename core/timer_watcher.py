"""
Timer Expiry Watcher.

High-frequency pass that turns a pump off once its countdown has elapsed.
The end-of-timer command is sent at most once per countdown: the guard is
armed before sending and only a later flip of the timer-active flag
disarms it, so a failed send is not retried.
"""
import logging
import math
import time
from dataclasses import replace
from typing import Callable, Optional

from .api_client import CommandSender
from .data_models import TIMER_END_COMMAND, TrackedState
from .state_table import DeviceStateTable

logger = logging.getLogger(__name__)

DEFAULT_WATCHER_INTERVAL = 1.0


def elapsed_seconds(state: TrackedState, now: float) -> Optional[int]:
    """Whole seconds since the countdown began, or None if not eligible."""
    if not state.timer_active or state.timer_start_time is None or not state.timer_duration:
        return None
    return math.floor(now - state.timer_start_time)


class TimerExpiryWatcher:
    """Sends the end-of-timer command when a countdown reaches zero."""

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
        Check every device once.

        Returns:
            Number of end-of-timer commands delivered successfully
        """
        fired = 0
        for device in self.table.devices():
            if await self._check_device(device.id):
                fired += 1
        return fired

    async def _check_device(self, device_id: str) -> bool:
        state = self.table.get_state(device_id)
        if state is None:
            return False

        elapsed = elapsed_seconds(state, self.clock())
        if elapsed is None or elapsed < state.timer_duration:
            return False
        if state.timer_end_command_sent:
            return False

        self.table.set_state(device_id, replace(state, timer_end_command_sent=True))
        logger.info(
            "Timer of %s elapsed (%ds of %ds), turning motor off",
            device_id, elapsed, state.timer_duration,
        )

        try:
            await self.sender.send_device_command(device_id, TIMER_END_COMMAND)
        except Exception as e:
            logger.error("Failed to send timer end command for device %s: %s", device_id, e)
            return False

        self.table.apply_cleared_timer(device_id)
        return True
