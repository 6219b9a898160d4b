"""
Monitoring Controller.

Owns the Device State Table and the on/off lifecycle of the two background
loops. Loops run only while monitoring is active and the hosting
application is backgrounded; visibility transitions start and stop them.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Iterable, Optional

from .api_client import CommandSender
from .data_models import Device
from .periodic import PeriodicTask
from .state_table import DeviceStateTable
from .state_tracker import DEFAULT_TRACKER_INTERVAL, StateTracker
from .timer_watcher import DEFAULT_WATCHER_INTERVAL, TimerExpiryWatcher
from .visibility import VisibilitySource

logger = logging.getLogger(__name__)


class MonitorState(Enum):
    """Lifecycle state of the controller."""
    IDLE = "idle"
    ACTIVE_FOREGROUND = "active_foreground"  # monitoring, loops stopped
    ACTIVE_BACKGROUND = "active_background"  # monitoring, loops running


class MonitorController:
    """
    Coordinates the state tracker and timer watcher for a device fleet.

    All methods must be called from the event loop thread. Visibility
    changes may arrive from any thread; they are handed to the loop that
    was running when monitoring started.
    """

    def __init__(
        self,
        sender: CommandSender,
        visibility: Optional[VisibilitySource] = None,
        *,
        tracker_interval: float = DEFAULT_TRACKER_INTERVAL,
        watcher_interval: float = DEFAULT_WATCHER_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.visibility = visibility or VisibilitySource(foreground=False)
        self.clock = clock
        self.table = DeviceStateTable()
        self.tracker = StateTracker(self.table, sender, clock=clock)
        self.watcher = TimerExpiryWatcher(self.table, sender, clock=clock)

        self._tracker_task = PeriodicTask("state-tracker", tracker_interval, self.run_tracker_once)
        self._watcher_task = PeriodicTask("timer-watcher", watcher_interval, self.run_watcher_once)
        self._monitoring = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ------------------------------------------------------------------
    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def loops_running(self) -> bool:
        return self._tracker_task.running or self._watcher_task.running

    @property
    def state(self) -> MonitorState:
        if not self._monitoring:
            return MonitorState.IDLE
        if self.loops_running:
            return MonitorState.ACTIVE_BACKGROUND
        return MonitorState.ACTIVE_FOREGROUND

    # ------------------------------------------------------------------
    def start(self, devices: Iterable[Device]) -> None:
        """Begin monitoring ``devices``. Repeated calls are ignored."""
        if self._monitoring:
            logger.debug("Monitoring already active, ignoring start")
            return

        self._loop = asyncio.get_running_loop()
        self.table.seed(devices, self.clock())
        self._monitoring = True
        self.visibility.add_listener(self._on_visibility_change)
        logger.info("Monitoring started for %d devices", len(self.table))

        if not self.visibility.is_foreground:
            self._start_loops()

    def stop(self) -> None:
        """Stop monitoring and forget every device."""
        self._monitoring = False
        self.visibility.remove_listener(self._on_visibility_change)
        self._stop_loops()
        self.table.clear()
        logger.info("Monitoring stopped")

    def update_devices(self, devices: Iterable[Device]) -> None:
        """Replace the observed device list after a fresh fetch."""
        if not self._monitoring:
            logger.debug("Ignoring device update while idle")
            return
        self.table.replace_devices(devices, self.clock())

    # ------------------------------------------------------------------
    async def run_tracker_once(self) -> int:
        if not self._monitoring:
            return 0
        return await self.tracker.tick()

    async def run_watcher_once(self) -> int:
        if not self._monitoring:
            return 0
        return await self.watcher.tick()

    # ------------------------------------------------------------------
    def _start_loops(self) -> None:
        if not self.loops_running:
            logger.info("Starting background checks")
        self._tracker_task.start(self._loop)
        self._watcher_task.start(self._loop)

    def _stop_loops(self) -> None:
        if not self.loops_running:
            return
        logger.info("Stopping background checks")
        self._tracker_task.stop()
        self._watcher_task.stop()

    def _on_visibility_change(self, foreground: bool) -> None:
        if self._loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if current is self._loop:
            self._apply_visibility(foreground)
        else:
            self._loop.call_soon_threadsafe(self._apply_visibility, foreground)

    def _apply_visibility(self, foreground: bool) -> None:
        if not self._monitoring:
            return
        if foreground:
            self._stop_loops()
        else:
            self._start_loops()
