"""pumpbackend/service.py - wires the monitor to its collaborators

Fetches the fleet over HTTP, starts the monitor controller and keeps its
device list fresh from the realtime feed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from config.base import BaseConfiguration
from core.api_client import AsyncCommandSender, DeviceAPIClient
from core.data_models import Device
from core.monitor_controller import MonitorController
from core.periodic import PeriodicTask
from core.visibility import VisibilitySource

from .device_feed import DeviceFeed

logger = logging.getLogger(__name__)


class MonitorService:
    """Runs background monitoring for every device on the account."""

    def __init__(
        self,
        config: BaseConfiguration,
        *,
        api_client: Optional[DeviceAPIClient] = None,
        feed: Optional[DeviceFeed] = None,
        visibility: Optional[VisibilitySource] = None,
    ) -> None:
        self.config = config
        self.api_client = api_client or DeviceAPIClient(
            config.api_base_url, config.api_token, timeout=config.api_timeout
        )
        self.sender = AsyncCommandSender(self.api_client)
        self.visibility = visibility or VisibilitySource(foreground=config.start_foreground)
        self.controller = MonitorController(
            self.sender,
            self.visibility,
            tracker_interval=config.tracker_interval,
            watcher_interval=config.watcher_interval,
        )
        if feed is None and config.feed_enabled:
            feed = DeviceFeed(
                config.mqtt_host,
                config.mqtt_port,
                topic_prefix=config.mqtt_topic_prefix,
                username=config.mqtt_username,
                password=config.mqtt_password,
                tls=config.mqtt_tls,
            )
        self.feed = feed
        self._refresh_task = PeriodicTask("fleet-refresh", config.refresh_interval, self.refresh)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def start(self) -> None:
        logger.info("Starting monitor service...")
        self._loop = asyncio.get_running_loop()
        devices = await self.sender.fetch_devices()
        self.controller.start(devices)

        if self.feed is not None:
            self.feed.set_devices(devices)
            self.feed.add_listener(self._on_feed_update)
            self.feed.start()
            self.controller.table.add_listener(self._on_device_patched)
        self._refresh_task.start(self._loop)
        logger.info("Monitor service started with %d devices", len(devices))

    async def refresh(self) -> List[Device]:
        """Re-fetch the fleet and hand it to the controller."""
        devices = await self.sender.fetch_devices()
        self.controller.update_devices(devices)
        if self.feed is not None:
            self.feed.set_devices(devices)
        return devices

    async def stop(self) -> None:
        logger.info("Stopping monitor service...")
        self._refresh_task.stop()
        if self.feed is not None:
            self.feed.remove_listener(self._on_feed_update)
            self.controller.table.remove_listener(self._on_device_patched)
            await asyncio.to_thread(self.feed.stop)
        self.controller.stop()
        self.api_client.close()
        logger.info("Monitor service stopped")

    def _on_feed_update(self, devices: List[Device]) -> None:
        # called from the MQTT network thread
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.controller.update_devices, devices)

    def _on_device_patched(self, device: Device) -> None:
        # keep the feed from replaying a timer we already cleared
        if self.feed is not None:
            self.feed.update_snapshot(device)
