"""Transport collaborators for the monitor: MQTT device feed and service wiring."""
from .device_feed import DeviceFeed
from .service import MonitorService

__all__ = [
    'DeviceFeed',
    'MonitorService'
]
