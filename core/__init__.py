"""
Core monitoring package.

Device state tracking, timer expiry handling and the controller that runs
both as background loops. No transport dependencies beyond the API client.
"""
from .data_models import Device, DeviceCommand, MotorState, TrackedState
from .monitor_controller import MonitorController, MonitorState
from .state_table import DeviceStateTable
from .visibility import VisibilitySource

__all__ = [
    'Device',
    'DeviceCommand',
    'MotorState',
    'TrackedState',
    'MonitorController',
    'MonitorState',
    'DeviceStateTable',
    'VisibilitySource'
]
