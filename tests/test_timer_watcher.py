"""Tests for the Timer Expiry Watcher."""
import asyncio
from dataclasses import replace

import pytest

from conftest import T0, make_device
from core.data_models import MotorState
from core.state_tracker import StateTracker
from core.timer_watcher import TimerExpiryWatcher, elapsed_seconds


def start_timer(table, device_id, duration, started_at):
    """Seed a device whose countdown began at ``started_at``."""
    device = make_device(device_id, motor_state=MotorState.ON, timer_active=True,
                         timer_duration=duration)
    table.seed([device], started_at)
    state = table.get_state(device_id)
    table.set_state(device_id, replace(state, timer_start_time=started_at))


class TestElapsed:
    def test_floor_of_elapsed_seconds(self, table):
        start_timer(table, "d1", 10, T0)
        assert elapsed_seconds(table.get_state("d1"), T0 + 9.999) == 9

    @pytest.mark.parametrize("changes", [
        {"timer_active": False},
        {"timer_start_time": None},
        {"timer_duration": None},
        {"timer_duration": 0},
    ])
    def test_ineligible_states(self, table, changes):
        start_timer(table, "d1", 10, T0)
        state = replace(table.get_state("d1"), **changes)
        assert elapsed_seconds(state, T0 + 100) is None


class TestWatcherTick:
    def test_fires_exactly_once_at_expiry(self, table, sender, clock):
        start_timer(table, "d1", 10, T0)
        watcher = TimerExpiryWatcher(table, sender, clock=clock)

        clock.now = T0 + 9
        assert asyncio.run(watcher.tick()) == 0
        assert sender.calls == []

        clock.now = T0 + 10
        assert asyncio.run(watcher.tick()) == 1
        assert sender.payloads_for("d1") == [{"motor": "OFF", "ultrasonic": False}]

        clock.now = T0 + 11
        assert asyncio.run(watcher.tick()) == 0
        assert len(sender.calls) == 1

    def test_success_clears_timer_everywhere(self, table, sender, clock):
        start_timer(table, "d1", 10, T0)
        watcher = TimerExpiryWatcher(table, sender, clock=clock)

        clock.now = T0 + 12
        asyncio.run(watcher.tick())

        state = table.get_state("d1")
        assert state.timer_active is False
        assert state.timer_duration == 0
        assert state.motor_state is MotorState.OFF
        assert state.sensor_flag is False
        assert state.timer_start_time is None
        assert state.timer_end_command_sent is True

        device = table.get_device("d1")
        assert (device.timer_active, device.motor_state, device.ultrasonic) == (False, MotorState.OFF, False)

    def test_failure_is_not_retried(self, table, failing_sender, clock):
        start_timer(table, "d1", 10, T0)
        watcher = TimerExpiryWatcher(table, failing_sender, clock=clock)

        for offset in (10, 11, 12, 60):
            clock.now = T0 + offset
            asyncio.run(watcher.tick())

        assert len(failing_sender.calls) == 1
        state = table.get_state("d1")
        assert state.timer_end_command_sent is True
        assert state.timer_active is True

    def test_guard_armed_before_command_is_sent(self, table, clock):
        observed = []

        class InspectingSender:
            async def send_device_command(self, device_id, command):
                observed.append(table.get_state(device_id).timer_end_command_sent)
                return {}

        start_timer(table, "d1", 5, T0)
        watcher = TimerExpiryWatcher(table, InspectingSender(), clock=clock)
        clock.now = T0 + 5
        asyncio.run(watcher.tick())

        assert observed == [True]

    def test_guard_rearmed_by_new_countdown(self, table, failing_sender, clock):
        start_timer(table, "d1", 10, T0)
        watcher = TimerExpiryWatcher(table, failing_sender, clock=clock)
        tracker = StateTracker(table, failing_sender, clock=clock)

        clock.now = T0 + 10
        asyncio.run(watcher.tick())
        assert len(failing_sender.calls) == 1

        # timer reported off, then a fresh countdown starts
        table.replace_devices([make_device("d1", motor_state=MotorState.ON, timer_active=False)],
                              clock())
        asyncio.run(tracker.tick())
        assert table.get_state("d1").timer_end_command_sent is False

        table.replace_devices([make_device("d1", motor_state=MotorState.ON, timer_active=True,
                                           timer_duration=10)], clock())
        asyncio.run(tracker.tick())
        asyncio.run(watcher.tick())

        assert len(failing_sender.calls) == 2

    def test_skips_devices_without_timer(self, table, sender, clock):
        table.seed([make_device("idle"), make_device("nodur", timer_active=True)], clock())
        watcher = TimerExpiryWatcher(table, sender, clock=clock)

        clock.advance(10_000)
        assert asyncio.run(watcher.tick()) == 0
        assert sender.calls == []
