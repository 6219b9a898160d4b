"""Tests for the Device State Table and tracked-state helpers."""
import pytest

from conftest import T0, make_device
from core.data_models import Device, MotorState
from core.state_table import initial_state, refreshed_state


class TestSeeding:
    def test_start_time_estimated_for_running_timer(self, table):
        table.seed([make_device("d1", timer_active=True, timer_duration=120,
                                motor_state=MotorState.ON)], T0)

        state = table.get_state("d1")
        assert state.timer_active
        assert state.timer_start_time == T0 - 120
        assert state.timer_end_command_sent is False

    @pytest.mark.parametrize("active,duration", [
        (False, 120),
        (True, None),
        (True, 0),
        (False, None),
    ])
    def test_start_time_only_with_active_timer_and_duration(self, table, active, duration):
        table.seed([make_device("d1", timer_active=active, timer_duration=duration)], T0)
        assert table.get_state("d1").timer_start_time is None

    def test_sensor_flag_defaults_to_enabled(self, table):
        table.seed([Device(id="d1")], T0)
        state = table.get_state("d1")
        assert state.sensor_flag is True
        assert state.motor_state is MotorState.OFF
        assert state.status == "OFFLINE"

    def test_seed_discards_previous_session(self, table):
        table.seed([make_device("old", timer_active=True, timer_duration=5)], T0)
        table.seed([make_device("new")], T0 + 10)

        assert "old" not in table
        assert table.get_state("old") is None
        assert [d.id for d in table.devices()] == ["new"]

    def test_enumeration_follows_supplied_order(self, table):
        table.seed([make_device("c"), make_device("a"), make_device("b")], T0)
        assert [d.id for d in table.devices()] == ["c", "a", "b"]


class TestReplaceDevices:
    def test_retained_devices_keep_tracked_state(self, table):
        table.seed([make_device("d1", timer_active=True, timer_duration=60)], T0)
        original = table.get_state("d1")

        table.replace_devices([make_device("d1", motor_state=MotorState.ON)], T0 + 30)

        assert table.get_state("d1") is original
        assert table.get_device("d1").motor_state is MotorState.ON

    def test_membership_stays_in_sync(self, table):
        table.seed([make_device("d1"), make_device("d2")], T0)
        table.replace_devices([make_device("d2"), make_device("d3", timer_active=True,
                                                              timer_duration=10)], T0 + 5)

        assert {d.id for d in table.devices()} == {"d2", "d3"}
        assert table.get_state("d1") is None
        assert table.get_state("d3").timer_start_time == T0 + 5 - 10

    def test_set_state_rejects_unknown_device(self, table):
        table.seed([make_device("d1")], T0)
        with pytest.raises(KeyError):
            table.set_state("ghost", initial_state(make_device("ghost"), T0))


class TestApplyClearedTimer:
    def test_patches_state_and_device(self, table):
        table.seed([make_device("d1", timer_active=True, timer_duration=60,
                                motor_state=MotorState.ON, ultrasonic=True)], T0)

        table.apply_cleared_timer("d1")

        state = table.get_state("d1")
        assert (state.timer_active, state.timer_duration, state.motor_state,
                state.sensor_flag, state.timer_start_time) == (False, 0, MotorState.OFF, False, None)
        device = table.get_device("d1")
        assert (device.timer_active, device.timer_duration, device.motor_state,
                device.ultrasonic) == (False, 0, MotorState.OFF, False)
        assert device.name == "Pump d1"

    def test_unknown_device_is_ignored(self, table):
        table.apply_cleared_timer("missing")
        assert len(table) == 0


class TestRefreshedState:
    def test_start_time_preserved_while_active(self):
        previous = initial_state(make_device(timer_active=True, timer_duration=100), T0)
        refreshed = refreshed_state(previous, make_device(timer_active=True, timer_duration=100), T0 + 50)
        assert refreshed.timer_start_time == T0 - 100

    def test_start_time_computed_when_newly_active(self):
        previous = initial_state(make_device(), T0)
        refreshed = refreshed_state(previous, make_device(timer_active=True, timer_duration=30), T0 + 5)
        assert refreshed.timer_start_time == T0 + 5 - 30

    def test_start_time_cleared_when_inactive(self):
        previous = initial_state(make_device(timer_active=True, timer_duration=100), T0)
        refreshed = refreshed_state(previous, make_device(timer_active=False, timer_duration=100), T0 + 1)
        assert refreshed.timer_start_time is None

    @pytest.mark.parametrize("before,after,guard", [
        (True, False, False),
        (False, True, False),
        (True, True, True),
        (False, False, True),
    ])
    def test_guard_reset_only_on_timer_flip(self, before, after, guard):
        previous = initial_state(make_device(timer_active=before, timer_duration=10), T0)
        previous.timer_end_command_sent = True

        refreshed = refreshed_state(previous, make_device(timer_active=after, timer_duration=10), T0)

        assert refreshed.timer_end_command_sent is guard

    def test_missing_previous_is_first_observation(self):
        refreshed = refreshed_state(None, make_device(timer_active=True, timer_duration=8), T0)
        assert refreshed.timer_start_time == T0 - 8
        assert refreshed.timer_end_command_sent is False


class TestPatchListeners:
    def test_listener_receives_patched_device(self, table):
        seen = []
        table.add_listener(seen.append)
        table.seed([make_device("d1", timer_active=True, timer_duration=60)], T0)

        table.apply_cleared_timer("d1")
        table.apply_cleared_timer("missing")

        assert [d.id for d in seen] == ["d1"]
        assert seen[0].timer_active is False

    def test_listener_errors_are_contained(self, table):
        seen = []

        def broken(device):
            raise RuntimeError("listener exploded")

        table.add_listener(broken)
        table.add_listener(seen.append)
        table.seed([make_device("d1")], T0)
        table.apply_cleared_timer("d1")

        assert len(seen) == 1
        table.remove_listener(seen.append)
