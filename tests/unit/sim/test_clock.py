"""Unit tests for tick ordering, command application and the shutdown latch."""

from __future__ import annotations

import numpy as np
import pytest

from forlenza.config import PlantConfig, plant_config_from_mapping
from forlenza.domain.errors import InvalidCommand
from forlenza.domain.models import ClockState, MotorState, PlantSnapshot, SystemState
from forlenza.safety import InterlockDecision
from forlenza.sim import (
    EmergencyStop,
    ForceSensor,
    Pause,
    ReleaseSensor,
    ResetEmergencyShutdown,
    Resume,
    SetMotorTarget,
    Shutdown,
    SimulationClock,
    build_session,
)
from forlenza.sim.builder import PlantSession


def _session(**overrides: object) -> PlantSession:
    return build_session(PlantConfig(**overrides), sleep=lambda _: None)


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[str] = []


class _FakeSensors:
    def __init__(self, recorder: _Recorder) -> None:
        self._recorder = recorder

    def tick(self, dt: float) -> tuple:
        self._recorder.calls.append("sensors")
        return ()

    def readings(self) -> tuple:
        return ()


class _FakeMotors:
    def __init__(self, recorder: _Recorder) -> None:
        self._recorder = recorder

    def tick(self, dt: float) -> tuple:
        self._recorder.calls.append("motors")
        return ()

    def statuses(self) -> tuple:
        return ()


class _FakeMonitor:
    def __init__(self, recorder: _Recorder) -> None:
        self._recorder = recorder
        self.last_decision = InterlockDecision(state=SystemState.NORMAL)

    def evaluate(self, sensor_readings: object, motor_states: object) -> SystemState:
        self._recorder.calls.append("interlock")
        return SystemState.NORMAL


def test_tick_order_is_sensors_motors_interlock_publish() -> None:
    recorder = _Recorder()
    clock = SimulationClock(_FakeSensors(recorder), _FakeMotors(recorder), _FakeMonitor(recorder))
    clock.subscribe(lambda snapshot: recorder.calls.append("publish"))
    clock.start()

    clock.tick()
    clock.tick()

    assert recorder.calls == ["sensors", "motors", "interlock", "publish"] * 2
    assert clock.tick_count == 2


def test_seeded_plant_stays_normal_for_100_ticks() -> None:
    session = _session(seed=1234)
    session.clock.start()

    for _ in range(100):
        snapshot = session.clock.tick()
        assert snapshot.system_state == SystemState.NORMAL

    assert snapshot.tick == 100
    assert snapshot.elapsed_s == pytest.approx(100.0)


def test_unforced_temperature_drift_raises_warning_without_latching() -> None:
    config = plant_config_from_mapping(
        {
            "sensors": {"temperature": {"count": 1, "setpoint": 29.0}, "pressure": {"count": 0}},
            "motors": {"count": 0},
        }
    )
    session = build_session(config, sleep=lambda _: None)
    session.clock.start()

    for _ in range(100):
        snapshot = session.clock.tick()

    (reading,) = snapshot.sensors
    assert reading.forced is False
    assert 26.0 < reading.value <= 30.0
    assert snapshot.system_state == SystemState.WARNING
    assert session.monitor.latched is False
    assert any("warning limit breached for temp_1" in reason for reason in snapshot.interlock_reasons)


def test_same_seed_gives_same_snapshots() -> None:
    first, second = _session(seed=5), _session(seed=5)
    first.clock.start()
    second.clock.start()

    for _ in range(25):
        assert first.clock.tick() == second.clock.tick()


def test_snapshot_is_immutable_copy() -> None:
    session = _session()
    session.clock.start()
    snapshot = session.clock.tick()

    assert isinstance(snapshot.sensors, tuple)
    assert isinstance(snapshot.motors, tuple)
    with pytest.raises(AttributeError):
        snapshot.system_state = SystemState.WARNING  # type: ignore[misc]

    session.clock.tick()
    assert snapshot.tick == 1


def test_commands_apply_only_at_tick_boundary() -> None:
    session = _session()
    session.clock.start()
    session.clock.submit(SetMotorTarget(motor_id="motor_3", speed=900.0))

    assert session.motors.status("motor_3").target_speed == 0.0

    outcomes = session.clock.apply_pending()

    assert [outcome.accepted for outcome in outcomes] == [True]
    assert session.motors.status("motor_3").target_speed == 900.0


def test_invalid_speed_is_reported_and_leaves_state_unchanged() -> None:
    session = _session()
    session.clock.start()
    session.clock.tick()
    before = session.motors.status("motor_1")
    seen = []
    session.clock.subscribe_outcomes(seen.append)

    session.clock.submit(SetMotorTarget(motor_id="motor_1", speed=9000.0))
    session.clock.submit(SetMotorTarget(motor_id="motor_42", speed=100.0))
    outcomes = session.clock.apply_pending()

    assert [outcome.accepted for outcome in outcomes] == [False, False]
    assert "outside" in (outcomes[0].error or "")
    assert "unknown motor" in (outcomes[1].error or "")
    assert session.motors.status("motor_1") == before
    assert list(outcomes) == seen
    assert session.clock.tick().system_state == SystemState.NORMAL


def test_submit_rejects_non_command_objects() -> None:
    with pytest.raises(InvalidCommand, match="unsupported command"):
        _session().clock.submit("set motor_1 100")  # type: ignore[arg-type]


def test_injected_trip_stops_all_motors_within_the_same_tick() -> None:
    session = _session()
    session.clock.start()
    for _ in range(5):
        session.clock.tick()

    session.clock.submit(ForceSensor(sensor_id="press_1", value=110.0 + 1.0))
    session.clock.apply_pending()
    snapshot = session.clock.tick()

    assert snapshot.system_state == SystemState.EMERGENCY_SHUTDOWN
    assert all(status.state == MotorState.EMERGENCY_STOPPED for status in snapshot.motors)
    assert any("press_1" in reason for reason in snapshot.interlock_reasons)


def test_latch_cannot_be_outrun_by_the_clock() -> None:
    session = _session()
    clock = session.clock
    clock.start()
    clock.submit(ForceSensor(sensor_id="temp_2", value=36.0))
    clock.apply_pending()
    clock.tick()

    clock.submit(ReleaseSensor(sensor_id="temp_2"))
    clock.apply_pending()
    for _ in range(50):
        snapshot = clock.tick()
        assert snapshot.system_state == SystemState.EMERGENCY_SHUTDOWN
        assert all(status.state == MotorState.EMERGENCY_STOPPED for status in snapshot.motors)

    clock.submit(SetMotorTarget(motor_id="motor_1", speed=500.0))
    (outcome,) = clock.apply_pending()
    assert outcome.accepted is False
    assert "reset the interlock" in (outcome.error or "")

    clock.submit(ResetEmergencyShutdown())
    assert clock.apply_pending()[0].accepted is True
    snapshot = clock.tick()

    assert snapshot.system_state == SystemState.NORMAL
    assert all(status.state == MotorState.STOPPED for status in snapshot.motors)


def test_reset_without_latch_is_rejected() -> None:
    session = _session()
    session.clock.submit(ResetEmergencyShutdown())

    (outcome,) = session.clock.apply_pending()

    assert outcome.accepted is False
    assert "no emergency shutdown" in (outcome.error or "")


def test_operator_emergency_stop_latches() -> None:
    session = _session()
    session.clock.start()
    session.clock.submit(EmergencyStop(reason="drill"))
    session.clock.apply_pending()

    assert session.clock.snapshot().system_state == SystemState.EMERGENCY_SHUTDOWN
    snapshot = session.clock.tick()
    assert snapshot.system_state == SystemState.EMERGENCY_SHUTDOWN
    assert any("drill" in reason for reason in snapshot.interlock_reasons)


def test_run_stops_after_max_ticks() -> None:
    session = _session()

    executed = session.clock.run(max_ticks=5)

    assert executed == 5
    assert session.clock.state == ClockState.STOPPED
    assert session.clock.tick_count == 5
    with pytest.raises(RuntimeError, match="stopped"):
        session.clock.tick()
    with pytest.raises(RuntimeError, match="cannot be restarted"):
        session.clock.start()


def test_paused_clock_does_not_tick_until_resumed() -> None:
    sleeps: list[float] = []
    session = build_session(PlantConfig(), sleep=sleeps.append)
    clock = session.clock

    def _sleep(period: float) -> None:
        sleeps.append(period)
        if len(sleeps) == 3:
            assert clock.tick_count == 0
            clock.submit(Resume())

    clock._sleep = _sleep
    clock.submit(Pause())

    executed = clock.run(max_ticks=2)

    assert executed == 2
    assert len(sleeps) == 4


def test_shutdown_command_stops_the_loop() -> None:
    session = _session()
    clock = session.clock

    def _publish(snapshot: PlantSnapshot) -> None:
        if snapshot.tick == 3:
            clock.submit(Shutdown())

    clock.subscribe(_publish)

    assert clock.run() == 3
    assert clock.state == ClockState.STOPPED


def test_stop_from_subscriber_completes_in_flight_tick() -> None:
    session = _session()
    clock = session.clock
    seen: list[int] = []

    def _publish(snapshot: PlantSnapshot) -> None:
        seen.append(snapshot.tick)
        clock.stop()

    clock.subscribe(_publish)

    assert clock.run() == 1
    assert seen == [1]
    assert clock.last_snapshot is not None and clock.last_snapshot.tick == 1


def test_commands_after_stop_are_rejected() -> None:
    session = _session()
    session.clock.stop()

    with pytest.raises(InvalidCommand, match="stopped"):
        session.clock.submit(Pause())


def test_reentrant_tick_is_refused() -> None:
    session = _session()
    session.clock.start()
    session.clock.subscribe(lambda snapshot: session.clock.tick())

    with pytest.raises(RuntimeError, match="already in progress"):
        session.clock.tick()


def test_apply_pending_inside_tick_is_refused() -> None:
    session = _session()
    session.clock.start()
    session.clock.subscribe(lambda snapshot: session.clock.apply_pending())

    with pytest.raises(RuntimeError, match="tick is in progress"):
        session.clock.tick()


def test_explicit_generator_is_used() -> None:
    config = PlantConfig()
    a = build_session(config, rng=np.random.default_rng(99), sleep=lambda _: None)
    b = build_session(config, rng=np.random.default_rng(99), sleep=lambda _: None)
    a.clock.start()
    b.clock.start()

    assert a.clock.tick().sensors == b.clock.tick().sensors
