"""Fixed-period simulation clock that owns the tick ordering."""

from __future__ import annotations

import logging
import queue
import time
from typing import Callable

from forlenza.domain.errors import InvalidCommand, OperatorInputError, UnknownSensor
from forlenza.domain.models import ClockState, PlantSnapshot, SystemState
from forlenza.plant.motors import MotorBank
from forlenza.plant.sensors import SensorBank
from forlenza.safety.interlock import InterlockMonitor
from forlenza.sim.commands import (
    COMMAND_TYPES,
    ClearMotorFault,
    Command,
    CommandOutcome,
    EmergencyStop,
    ForceSensor,
    Pause,
    ReleaseSensor,
    ResetEmergencyShutdown,
    Resume,
    SetMotorTarget,
    Shutdown,
)

logger = logging.getLogger(__name__)

SnapshotSubscriber = Callable[[PlantSnapshot], None]
OutcomeSubscriber = Callable[[CommandOutcome], None]


class SimulationClock:
    """Drive sensors, motors and the interlock in a single ordered timeline.

    Each tick advances the sensor bank, then the motor bank, then evaluates the
    interlock against the fresh readings and finally publishes an immutable
    snapshot. Commands are queued and only applied between ticks.
    """

    def __init__(
        self,
        sensors: SensorBank,
        motors: MotorBank,
        monitor: InterlockMonitor,
        *,
        tick_period_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if tick_period_s <= 0.0:
            raise ValueError("tick_period_s must be > 0")

        self._sensors = sensors
        self._motors = motors
        self._monitor = monitor
        self._tick_period_s = tick_period_s
        self._sleep = sleep

        self._state = ClockState.IDLE
        self._commands: queue.SimpleQueue[Command] = queue.SimpleQueue()
        self._snapshot_subscribers: list[SnapshotSubscriber] = []
        self._outcome_subscribers: list[OutcomeSubscriber] = []
        self._in_tick = False
        self._tick_count = 0
        self._elapsed_s = 0.0
        self._last_snapshot: PlantSnapshot | None = None

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def tick_period_s(self) -> float:
        return self._tick_period_s

    @property
    def last_snapshot(self) -> PlantSnapshot | None:
        return self._last_snapshot

    def subscribe(self, callback: SnapshotSubscriber) -> None:
        """Register a consumer of per-tick snapshots."""
        self._snapshot_subscribers.append(callback)

    def subscribe_outcomes(self, callback: OutcomeSubscriber) -> None:
        """Register a consumer of command results."""
        self._outcome_subscribers.append(callback)

    def start(self) -> None:
        if self._state == ClockState.STOPPED:
            raise RuntimeError("clock is stopped and cannot be restarted")
        if self._state != ClockState.RUNNING:
            self._transition(ClockState.RUNNING)

    def pause(self) -> None:
        if self._state == ClockState.RUNNING:
            self._transition(ClockState.PAUSED)

    def resume(self) -> None:
        if self._state == ClockState.PAUSED:
            self._transition(ClockState.RUNNING)

    def stop(self) -> None:
        """Mark the clock terminal; safe to call from a command handler."""
        if self._state != ClockState.STOPPED:
            self._transition(ClockState.STOPPED)

    def submit(self, command: Command) -> None:
        """Queue a command for the next tick boundary; thread-safe."""
        if not isinstance(command, COMMAND_TYPES):
            raise InvalidCommand(f"unsupported command object: {command!r}")
        if self._state == ClockState.STOPPED:
            raise InvalidCommand("clock is stopped")
        self._commands.put(command)

    def apply_pending(self) -> tuple[CommandOutcome, ...]:
        """Apply every queued command atomically between ticks."""
        if self._in_tick:
            raise RuntimeError("commands cannot be applied while a tick is in progress")

        outcomes: list[CommandOutcome] = []
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                break

            if self._state == ClockState.STOPPED:
                outcome = CommandOutcome(command=command, accepted=False, error="clock is stopped")
            else:
                try:
                    self._apply(command)
                except OperatorInputError as exc:
                    logger.info("command rejected: %r (%s)", command, exc)
                    outcome = CommandOutcome(command=command, accepted=False, error=str(exc))
                else:
                    outcome = CommandOutcome(command=command, accepted=True)

            outcomes.append(outcome)
            for callback in self._outcome_subscribers:
                callback(outcome)

        return tuple(outcomes)

    def tick(self) -> PlantSnapshot:
        """Advance simulated time by exactly one period."""
        if self._in_tick:
            raise RuntimeError("tick is already in progress")
        if self._state == ClockState.STOPPED:
            raise RuntimeError("clock is stopped")

        self._in_tick = True
        try:
            dt = self._tick_period_s
            readings = self._sensors.tick(dt)
            self._motors.tick(dt)
            system_state = self._monitor.evaluate(readings, self._motors.statuses())

            self._tick_count += 1
            self._elapsed_s += dt
            snapshot = self._build_snapshot(system_state=system_state)
            self._last_snapshot = snapshot
            for callback in self._snapshot_subscribers:
                callback(snapshot)
        finally:
            self._in_tick = False

        return snapshot

    def snapshot(self) -> PlantSnapshot:
        """Current plant state without advancing time."""
        return self._build_snapshot(system_state=self._monitor.last_decision.state)

    def run(self, max_ticks: int | None = None) -> int:
        """Cooperative loop: apply commands, tick when running, wait one period.

        Returns the number of ticks executed. The loop exits once the clock is
        stopped, either by a `Shutdown` command or after `max_ticks` ticks.
        """
        if max_ticks is not None and max_ticks <= 0:
            raise ValueError("max_ticks must be > 0")
        if self._state == ClockState.IDLE:
            self.start()

        executed = 0
        while self._state != ClockState.STOPPED:
            self.apply_pending()
            if self._state == ClockState.STOPPED:
                break
            if self._state == ClockState.RUNNING:
                self.tick()
                executed += 1
                if max_ticks is not None and executed >= max_ticks:
                    self.stop()
                    break
            self._sleep(self._tick_period_s)

        self.apply_pending()
        return executed

    def _apply(self, command: Command) -> None:
        if isinstance(command, SetMotorTarget):
            self._motors.set_target(command.motor_id, command.speed)
        elif isinstance(command, Pause):
            self.pause()
        elif isinstance(command, Resume):
            self.resume()
        elif isinstance(command, ResetEmergencyShutdown):
            if not self._monitor.reset():
                raise InvalidCommand("no emergency shutdown is latched")
            self._motors.reset_emergency_stop()
        elif isinstance(command, Shutdown):
            self.stop()
        elif isinstance(command, EmergencyStop):
            self._monitor.trip(command.reason)
        elif isinstance(command, ClearMotorFault):
            self._motors.clear_fault(command.motor_id)
        elif isinstance(command, ForceSensor):
            try:
                self._sensors.force(command.sensor_id, command.value)
            except UnknownSensor as exc:
                raise InvalidCommand(f"unknown sensor: {command.sensor_id}") from exc
            except ValueError as exc:
                raise InvalidCommand(str(exc)) from exc
        elif isinstance(command, ReleaseSensor):
            try:
                self._sensors.release(command.sensor_id)
            except UnknownSensor as exc:
                raise InvalidCommand(f"unknown sensor: {command.sensor_id}") from exc
        else:
            raise InvalidCommand(f"unsupported command: {command!r}")

    def _build_snapshot(self, *, system_state: SystemState) -> PlantSnapshot:
        return PlantSnapshot(
            tick=self._tick_count,
            elapsed_s=self._elapsed_s,
            system_state=system_state,
            clock_state=self._state,
            sensors=self._sensors.readings(),
            motors=self._motors.statuses(),
            interlock_reasons=self._monitor.last_decision.reasons,
        )

    def _transition(self, target: ClockState) -> None:
        logger.info("clock %s -> %s", self._state.value, target.value)
        self._state = target
