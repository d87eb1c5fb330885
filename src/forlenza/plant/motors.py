"""Simulated motors with inertia, start-up sequencing and fault detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from math import exp, isfinite

from forlenza.domain.errors import InterlockLatched, InvalidCommand, InvalidMotor, InvalidSpeed
from forlenza.domain.models import MotorState, MotorStatus

logger = logging.getLogger(__name__)

_ACTIVE_STATES = frozenset({MotorState.STARTING, MotorState.RUNNING})


@dataclass(frozen=True, slots=True)
class MotorConfig:
    """Drive limits shared by every motor in the bank."""

    max_speed: float = 3000.0
    ramp_rate: float = 600.0
    time_constant_s: float = 0.5
    speed_tolerance: float = 1.0
    fault_deviation: float = 50.0
    fault_ticks: int = 3
    initial_targets: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if self.max_speed <= 0.0:
            raise ValueError("max_speed must be > 0")
        if self.ramp_rate <= 0.0:
            raise ValueError("ramp_rate must be > 0")
        if self.time_constant_s <= 0.0:
            raise ValueError("time_constant_s must be > 0")
        if self.speed_tolerance <= 0.0:
            raise ValueError("speed_tolerance must be > 0")
        if self.fault_deviation <= 0.0:
            raise ValueError("fault_deviation must be > 0")
        if self.fault_ticks <= 0:
            raise ValueError("fault_ticks must be > 0")
        for target in self.initial_targets:
            if not 0.0 <= target <= self.max_speed:
                raise ValueError(f"initial target {target} outside [0, {self.max_speed}]")


@dataclass(slots=True)
class Motor:
    """Mutable state of one simulated motor, owned by `MotorBank`."""

    motor_id: str
    state: MotorState = MotorState.STOPPED
    target_speed: float = 0.0
    current_speed: float = 0.0
    fault_reason: str | None = None
    load_drag: float = 0.0
    deviation_ticks: int = 0

    def status(self) -> MotorStatus:
        return MotorStatus(
            motor_id=self.motor_id,
            state=self.state,
            target_speed=self.target_speed,
            current_speed=self.current_speed,
            fault_reason=self.fault_reason,
        )


class MotorBank:
    """Owns every simulated motor and advances them once per tick."""

    def __init__(self, count: int, config: MotorConfig) -> None:
        if count < 0:
            raise ValueError("motor count must be >= 0")

        self._config = config
        self._motors: dict[str, Motor] = {
            f"motor_{index + 1}": Motor(motor_id=f"motor_{index + 1}") for index in range(count)
        }
        for motor_id, target in zip(self._motors, config.initial_targets):
            self.set_target(motor_id, target)

    @property
    def config(self) -> MotorConfig:
        return self._config

    @property
    def motor_ids(self) -> tuple[str, ...]:
        return tuple(self._motors)

    def statuses(self) -> tuple[MotorStatus, ...]:
        return tuple(motor.status() for motor in self._motors.values())

    def status(self, motor_id: str) -> MotorStatus:
        return self._get(motor_id).status()

    def set_target(self, motor_id: str, speed: float) -> None:
        """Request a new target speed; rejected requests change nothing."""
        motor = self._get(motor_id)
        if not isfinite(speed) or not 0.0 <= speed <= self._config.max_speed:
            raise InvalidSpeed(
                f"speed {speed} for {motor_id} outside [0, {self._config.max_speed}]"
            )
        if motor.state == MotorState.EMERGENCY_STOPPED:
            raise InterlockLatched(f"{motor_id} is emergency stopped; reset the interlock first")
        if motor.state == MotorState.FAULTED:
            raise InvalidCommand(f"{motor_id} is faulted ({motor.fault_reason}); clear the fault first")

        motor.target_speed = float(speed)
        if motor.state == MotorState.STOPPED and speed > 0.0:
            motor.state = MotorState.STARTING
            motor.deviation_ticks = 0
            logger.info("%s starting toward %.0f rpm", motor_id, speed)

    def apply_load(self, motor_id: str, drag_rpm_per_s: float) -> None:
        """Apply a braking load that pulls the motor off its expected trajectory."""
        if not isfinite(drag_rpm_per_s) or drag_rpm_per_s < 0.0:
            raise ValueError("drag_rpm_per_s must be a finite value >= 0")
        self._get(motor_id).load_drag = float(drag_rpm_per_s)

    def tick(self, dt: float) -> tuple[MotorStatus, ...]:
        """Advance every motor by one step of simulated inertia."""
        if dt <= 0.0:
            raise ValueError("dt must be > 0")
        for motor in self._motors.values():
            self._advance(motor, dt)
        return self.statuses()

    def emergency_stop_all(self) -> None:
        """Force every motor to EMERGENCY_STOPPED; repeated calls are no-ops."""
        for motor in self._motors.values():
            if motor.state == MotorState.EMERGENCY_STOPPED:
                continue
            motor.state = MotorState.EMERGENCY_STOPPED
            motor.target_speed = 0.0
            motor.current_speed = 0.0
            motor.deviation_ticks = 0
            logger.warning("%s emergency stopped", motor.motor_id)

    def reset_emergency_stop(self) -> None:
        """Return emergency-stopped motors to STOPPED with a zero target."""
        for motor in self._motors.values():
            if motor.state != MotorState.EMERGENCY_STOPPED:
                continue
            motor.state = MotorState.STOPPED
            motor.target_speed = 0.0
            motor.current_speed = 0.0
            motor.fault_reason = None
            motor.load_drag = 0.0

    def clear_fault(self, motor_id: str) -> None:
        """Acknowledge a fault once the motor has coasted to a stop."""
        motor = self._get(motor_id)
        if motor.state != MotorState.FAULTED:
            raise InvalidCommand(f"{motor_id} is not faulted")
        if motor.current_speed > 0.0:
            raise InvalidCommand(f"{motor_id} is still spinning down ({motor.current_speed:.0f} rpm)")
        motor.state = MotorState.STOPPED
        motor.fault_reason = None
        motor.load_drag = 0.0
        motor.deviation_ticks = 0
        logger.info("%s fault cleared", motor_id)

    def _get(self, motor_id: str) -> Motor:
        motor = self._motors.get(motor_id)
        if motor is None:
            raise InvalidMotor(f"unknown motor: {motor_id}")
        return motor

    def _approach(self, current: float, target: float, dt: float) -> float:
        diff = target - current
        if abs(diff) <= self._config.speed_tolerance:
            return target
        step = min(self._config.ramp_rate * dt, abs(diff) * (1.0 - exp(-dt / self._config.time_constant_s)))
        return current + step if diff > 0.0 else current - step

    def _advance(self, motor: Motor, dt: float) -> None:
        if motor.state == MotorState.EMERGENCY_STOPPED:
            return

        if motor.state == MotorState.FAULTED:
            motor.current_speed = max(0.0, motor.current_speed - self._config.ramp_rate * dt)
            return

        expected = self._approach(motor.current_speed, motor.target_speed, dt)
        actual = expected
        if motor.load_drag > 0.0 and expected > 0.0:
            actual = expected - motor.load_drag * dt
        motor.current_speed = min(max(actual, 0.0), self._config.max_speed)

        if motor.state not in _ACTIVE_STATES:
            return

        if abs(expected - motor.current_speed) > self._config.fault_deviation:
            motor.deviation_ticks += 1
        else:
            motor.deviation_ticks = 0

        if motor.deviation_ticks >= self._config.fault_ticks:
            motor.state = MotorState.FAULTED
            motor.fault_reason = (
                f"speed deviated from expected trajectory for {motor.deviation_ticks} ticks"
            )
            motor.target_speed = 0.0
            logger.warning("%s faulted: %s", motor.motor_id, motor.fault_reason)
            return

        if abs(motor.current_speed - motor.target_speed) <= self._config.speed_tolerance:
            if motor.target_speed == 0.0:
                motor.state = MotorState.STOPPED
                motor.current_speed = 0.0
            elif motor.state == MotorState.STARTING:
                motor.state = MotorState.RUNNING
                logger.info("%s running at %.0f rpm", motor.motor_id, motor.current_speed)
