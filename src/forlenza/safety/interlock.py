"""Latching safety interlock for the simulated plant."""

from __future__ import annotations

import logging
from enum import IntEnum
from math import isfinite
from typing import Iterable, Protocol

from forlenza.domain.models import MotorState, MotorStatus, SensorReading, SystemState
from forlenza.safety.contracts import InterlockDecision, InterlockPolicy, SafetyThreshold

logger = logging.getLogger(__name__)


class _Breach(IntEnum):
    NONE = 0
    WARN = 1
    TRIP = 2


class EmergencyStopActuator(Protocol):
    """Equipment that the interlock can force into emergency stop."""

    def emergency_stop_all(self) -> None:
        ...


class InterlockMonitor:
    """Evaluate plant readings and latch emergency shutdown on any trip."""

    def __init__(self, policy: InterlockPolicy, actuator: EmergencyStopActuator) -> None:
        self._policy = policy
        self._actuator = actuator
        self._latched = False
        self._latch_reasons: tuple[str, ...] = ()
        self._last_decision = InterlockDecision(state=SystemState.NORMAL)

    @property
    def latched(self) -> bool:
        return self._latched

    @property
    def latch_reasons(self) -> tuple[str, ...]:
        """Conditions that caused the active latch, empty when not latched."""
        return self._latch_reasons

    @property
    def last_decision(self) -> InterlockDecision:
        return self._last_decision

    def evaluate(
        self,
        sensor_readings: Iterable[SensorReading],
        motor_states: Iterable[MotorStatus],
    ) -> SystemState:
        """Compare one consistent snapshot against the configured limits."""
        state = SystemState.NORMAL
        reasons: list[str] = []
        triggered: list[str] = []
        trip_reasons: list[str] = []

        def escalate(target: SystemState, reason: str, source_id: str) -> None:
            nonlocal state
            if target > state:
                state = target
            reasons.append(reason)
            if target == SystemState.EMERGENCY_SHUTDOWN:
                trip_reasons.append(reason)
            if source_id not in triggered:
                triggered.append(source_id)

        for reading in sensor_readings:
            threshold = self._policy.sensor_thresholds.get(reading.kind)
            if threshold is None:
                continue
            breach, detail = _compare(reading.value, threshold)
            if breach == _Breach.TRIP:
                escalate(
                    SystemState.EMERGENCY_SHUTDOWN,
                    f"trip limit breached for {reading.sensor_id}: {detail}",
                    reading.sensor_id,
                )
            elif breach == _Breach.WARN:
                escalate(
                    SystemState.WARNING,
                    f"warning limit breached for {reading.sensor_id}: {detail}",
                    reading.sensor_id,
                )

        for motor in motor_states:
            if self._policy.warn_on_motor_fault and motor.state == MotorState.FAULTED:
                escalate(
                    SystemState.WARNING,
                    f"motor faulted: {motor.motor_id} ({motor.fault_reason})",
                    motor.motor_id,
                )
            threshold = self._policy.motor_speed_threshold
            if threshold is None:
                continue
            breach, detail = _compare(motor.current_speed, threshold)
            if breach == _Breach.TRIP:
                escalate(
                    SystemState.EMERGENCY_SHUTDOWN,
                    f"trip limit breached for {motor.motor_id} speed: {detail}",
                    motor.motor_id,
                )
            elif breach == _Breach.WARN:
                escalate(
                    SystemState.WARNING,
                    f"warning limit breached for {motor.motor_id} speed: {detail}",
                    motor.motor_id,
                )

        if trip_reasons:
            self._latch(tuple(trip_reasons))

        if self._latched:
            state = SystemState.EMERGENCY_SHUTDOWN
            if not trip_reasons:
                reasons = [f"emergency shutdown latched: {reason}" for reason in self._latch_reasons] + reasons

        self._last_decision = InterlockDecision(state=state, reasons=tuple(reasons), triggered=tuple(triggered))
        return state

    def trip(self, reason: str) -> SystemState:
        """Latch a manual emergency shutdown requested by the operator."""
        self._latch((f"manual emergency stop: {reason}",))
        self._last_decision = InterlockDecision(
            state=SystemState.EMERGENCY_SHUTDOWN,
            reasons=self._latch_reasons,
            triggered=(),
        )
        return SystemState.EMERGENCY_SHUTDOWN

    def reset(self) -> bool:
        """Clear the latch; returns whether a latch was active."""
        if not self._latched:
            return False
        logger.info("emergency shutdown latch cleared by operator")
        self._latched = False
        self._latch_reasons = ()
        self._last_decision = InterlockDecision(state=SystemState.NORMAL)
        return True

    def _latch(self, reasons: tuple[str, ...]) -> None:
        if not self._latched:
            logger.warning("emergency shutdown latched: %s", "; ".join(reasons))
            self._latched = True
            self._latch_reasons = reasons
        # emergency_stop_all is idempotent
        self._actuator.emergency_stop_all()


def _compare(value: float, threshold: SafetyThreshold) -> tuple[_Breach, str]:
    if not isfinite(value):
        return _Breach.TRIP, f"non-finite value {value}"
    if value > threshold.trip_limit:
        return _Breach.TRIP, f"{value:.3f} > {threshold.trip_limit}"
    if threshold.low_trip_limit is not None and value < threshold.low_trip_limit:
        return _Breach.TRIP, f"{value:.3f} < {threshold.low_trip_limit}"
    if value > threshold.warn_limit:
        return _Breach.WARN, f"{value:.3f} > {threshold.warn_limit}"
    if threshold.low_warn_limit is not None and value < threshold.low_warn_limit:
        return _Breach.WARN, f"{value:.3f} < {threshold.low_warn_limit}"
    return _Breach.NONE, ""
