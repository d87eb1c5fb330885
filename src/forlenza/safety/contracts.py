"""Safety threshold contracts used by the interlock monitor."""

from __future__ import annotations

from dataclasses import dataclass, field

from forlenza.domain.models import SensorKind, SystemState


@dataclass(frozen=True, slots=True)
class SafetyThreshold:
    """Warn/trip limits for one monitored quantity."""

    warn_limit: float
    trip_limit: float
    low_warn_limit: float | None = None
    low_trip_limit: float | None = None

    def __post_init__(self) -> None:
        if self.warn_limit > self.trip_limit:
            raise ValueError("warn_limit must be <= trip_limit")

        lows = [value for value in (self.low_trip_limit, self.low_warn_limit) if value is not None]
        if lows != sorted(lows):
            raise ValueError("low_trip_limit must be <= low_warn_limit")
        if lows and max(lows) >= self.warn_limit:
            raise ValueError("low limits must be below warn_limit")


@dataclass(frozen=True, slots=True)
class InterlockPolicy:
    """Static interlock configuration, read-only during simulation."""

    sensor_thresholds: dict[SensorKind, SafetyThreshold] = field(default_factory=dict)
    motor_speed_threshold: SafetyThreshold | None = None
    warn_on_motor_fault: bool = True


@dataclass(frozen=True, slots=True)
class InterlockDecision:
    """Outcome of one interlock evaluation."""

    state: SystemState
    reasons: tuple[str, ...] = ()
    triggered: tuple[str, ...] = ()

    @property
    def shutdown_active(self) -> bool:
        """Whether the plant is held in emergency shutdown."""
        return self.state == SystemState.EMERGENCY_SHUTDOWN
