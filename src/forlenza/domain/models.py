"""Core domain models for the Forlenza console simulator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum


class SystemState(IntEnum):
    """Ordered severity states for the aggregate plant posture."""

    NORMAL = 0
    WARNING = 1
    EMERGENCY_SHUTDOWN = 2


class SensorKind(StrEnum):
    """Simulated sensor categories."""

    TEMPERATURE = "temperature"
    PRESSURE = "pressure"


class MotorState(StrEnum):
    """Lifecycle states of one simulated motor."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAULTED = "faulted"
    EMERGENCY_STOPPED = "emergency_stopped"


class ClockState(StrEnum):
    """Run state of the simulation clock."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """Single sensor value published for one tick."""

    sensor_id: str
    kind: SensorKind
    value: float
    unit: str
    forced: bool = False


@dataclass(frozen=True, slots=True)
class MotorStatus:
    """Immutable view of one motor at a tick boundary."""

    motor_id: str
    state: MotorState
    target_speed: float
    current_speed: float
    fault_reason: str | None = None


@dataclass(frozen=True, slots=True)
class PlantSnapshot:
    """Complete plant state published to the operator console after a tick."""

    tick: int
    elapsed_s: float
    system_state: SystemState
    clock_state: ClockState
    sensors: tuple[SensorReading, ...] = ()
    motors: tuple[MotorStatus, ...] = ()
    interlock_reasons: tuple[str, ...] = ()

    def sensor(self, sensor_id: str) -> SensorReading | None:
        """Return a sensor reading by id if present."""
        for reading in self.sensors:
            if reading.sensor_id == sensor_id:
                return reading
        return None

    def motor(self, motor_id: str) -> MotorStatus | None:
        """Return a motor status by id if present."""
        for status in self.motors:
            if status.motor_id == motor_id:
                return status
        return None

    def to_jsonable(self) -> dict[str, object]:
        """Return a JSON-serializable payload for line-oriented output."""
        return {
            "tick": self.tick,
            "elapsed_s": round(self.elapsed_s, 6),
            "system_state": self.system_state.name,
            "clock_state": self.clock_state.value,
            "interlock_reasons": list(self.interlock_reasons),
            "sensors": [
                {
                    "sensor_id": reading.sensor_id,
                    "kind": reading.kind.value,
                    "value": reading.value,
                    "unit": reading.unit,
                    "forced": reading.forced,
                }
                for reading in self.sensors
            ],
            "motors": [
                {
                    "motor_id": status.motor_id,
                    "state": status.state.value,
                    "target_speed": status.target_speed,
                    "current_speed": status.current_speed,
                    "fault_reason": status.fault_reason,
                }
                for status in self.motors
            ],
        }
