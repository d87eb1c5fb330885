"""Domain models and error taxonomy for the plant simulation."""

from forlenza.domain.errors import (
    ForlenzaError,
    IncompatibleEnvironment,
    InterlockLatched,
    InvalidCommand,
    InvalidMotor,
    InvalidSpeed,
    OperatorInputError,
    SensorReadUnavailable,
    UnknownSensor,
)
from forlenza.domain.models import (
    ClockState,
    MotorState,
    MotorStatus,
    PlantSnapshot,
    SensorKind,
    SensorReading,
    SystemState,
)

__all__ = [
    "ClockState",
    "ForlenzaError",
    "IncompatibleEnvironment",
    "InterlockLatched",
    "InvalidCommand",
    "InvalidMotor",
    "InvalidSpeed",
    "MotorState",
    "MotorStatus",
    "OperatorInputError",
    "PlantSnapshot",
    "SensorKind",
    "SensorReading",
    "SensorReadUnavailable",
    "SystemState",
    "UnknownSensor",
]
