"""Exception taxonomy shared by the simulator components."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from forlenza.compat.classifier import CompatibilityVerdict


class ForlenzaError(Exception):
    """Base class for simulator errors."""


class IncompatibleEnvironment(ForlenzaError):
    """Host environment failed the compatibility check at startup."""

    def __init__(self, verdict: CompatibilityVerdict) -> None:
        self.verdict = verdict
        detail = "; ".join(verdict.reasons) if verdict.reasons else "no reasons reported"
        super().__init__(f"incompatible host environment: {detail}")


class OperatorInputError(ForlenzaError):
    """Operator command rejected; simulation state is left untouched."""


class InvalidMotor(OperatorInputError):
    """Command referenced a motor id that does not exist."""


class InvalidSpeed(OperatorInputError):
    """Requested motor speed is outside the permitted range."""


class InvalidCommand(OperatorInputError):
    """Command is unknown, malformed, or not allowed in the current state."""


class InterlockLatched(InvalidCommand):
    """Command refused because the emergency-shutdown latch is set."""


class SensorReadUnavailable(ForlenzaError):
    """A simulated sensor produced no computable value."""


class UnknownSensor(KeyError):
    """Sensor id is not part of the sensor bank."""
