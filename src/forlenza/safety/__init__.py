"""Safety thresholds and the latching interlock monitor."""

from forlenza.safety.contracts import InterlockDecision, InterlockPolicy, SafetyThreshold
from forlenza.safety.interlock import EmergencyStopActuator, InterlockMonitor

__all__ = [
    "EmergencyStopActuator",
    "InterlockDecision",
    "InterlockMonitor",
    "InterlockPolicy",
    "SafetyThreshold",
]
