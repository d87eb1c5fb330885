"""Simulation clock and operator command surface."""

from forlenza.sim.builder import PlantSession, build_session
from forlenza.sim.clock import SimulationClock
from forlenza.sim.commands import (
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
    parse_command,
)

__all__ = [
    "ClearMotorFault",
    "Command",
    "CommandOutcome",
    "EmergencyStop",
    "ForceSensor",
    "Pause",
    "PlantSession",
    "ReleaseSensor",
    "ResetEmergencyShutdown",
    "Resume",
    "SetMotorTarget",
    "Shutdown",
    "SimulationClock",
    "build_session",
    "parse_command",
]
