"""Operator command surface consumed by the simulation clock."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from math import isfinite
from typing import Union

from forlenza.domain.errors import InvalidCommand


@dataclass(frozen=True, slots=True)
class SetMotorTarget:
    motor_id: str
    speed: float


@dataclass(frozen=True, slots=True)
class Pause:
    pass


@dataclass(frozen=True, slots=True)
class Resume:
    pass


@dataclass(frozen=True, slots=True)
class ResetEmergencyShutdown:
    pass


@dataclass(frozen=True, slots=True)
class Shutdown:
    pass


@dataclass(frozen=True, slots=True)
class EmergencyStop:
    """Operator-initiated emergency shutdown."""

    reason: str = "operator request"


@dataclass(frozen=True, slots=True)
class ClearMotorFault:
    motor_id: str


@dataclass(frozen=True, slots=True)
class ForceSensor:
    """Pin a sensor to a fixed value (fault injection drill)."""

    sensor_id: str
    value: float


@dataclass(frozen=True, slots=True)
class ReleaseSensor:
    sensor_id: str


Command = Union[
    SetMotorTarget,
    Pause,
    Resume,
    ResetEmergencyShutdown,
    Shutdown,
    EmergencyStop,
    ClearMotorFault,
    ForceSensor,
    ReleaseSensor,
]

COMMAND_TYPES: tuple[type, ...] = (
    SetMotorTarget,
    Pause,
    Resume,
    ResetEmergencyShutdown,
    Shutdown,
    EmergencyStop,
    ClearMotorFault,
    ForceSensor,
    ReleaseSensor,
)


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """Result of applying one queued command at a tick boundary."""

    command: Command
    accepted: bool
    error: str | None = None


def parse_command(text: str) -> Command:
    """Parse one console line into a command.

    Grammar (case-insensitive verbs)::

        set <motor_id> <rpm>
        pause | resume | reset | shutdown
        estop [reason ...]
        clear <motor_id>
        force <sensor_id> <value>
        release <sensor_id>
    """
    try:
        tokens = shlex.split(text)
    except ValueError as exc:
        raise InvalidCommand(f"malformed command: {exc}") from exc
    if not tokens:
        raise InvalidCommand("empty command")

    verb, args = tokens[0].lower(), tokens[1:]

    if verb in ("set", "target"):
        motor_id, value = _expect_args(verb, args, 2)
        return SetMotorTarget(motor_id=motor_id, speed=_parse_number(value))
    if verb == "pause":
        _expect_args(verb, args, 0)
        return Pause()
    if verb == "resume":
        _expect_args(verb, args, 0)
        return Resume()
    if verb == "reset":
        _expect_args(verb, args, 0)
        return ResetEmergencyShutdown()
    if verb in ("shutdown", "quit", "exit"):
        _expect_args(verb, args, 0)
        return Shutdown()
    if verb == "estop":
        return EmergencyStop(reason=" ".join(args) or "operator request")
    if verb == "clear":
        (motor_id,) = _expect_args(verb, args, 1)
        return ClearMotorFault(motor_id=motor_id)
    if verb == "force":
        sensor_id, value = _expect_args(verb, args, 2)
        return ForceSensor(sensor_id=sensor_id, value=_parse_number(value))
    if verb == "release":
        (sensor_id,) = _expect_args(verb, args, 1)
        return ReleaseSensor(sensor_id=sensor_id)

    raise InvalidCommand(f"unknown command: {tokens[0]}")


def _expect_args(verb: str, args: list[str], count: int) -> list[str]:
    if len(args) != count:
        raise InvalidCommand(f"{verb} expects {count} argument(s), got {len(args)}")
    return args


def _parse_number(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise InvalidCommand(f"not a number: {value}") from exc
    if not isfinite(number):
        raise InvalidCommand(f"not a finite number: {value}")
    return number
