"""Unit tests for console command parsing."""

from __future__ import annotations

import pytest

from forlenza.domain.errors import InvalidCommand
from forlenza.sim import (
    ClearMotorFault,
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


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("set motor_1 1500", SetMotorTarget(motor_id="motor_1", speed=1500.0)),
        ("TARGET motor_2 0", SetMotorTarget(motor_id="motor_2", speed=0.0)),
        ("pause", Pause()),
        ("resume", Resume()),
        ("reset", ResetEmergencyShutdown()),
        ("quit", Shutdown()),
        ("estop", EmergencyStop()),
        ('estop "smoke in bay 2"', EmergencyStop(reason="smoke in bay 2")),
        ("clear motor_3", ClearMotorFault(motor_id="motor_3")),
        ("force press_1 111", ForceSensor(sensor_id="press_1", value=111.0)),
        ("release press_1", ReleaseSensor(sensor_id="press_1")),
    ],
)
def test_parse_known_commands(text: str, expected: object) -> None:
    assert parse_command(text) == expected


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("", "empty command"),
        ("launch", "unknown command"),
        ("set motor_1", "expects 2 argument"),
        ("set motor_1 fast", "not a number"),
        ("set motor_1 nan", "not a finite number"),
        ("pause now", "expects 0 argument"),
        ('estop "unterminated', "malformed command"),
    ],
)
def test_malformed_commands_raise_invalid_command(text: str, message: str) -> None:
    with pytest.raises(InvalidCommand, match=message):
        parse_command(text)
