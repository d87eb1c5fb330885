"""Operator diagnostic sweep over the current plant snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from math import isfinite
from typing import Mapping

from forlenza.compat.classifier import CompatibilityVerdict
from forlenza.domain.models import MotorState, PlantSnapshot, SensorKind, SystemState
from forlenza.plant.sensors import SensorSpec

SYSTEM_ID = "FIS-CTRL-7001"


@dataclass(frozen=True, slots=True)
class DiagnosticCheck:
    """Outcome of one named diagnostic check."""

    name: str
    passed: bool
    detail: str = ""


@dataclass(frozen=True, slots=True)
class DiagnosticReport:
    """Ordered diagnostic results for console display."""

    system_id: str
    tick: int
    checks: tuple[DiagnosticCheck, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def to_jsonable(self) -> dict[str, object]:
        return {
            "system_id": self.system_id,
            "tick": self.tick,
            "passed": self.passed,
            "checks": [
                {"name": check.name, "passed": check.passed, "detail": check.detail}
                for check in self.checks
            ],
        }


def run_diagnostic(
    verdict: CompatibilityVerdict,
    snapshot: PlantSnapshot,
    sensor_specs: Mapping[SensorKind, SensorSpec],
) -> DiagnosticReport:
    """Inspect compatibility, telemetry, drives and interlock state."""
    checks = [
        DiagnosticCheck(
            name="host compatibility",
            passed=verdict.compatible,
            detail="legacy target detected" if verdict.compatible else "; ".join(verdict.reasons),
        ),
        _check_telemetry(snapshot, sensor_specs),
        _check_forcing(snapshot),
        _check_motors(snapshot),
        DiagnosticCheck(
            name="safety interlocks",
            passed=snapshot.system_state != SystemState.EMERGENCY_SHUTDOWN,
            detail=(
                "emergency shutdown latched"
                if snapshot.system_state == SystemState.EMERGENCY_SHUTDOWN
                else f"armed ({snapshot.system_state.name.lower()})"
            ),
        ),
    ]
    return DiagnosticReport(system_id=SYSTEM_ID, tick=snapshot.tick, checks=tuple(checks))


def _check_telemetry(snapshot: PlantSnapshot, sensor_specs: Mapping[SensorKind, SensorSpec]) -> DiagnosticCheck:
    problems: list[str] = []
    for reading in snapshot.sensors:
        if not isfinite(reading.value):
            problems.append(f"{reading.sensor_id} non-finite")
            continue
        spec = sensor_specs.get(reading.kind)
        if spec is None or reading.forced:
            continue
        if not spec.nominal_min <= reading.value <= spec.nominal_max:
            problems.append(f"{reading.sensor_id} outside nominal band")
    return DiagnosticCheck(
        name="sensor telemetry",
        passed=not problems,
        detail=", ".join(problems) if problems else f"{len(snapshot.sensors)} sensors in band",
    )


def _check_forcing(snapshot: PlantSnapshot) -> DiagnosticCheck:
    forced = [reading.sensor_id for reading in snapshot.sensors if reading.forced]
    return DiagnosticCheck(
        name="sensor forcing",
        passed=not forced,
        detail=f"forced: {', '.join(forced)}" if forced else "no forced sensors",
    )


def _check_motors(snapshot: PlantSnapshot) -> DiagnosticCheck:
    faulted = [status.motor_id for status in snapshot.motors if status.state == MotorState.FAULTED]
    return DiagnosticCheck(
        name="motor drives",
        passed=not faulted,
        detail=f"faulted: {', '.join(faulted)}" if faulted else f"{len(snapshot.motors)} drives healthy",
    )
