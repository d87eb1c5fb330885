"""Plant configuration: defaults, validation and JSON loading."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from forlenza.compat.classifier import (
    DEFAULT_COMPATIBILITY_POLICY,
    CompatibilityPolicy,
    IncompatibleMarker,
    SignalRequirement,
)
from forlenza.domain.models import SensorKind
from forlenza.plant.motors import MotorConfig
from forlenza.plant.sensors import SensorSpec
from forlenza.safety.contracts import InterlockPolicy, SafetyThreshold

_MOTOR_SPEED_KEY = "motor_speed"
_TOP_LEVEL_KEYS = frozenset({"seed", "tick_period_s", "sensors", "motors", "thresholds", "compatibility"})
_SENSOR_KEYS = frozenset(
    {
        "count",
        "unit",
        "nominal_range",
        "physical_range",
        "noise_amplitude",
        "reversion",
        "setpoint",
        "initial_values",
    }
)
_MOTOR_KEYS = frozenset(
    {
        "count",
        "max_speed",
        "ramp_rate",
        "time_constant_s",
        "speed_tolerance",
        "fault_deviation",
        "fault_ticks",
        "initial_targets",
    }
)
_THRESHOLD_KEYS = frozenset({"warn_limit", "trip_limit", "low_warn_limit", "low_trip_limit"})
_COMPATIBILITY_KEYS = frozenset({"requirements", "markers"})
_REQUIREMENT_KEYS = frozenset({"name", "expected", "description"})
_MARKER_KEYS = frozenset({"name", "value", "description"})


def _default_sensor_specs() -> dict[SensorKind, SensorSpec]:
    return {
        SensorKind.TEMPERATURE: SensorSpec(
            kind=SensorKind.TEMPERATURE,
            unit="C",
            nominal_min=20.0,
            nominal_max=30.0,
            physical_min=-40.0,
            physical_max=200.0,
            noise_amplitude=0.1,
            reversion=0.05,
            setpoint=23.5,
            initial_values=(23.5, 24.1, 22.8, 25.0),
        ),
        SensorKind.PRESSURE: SensorSpec(
            kind=SensorKind.PRESSURE,
            unit="kPa",
            nominal_min=95.0,
            nominal_max=105.0,
            physical_min=0.0,
            physical_max=1000.0,
            noise_amplitude=0.25,
            reversion=0.2,
            initial_values=(101.3, 98.7, 102.1),
        ),
    }


def _default_interlock_policy() -> InterlockPolicy:
    # Warning bands are the legacy console's highlight colours.
    return InterlockPolicy(
        sensor_thresholds={
            SensorKind.TEMPERATURE: SafetyThreshold(warn_limit=26.0, trip_limit=35.0),
            SensorKind.PRESSURE: SafetyThreshold(
                warn_limit=103.0,
                trip_limit=110.0,
                low_warn_limit=98.0,
                low_trip_limit=90.0,
            ),
        },
        motor_speed_threshold=SafetyThreshold(warn_limit=2800.0, trip_limit=2950.0),
    )


@dataclass(frozen=True, slots=True)
class PlantConfig:
    """Everything needed to build one simulated plant session."""

    seed: int = 1
    tick_period_s: float = 1.0
    sensor_counts: dict[SensorKind, int] = field(
        default_factory=lambda: {SensorKind.TEMPERATURE: 4, SensorKind.PRESSURE: 3}
    )
    sensor_specs: dict[SensorKind, SensorSpec] = field(default_factory=_default_sensor_specs)
    motor_count: int = 4
    motor: MotorConfig = field(default_factory=lambda: MotorConfig(initial_targets=(1750.0, 1800.0, 0.0, 2200.0)))
    interlock: InterlockPolicy = field(default_factory=_default_interlock_policy)
    compatibility: CompatibilityPolicy = DEFAULT_COMPATIBILITY_POLICY

    def __post_init__(self) -> None:
        if self.tick_period_s <= 0.0:
            raise ValueError("tick_period_s must be > 0")
        if self.motor_count < 0:
            raise ValueError("motor_count must be >= 0")
        for kind, count in self.sensor_counts.items():
            if count < 0:
                raise ValueError(f"sensor count for {kind.value} must be >= 0")
            if count > 0 and kind not in self.sensor_specs:
                raise ValueError(f"missing sensor spec for kind: {kind.value}")


def load_plant_config(path: Path) -> PlantConfig:
    """Load a JSON plant configuration; omitted sections keep their defaults."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"plant config must be a JSON object: {path}")
    return plant_config_from_mapping(payload)


def plant_config_from_mapping(payload: Mapping[str, Any]) -> PlantConfig:
    """Build a validated `PlantConfig` from a parsed JSON mapping.

    Malformed sections, unknown keys and missing required keys all raise
    `ValueError` naming the offending key path.
    """
    defaults = PlantConfig()
    _reject_unknown(payload, _TOP_LEVEL_KEYS, "plant config")

    sensor_counts = dict(defaults.sensor_counts)
    sensor_specs = dict(defaults.sensor_specs)
    for kind_name, raw in _section(payload.get("sensors", {}), "sensors").items():
        kind = _sensor_kind(kind_name)
        path = f"sensors.{kind_name}"
        section = _section(raw, path)
        _reject_unknown(section, _SENSOR_KEYS, path)
        if "count" in section:
            sensor_counts[kind] = _integer(section.pop("count"), f"{path}.count")
        sensor_specs[kind] = _sensor_spec(kind, section, sensor_specs.get(kind), path)

    motor_section = _section(payload.get("motors", {}), "motors")
    _reject_unknown(motor_section, _MOTOR_KEYS, "motors")
    motor_count = _integer(motor_section.pop("count", defaults.motor_count), "motors.count")
    motor = _motor_config(motor_section, defaults.motor)

    interlock = _interlock_policy(_section(payload.get("thresholds", {}), "thresholds"), defaults.interlock)

    compatibility = defaults.compatibility
    if "compatibility" in payload:
        compatibility = _compatibility_policy(_section(payload["compatibility"], "compatibility"))

    return PlantConfig(
        seed=_integer(payload.get("seed", defaults.seed), "seed"),
        tick_period_s=_number(payload.get("tick_period_s", defaults.tick_period_s), "tick_period_s"),
        sensor_counts=sensor_counts,
        sensor_specs=sensor_specs,
        motor_count=motor_count,
        motor=motor,
        interlock=interlock,
        compatibility=compatibility,
    )


def plant_config_to_jsonable(config: PlantConfig) -> dict[str, Any]:
    """Inverse of `plant_config_from_mapping`, used to write config templates."""
    thresholds: dict[str, Any] = {
        kind.value: _threshold_to_jsonable(threshold)
        for kind, threshold in config.interlock.sensor_thresholds.items()
    }
    if config.interlock.motor_speed_threshold is not None:
        thresholds[_MOTOR_SPEED_KEY] = _threshold_to_jsonable(config.interlock.motor_speed_threshold)

    return {
        "seed": config.seed,
        "tick_period_s": config.tick_period_s,
        "sensors": {
            kind.value: {
                "count": config.sensor_counts.get(kind, 0),
                "unit": spec.unit,
                "nominal_range": [spec.nominal_min, spec.nominal_max],
                "physical_range": [spec.physical_min, spec.physical_max],
                "noise_amplitude": spec.noise_amplitude,
                "reversion": spec.reversion,
                "setpoint": spec.setpoint,
                "initial_values": list(spec.initial_values),
            }
            for kind, spec in config.sensor_specs.items()
        },
        "motors": {
            "count": config.motor_count,
            "max_speed": config.motor.max_speed,
            "ramp_rate": config.motor.ramp_rate,
            "time_constant_s": config.motor.time_constant_s,
            "speed_tolerance": config.motor.speed_tolerance,
            "fault_deviation": config.motor.fault_deviation,
            "fault_ticks": config.motor.fault_ticks,
            "initial_targets": list(config.motor.initial_targets),
        },
        "thresholds": thresholds,
        "compatibility": {
            "requirements": [
                {"name": item.name, "expected": item.expected, "description": item.description}
                for item in config.compatibility.requirements
            ],
            "markers": [
                {"name": item.name, "value": item.value, "description": item.description}
                for item in config.compatibility.markers
            ],
        },
    }


def _sensor_kind(name: str) -> SensorKind:
    try:
        return SensorKind(name)
    except ValueError as exc:
        raise ValueError(f"unknown sensor kind: {name}") from exc


def _sensor_spec(kind: SensorKind, section: dict[str, Any], base: SensorSpec | None, path: str) -> SensorSpec:
    if base is None:
        nominal = _pair(_required(section, "nominal_range", path), f"{path}.nominal_range")
        physical = _pair(_required(section, "physical_range", path), f"{path}.physical_range")
    else:
        nominal = _pair(section.get("nominal_range", base.nominal_range), f"{path}.nominal_range")
        physical = _pair(section.get("physical_range", base.physical_range), f"{path}.physical_range")
    return SensorSpec(
        kind=kind,
        unit=_string(section.get("unit", "" if base is None else base.unit), f"{path}.unit"),
        nominal_min=nominal[0],
        nominal_max=nominal[1],
        physical_min=physical[0],
        physical_max=physical[1],
        noise_amplitude=_number(
            section.get("noise_amplitude", 0.0 if base is None else base.noise_amplitude),
            f"{path}.noise_amplitude",
        ),
        reversion=_number(section.get("reversion", 0.1 if base is None else base.reversion), f"{path}.reversion"),
        setpoint=_optional_number(
            section.get("setpoint", None if base is None else base.setpoint),
            f"{path}.setpoint",
        ),
        initial_values=_numbers(
            section.get("initial_values", () if base is None else base.initial_values),
            f"{path}.initial_values",
        ),
    )


def _motor_config(section: dict[str, Any], base: MotorConfig) -> MotorConfig:
    return MotorConfig(
        max_speed=_number(section.get("max_speed", base.max_speed), "motors.max_speed"),
        ramp_rate=_number(section.get("ramp_rate", base.ramp_rate), "motors.ramp_rate"),
        time_constant_s=_number(section.get("time_constant_s", base.time_constant_s), "motors.time_constant_s"),
        speed_tolerance=_number(section.get("speed_tolerance", base.speed_tolerance), "motors.speed_tolerance"),
        fault_deviation=_number(section.get("fault_deviation", base.fault_deviation), "motors.fault_deviation"),
        fault_ticks=_integer(section.get("fault_ticks", base.fault_ticks), "motors.fault_ticks"),
        initial_targets=_numbers(section.get("initial_targets", base.initial_targets), "motors.initial_targets"),
    )


def _interlock_policy(section: dict[str, Any], base: InterlockPolicy) -> InterlockPolicy:
    sensor_thresholds = dict(base.sensor_thresholds)
    motor_speed_threshold = base.motor_speed_threshold
    for key, value in section.items():
        path = f"thresholds.{key}"
        if key == _MOTOR_SPEED_KEY:
            motor_speed_threshold = None if value is None else _threshold(_section(value, path), path)
        else:
            sensor_thresholds[_sensor_kind(key)] = _threshold(_section(value, path), path)
    return InterlockPolicy(
        sensor_thresholds=sensor_thresholds,
        motor_speed_threshold=motor_speed_threshold,
        warn_on_motor_fault=base.warn_on_motor_fault,
    )


def _threshold(section: dict[str, Any], path: str) -> SafetyThreshold:
    _reject_unknown(section, _THRESHOLD_KEYS, path)
    return SafetyThreshold(
        warn_limit=_number(_required(section, "warn_limit", path), f"{path}.warn_limit"),
        trip_limit=_number(_required(section, "trip_limit", path), f"{path}.trip_limit"),
        low_warn_limit=_optional_number(section.get("low_warn_limit"), f"{path}.low_warn_limit"),
        low_trip_limit=_optional_number(section.get("low_trip_limit"), f"{path}.low_trip_limit"),
    )


def _threshold_to_jsonable(threshold: SafetyThreshold) -> dict[str, float | None]:
    return {
        "warn_limit": threshold.warn_limit,
        "trip_limit": threshold.trip_limit,
        "low_warn_limit": threshold.low_warn_limit,
        "low_trip_limit": threshold.low_trip_limit,
    }


def _compatibility_policy(section: dict[str, Any]) -> CompatibilityPolicy:
    _reject_unknown(section, _COMPATIBILITY_KEYS, "compatibility")
    requirements = []
    for index, raw in enumerate(_items(section.get("requirements", []), "compatibility.requirements")):
        path = f"compatibility.requirements[{index}]"
        item = _section(raw, path)
        _reject_unknown(item, _REQUIREMENT_KEYS, path)
        requirements.append(
            SignalRequirement(
                name=_string(_required(item, "name", path), f"{path}.name"),
                expected=_required(item, "expected", path),
                description=_string(_required(item, "description", path), f"{path}.description"),
            )
        )
    markers = []
    for index, raw in enumerate(_items(section.get("markers", []), "compatibility.markers")):
        path = f"compatibility.markers[{index}]"
        item = _section(raw, path)
        _reject_unknown(item, _MARKER_KEYS, path)
        markers.append(
            IncompatibleMarker(
                name=_string(_required(item, "name", path), f"{path}.name"),
                value=_required(item, "value", path),
                description=_string(_required(item, "description", path), f"{path}.description"),
            )
        )
    return CompatibilityPolicy(requirements=tuple(requirements), markers=tuple(markers))


def _section(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected an object, got {type(value).__name__}")
    return dict(value)


def _items(value: Any, path: str) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{path}: expected a list, got {type(value).__name__}")
    return list(value)


def _reject_unknown(section: Mapping[str, Any], allowed: frozenset[str], path: str) -> None:
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"unknown {path} keys: {', '.join(sorted(unknown))}")


def _required(section: Mapping[str, Any], key: str, path: str) -> Any:
    if key not in section:
        raise ValueError(f"{path}: missing {key}")
    return section[key]


def _string(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected a string, got {value!r}")
    return value


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{path}: expected a number, got {value!r}")
    return float(value)


def _optional_number(value: Any, path: str) -> float | None:
    if value is None:
        return None
    return _number(value, path)


def _integer(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}: expected an integer, got {value!r}")
    return value


def _numbers(value: Any, path: str) -> tuple[float, ...]:
    return tuple(_number(item, f"{path}[{index}]") for index, item in enumerate(_items(value, path)))


def _pair(value: Any, path: str) -> tuple[float, float]:
    values = _numbers(value, path)
    if len(values) != 2:
        raise ValueError(f"{path}: expected [min, max], got {len(values)} values")
    return values[0], values[1]
