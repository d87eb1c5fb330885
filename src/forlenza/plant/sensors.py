"""Simulated temperature and pressure sensors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from math import isfinite, sqrt
from typing import Mapping

import numpy as np

from forlenza.domain.errors import SensorReadUnavailable, UnknownSensor
from forlenza.domain.models import SensorKind, SensorReading

logger = logging.getLogger(__name__)

_ID_PREFIX: dict[SensorKind, str] = {
    SensorKind.TEMPERATURE: "temp",
    SensorKind.PRESSURE: "press",
}


@dataclass(frozen=True, slots=True)
class SensorSpec:
    """Static behaviour of every sensor of one kind."""

    kind: SensorKind
    unit: str
    nominal_min: float
    nominal_max: float
    physical_min: float
    physical_max: float
    noise_amplitude: float
    reversion: float = 0.1
    setpoint: float | None = None
    initial_values: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if self.nominal_min >= self.nominal_max:
            raise ValueError(f"{self.kind.value}: nominal_min must be < nominal_max")
        if self.physical_min > self.nominal_min or self.physical_max < self.nominal_max:
            raise ValueError(f"{self.kind.value}: nominal range must lie within physical range")
        if self.noise_amplitude < 0.0:
            raise ValueError(f"{self.kind.value}: noise_amplitude must be >= 0")
        if not 0.0 <= self.reversion <= 1.0:
            raise ValueError(f"{self.kind.value}: reversion must be within [0, 1]")
        if self.setpoint is not None and not self.nominal_min <= self.setpoint <= self.nominal_max:
            raise ValueError(f"{self.kind.value}: setpoint must lie within nominal range")
        for value in self.initial_values:
            if not self.nominal_min <= value <= self.nominal_max:
                raise ValueError(f"{self.kind.value}: initial value {value} outside nominal range")

    @property
    def nominal_range(self) -> tuple[float, float]:
        return (self.nominal_min, self.nominal_max)

    @property
    def physical_range(self) -> tuple[float, float]:
        return (self.physical_min, self.physical_max)

    @property
    def effective_setpoint(self) -> float:
        """Mean-reversion target; defaults to the nominal midpoint."""
        if self.setpoint is not None:
            return self.setpoint
        return (self.nominal_min + self.nominal_max) / 2.0


@dataclass(slots=True)
class Sensor:
    """Mutable state of one simulated sensor, owned by `SensorBank`."""

    sensor_id: str
    spec: SensorSpec
    value: float
    forced_value: float | None = None

    @property
    def kind(self) -> SensorKind:
        return self.spec.kind

    @property
    def nominal_range(self) -> tuple[float, float]:
        return self.spec.nominal_range

    @property
    def noise_amplitude(self) -> float:
        return self.spec.noise_amplitude

    def reading(self) -> SensorReading:
        return SensorReading(
            sensor_id=self.sensor_id,
            kind=self.spec.kind,
            value=self.value,
            unit=self.spec.unit,
            forced=self.forced_value is not None,
        )


class SensorBank:
    """Owns every simulated sensor and advances them once per tick."""

    def __init__(
        self,
        count_per_kind: Mapping[SensorKind, int],
        specs: Mapping[SensorKind, SensorSpec],
        rng: np.random.Generator,
    ) -> None:
        self._rng = rng
        self._sensors: dict[str, Sensor] = {}

        for kind in SensorKind:
            count = count_per_kind.get(kind, 0)
            if count < 0:
                raise ValueError(f"sensor count for {kind.value} must be >= 0")
            if count == 0:
                continue
            spec = specs.get(kind)
            if spec is None:
                raise ValueError(f"missing sensor spec for kind: {kind.value}")
            if spec.kind != kind:
                raise ValueError(f"sensor spec kind mismatch: expected {kind.value}, got {spec.kind.value}")
            for index in range(count):
                sensor_id = f"{_ID_PREFIX[kind]}_{index + 1}"
                initial = (
                    spec.initial_values[index]
                    if index < len(spec.initial_values)
                    else spec.effective_setpoint
                )
                self._sensors[sensor_id] = Sensor(sensor_id=sensor_id, spec=spec, value=float(initial))

    @property
    def sensor_ids(self) -> tuple[str, ...]:
        return tuple(self._sensors)

    def get(self, sensor_id: str) -> Sensor:
        sensor = self._sensors.get(sensor_id)
        if sensor is None:
            raise UnknownSensor(sensor_id)
        return sensor

    def readings(self) -> tuple[SensorReading, ...]:
        """Return current readings without advancing simulated time."""
        return tuple(sensor.reading() for sensor in self._sensors.values())

    def tick(self, dt: float) -> tuple[SensorReading, ...]:
        """Advance every sensor by `dt` seconds and return the fresh readings.

        `reversion` and `noise_amplitude` are per-second rates: the pull toward the
        setpoint compounds over `dt` and the noise grows with `sqrt(dt)`.
        """
        if dt <= 0.0:
            raise ValueError("dt must be > 0")

        for sensor in self._sensors.values():
            if sensor.forced_value is not None:
                sensor.value = sensor.forced_value
                continue

            spec = sensor.spec
            pull = 1.0 - (1.0 - spec.reversion) ** dt
            spread = spec.noise_amplitude * sqrt(dt)
            noise = float(self._rng.uniform(-spread, spread))
            candidate = sensor.value + pull * (spec.effective_setpoint - sensor.value) + noise
            if not isfinite(candidate):
                raise SensorReadUnavailable(f"sensor {sensor.sensor_id} produced a non-finite value")
            sensor.value = float(np.clip(candidate, spec.nominal_min, spec.nominal_max))

        return self.readings()

    def force(self, sensor_id: str, value: float) -> None:
        """Pin a sensor to a fixed value until released."""
        sensor = self.get(sensor_id)
        low, high = sensor.spec.physical_range
        if not isfinite(value) or not low <= value <= high:
            raise ValueError(
                f"forced value {value} for {sensor_id} outside physical range [{low}, {high}]"
            )
        sensor.forced_value = float(value)
        sensor.value = float(value)
        logger.info("sensor %s forced to %s %s", sensor_id, value, sensor.spec.unit)

    def release(self, sensor_id: str) -> None:
        """Return a forced sensor to simulated behaviour on the next tick."""
        sensor = self.get(sensor_id)
        if sensor.forced_value is None:
            return
        sensor.forced_value = None
        logger.info("sensor %s released", sensor_id)
