"""Wire a plant configuration into a runnable simulation session."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

from forlenza.config import PlantConfig
from forlenza.plant.motors import MotorBank
from forlenza.plant.sensors import SensorBank
from forlenza.safety.interlock import InterlockMonitor
from forlenza.sim.clock import SimulationClock


@dataclass(frozen=True, slots=True)
class PlantSession:
    """Components of one running plant, wired to a single clock."""

    config: PlantConfig
    sensors: SensorBank
    motors: MotorBank
    monitor: InterlockMonitor
    clock: SimulationClock


def build_session(
    config: PlantConfig,
    *,
    rng: np.random.Generator | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PlantSession:
    """Construct banks, interlock and clock from one configuration."""
    generator = rng if rng is not None else np.random.default_rng(config.seed)
    sensors = SensorBank(config.sensor_counts, config.sensor_specs, generator)
    motors = MotorBank(config.motor_count, config.motor)
    monitor = InterlockMonitor(config.interlock, motors)
    clock = SimulationClock(
        sensors,
        motors,
        monitor,
        tick_period_s=config.tick_period_s,
        sleep=sleep,
    )
    return PlantSession(config=config, sensors=sensors, motors=motors, monitor=monitor, clock=clock)
