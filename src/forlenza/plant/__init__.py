"""Simulated plant equipment: sensors and motors."""

from forlenza.plant.motors import Motor, MotorBank, MotorConfig
from forlenza.plant.sensors import Sensor, SensorBank, SensorSpec

__all__ = ["Motor", "MotorBank", "MotorConfig", "Sensor", "SensorBank", "SensorSpec"]
