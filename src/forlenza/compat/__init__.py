"""Host compatibility classification."""

from forlenza.compat.classifier import (
    DEFAULT_COMPATIBILITY_POLICY,
    CompatibilityClassifier,
    CompatibilityPolicy,
    CompatibilityStatus,
    CompatibilityVerdict,
    IncompatibleMarker,
    SignalRequirement,
)
from forlenza.compat.probe import (
    EnvironmentProbe,
    HostEnvironmentProbe,
    StaticEnvironmentProbe,
    load_signal_snapshot,
    save_signal_snapshot,
)

__all__ = [
    "DEFAULT_COMPATIBILITY_POLICY",
    "CompatibilityClassifier",
    "CompatibilityPolicy",
    "CompatibilityStatus",
    "CompatibilityVerdict",
    "EnvironmentProbe",
    "HostEnvironmentProbe",
    "IncompatibleMarker",
    "SignalRequirement",
    "StaticEnvironmentProbe",
    "load_signal_snapshot",
    "save_signal_snapshot",
]
