"""Deterministic host compatibility classifier."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from forlenza.compat.probe import (
    SIGNAL_DIRECTX9,
    SIGNAL_LEGACY_VERSION_QUERY,
    SIGNAL_MODERN_KERNEL_ABI,
    SIGNAL_OS_FAMILY,
    EnvironmentProbe,
)
from forlenza.domain.errors import IncompatibleEnvironment

logger = logging.getLogger(__name__)


class CompatibilityStatus(StrEnum):
    """Classifier outcome tag."""

    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"


@dataclass(frozen=True, slots=True)
class SignalRequirement:
    """Signal that must be present with an exact value on the legacy target."""

    name: str
    expected: Any
    description: str

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("requirement name must not be empty")


@dataclass(frozen=True, slots=True)
class IncompatibleMarker:
    """Signal value that only appears on modern, unsupported hosts."""

    name: str
    value: Any
    description: str

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("marker name must not be empty")


@dataclass(frozen=True, slots=True)
class CompatibilityPolicy:
    """Ordered requirements and markers evaluated by the classifier."""

    requirements: tuple[SignalRequirement, ...] = field(default_factory=tuple)
    markers: tuple[IncompatibleMarker, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        names = [item.name for item in self.requirements] + [item.name for item in self.markers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"signals listed more than once in policy: {', '.join(duplicates)}")


DEFAULT_COMPATIBILITY_POLICY = CompatibilityPolicy(
    requirements=(
        SignalRequirement(
            name=SIGNAL_OS_FAMILY,
            expected="Windows",
            description="legacy console requires the Windows NT family",
        ),
        SignalRequirement(
            name=SIGNAL_LEGACY_VERSION_QUERY,
            expected="6.1",
            description="legacy version query API absent or shimmed",
        ),
        SignalRequirement(
            name=SIGNAL_DIRECTX9,
            expected=True,
            description="DirectX 9.0c runtime for HMI rendering not available",
        ),
    ),
    markers=(
        IncompatibleMarker(
            name=SIGNAL_MODERN_KERNEL_ABI,
            value=True,
            description="kernel ABI version mismatch (modern kernel ABI detected)",
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class CompatibilityVerdict:
    """Classifier decision with ordered technical reasons."""

    status: CompatibilityStatus
    reasons: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.status == CompatibilityStatus.COMPATIBLE and self.reasons:
            raise ValueError("compatible verdict cannot carry incompatibility reasons")
        if self.status == CompatibilityStatus.INCOMPATIBLE and not self.reasons:
            raise ValueError("incompatible verdict requires at least one reason")

    @property
    def compatible(self) -> bool:
        """Whether the host may run the simulated plant."""
        return self.status == CompatibilityStatus.COMPATIBLE

    def require_compatible(self) -> None:
        """Raise `IncompatibleEnvironment` unless the verdict is compatible."""
        if not self.compatible:
            raise IncompatibleEnvironment(self)

    def to_report(self) -> dict[str, Any]:
        """Structured startup report for the operator console."""
        return {"compatible": self.compatible, "reasons": list(self.reasons)}


class CompatibilityClassifier:
    """Classify a host as compatible or incompatible from probe signals."""

    def __init__(
        self,
        probe: EnvironmentProbe,
        policy: CompatibilityPolicy = DEFAULT_COMPATIBILITY_POLICY,
    ) -> None:
        self._probe = probe
        self._policy = policy

    def classify(self) -> CompatibilityVerdict:
        """Evaluate every requirement, then every marker, in policy order."""
        reasons: list[str] = []

        for requirement in self._policy.requirements:
            readable, value = self._read(requirement.name)
            if not readable:
                reasons.append(f"signal unreadable: {requirement.name} ({requirement.description})")
            elif value != requirement.expected:
                reasons.append(
                    f"{requirement.description}: {requirement.name} "
                    f"expected {requirement.expected!r}, got {value!r}"
                )

        for marker in self._policy.markers:
            readable, value = self._read(marker.name)
            if not readable:
                reasons.append(f"signal unreadable: {marker.name} ({marker.description})")
            elif value == marker.value:
                reasons.append(f"{marker.description}: marker {marker.name}={value!r}")

        if reasons:
            logger.warning("host classified incompatible (%d reasons)", len(reasons))
            return CompatibilityVerdict(status=CompatibilityStatus.INCOMPATIBLE, reasons=tuple(reasons))

        logger.info("host classified compatible")
        return CompatibilityVerdict(status=CompatibilityStatus.COMPATIBLE)

    def _read(self, name: str) -> tuple[bool, Any]:
        try:
            value = self._probe.read_signal(name)
        except OSError as exc:
            logger.debug("probe failed reading %s: %s", name, exc)
            return False, None
        if value is None:
            return False, None
        return True, value
