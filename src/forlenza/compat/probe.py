"""Environment probes that expose host signals to the compatibility classifier."""

from __future__ import annotations

import ctypes
import ctypes.util
import json
import platform
import sys
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

SIGNAL_OS_FAMILY = "os.family"
SIGNAL_OS_VERSION = "os.version"
SIGNAL_LEGACY_VERSION_QUERY = "api.legacy_version_query"
SIGNAL_DIRECTX9 = "directx.d3d9"
SIGNAL_MODERN_KERNEL_ABI = "kernel.modern_abi"

HOST_SIGNALS: tuple[str, ...] = (
    SIGNAL_OS_FAMILY,
    SIGNAL_OS_VERSION,
    SIGNAL_LEGACY_VERSION_QUERY,
    SIGNAL_DIRECTX9,
    SIGNAL_MODERN_KERNEL_ABI,
)

# NT 6.1 is the last kernel whose version query is not shimmed by the loader.
_LEGACY_NT_VERSION = (6, 1)


class EnvironmentProbe(Protocol):
    """Read-only source of named host signals."""

    def read_signal(self, name: str) -> Any | None:
        """Return the signal value, or `None` if it cannot be read."""
        ...


class StaticEnvironmentProbe:
    """Probe backed by a canned signal map (tests, replayed host captures)."""

    def __init__(self, signals: Mapping[str, Any]) -> None:
        self._signals = dict(signals)

    def read_signal(self, name: str) -> Any | None:
        return self._signals.get(name)

    def capture(self) -> dict[str, Any]:
        """Return a copy of every signal served by this probe."""
        return dict(self._signals)


class HostEnvironmentProbe:
    """Probe that queries the running host without mutating it."""

    def __init__(self) -> None:
        self._readers: dict[str, Callable[[], Any | None]] = {
            SIGNAL_OS_FAMILY: self._os_family,
            SIGNAL_OS_VERSION: self._os_version,
            SIGNAL_LEGACY_VERSION_QUERY: self._legacy_version_query,
            SIGNAL_DIRECTX9: self._directx9_available,
            SIGNAL_MODERN_KERNEL_ABI: self._modern_kernel_abi,
        }

    def read_signal(self, name: str) -> Any | None:
        reader = self._readers.get(name)
        if reader is None:
            return None
        try:
            return reader()
        except (OSError, AttributeError, ValueError):
            return None

    def capture(self) -> dict[str, Any]:
        """Read every known host signal into a JSON-friendly mapping."""
        return {name: self.read_signal(name) for name in HOST_SIGNALS}

    @staticmethod
    def _os_family() -> str | None:
        family = platform.system()
        return family or None

    @staticmethod
    def _os_version() -> str | None:
        if sys.platform == "win32":
            version = sys.getwindowsversion()
            return f"{version.major}.{version.minor}"
        return _major_minor(platform.release())

    @staticmethod
    def _legacy_version_query() -> str | None:
        if sys.platform != "win32":
            return None
        kernel32 = ctypes.WinDLL("kernel32")
        if not hasattr(kernel32, "GetVersion"):
            return None
        raw = int(kernel32.GetVersion())
        return f"{raw & 0xFF}.{(raw >> 8) & 0xFF}"

    @staticmethod
    def _directx9_available() -> bool:
        if sys.platform != "win32":
            return False
        return ctypes.util.find_library("d3d9") is not None

    @staticmethod
    def _modern_kernel_abi() -> bool:
        if sys.platform != "win32":
            return True
        version = sys.getwindowsversion()
        return (version.major, version.minor) > _LEGACY_NT_VERSION


def load_signal_snapshot(path: Path) -> StaticEnvironmentProbe:
    """Load a JSON signal map captured earlier with `capture()`."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"signal snapshot must be a JSON object: {path}")
    return StaticEnvironmentProbe(payload)


def save_signal_snapshot(path: Path, signals: Mapping[str, Any]) -> None:
    """Persist a signal map for later replay."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(signals), indent=2, sort_keys=True), encoding="utf-8")


def _major_minor(release: str) -> str | None:
    parts: list[str] = []
    for token in release.replace("-", ".").split("."):
        if not token.isdigit():
            break
        parts.append(token)
        if len(parts) == 2:
            break
    if not parts:
        return None
    return ".".join(parts)
