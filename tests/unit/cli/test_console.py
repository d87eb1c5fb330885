"""Tests for the operator console entrypoint."""

from __future__ import annotations

import io
import json
import threading
from pathlib import Path

import pytest

from forlenza.cli import console
from forlenza.compat import CompatibilityClassifier, StaticEnvironmentProbe
from forlenza.config import PlantConfig
from forlenza.domain.errors import SensorReadUnavailable
from forlenza.domain.models import ClockState
from forlenza.plant.sensors import SensorBank
from forlenza.sim import build_session

_COMPATIBLE = {
    "os.family": "Windows",
    "os.version": "6.1",
    "api.legacy_version_query": "6.1",
    "directx.d3d9": True,
    "kernel.modern_abi": False,
}


def _write_json(path: Path, payload: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    return path


def _write_script(path: Path, lines: list[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_main_returns_incompatible_exit_code_for_modern_abi(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", {**_COMPATIBLE, "kernel.modern_abi": True})
    out = io.StringIO()

    exit_code = console.main(["--signals", str(signals)], stdout=out)

    assert exit_code == console.EXIT_INCOMPATIBLE
    text = out.getvalue()
    assert "SYSTEM INCOMPATIBLE" in text
    assert "kernel ABI" in text


def test_main_emits_structured_verdict_in_json_mode(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", {"os.family": "Linux", "kernel.modern_abi": True})
    out = io.StringIO()

    exit_code = console.main(["--signals", str(signals), "--snapshot-json"], stdout=out)

    assert exit_code == console.EXIT_INCOMPATIBLE
    payload = json.loads(out.getvalue().splitlines()[0])
    expected = CompatibilityClassifier(
        StaticEnvironmentProbe({"os.family": "Linux", "kernel.modern_abi": True})
    ).classify()
    assert payload == {"verdict": expected.to_report()}


def test_main_runs_script_and_exits_gracefully(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)
    script = _write_script(
        tmp_path / "drill.txt",
        [
            "# warm-up",
            "tick 3",
            "set motor_3 900",
            "tick 2",
            "bogus",
            "diag",
            "shutdown",
            "tick 5",
        ],
    )
    out = io.StringIO()

    exit_code = console.main(["--signals", str(signals), "--script", str(script)], stdout=out)

    assert exit_code == console.EXIT_OK
    text = out.getvalue()
    assert "connected to legacy PLCs" in text
    assert "[t=00005]" in text
    assert "[t=00006]" not in text
    assert "[ERROR] unknown command: bogus" in text
    assert "=== DIAGNOSTIC FIS-CTRL-7001 (tick 5) ===" in text


def test_main_json_snapshots_show_trip_and_reset(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)
    script = _write_script(
        tmp_path / "trip.txt",
        ["tick 2", "force press_1 111", "tick", "release press_1", "tick 4", "reset", "tick"],
    )
    out = io.StringIO()

    exit_code = console.main(
        ["--signals", str(signals), "--script", str(script), "--snapshot-json"],
        stdout=out,
    )

    assert exit_code == console.EXIT_OK
    snapshots = [json.loads(line) for line in out.getvalue().splitlines()[1:]]
    states = [snapshot["system_state"] for snapshot in snapshots]
    assert states == ["NORMAL", "NORMAL"] + ["EMERGENCY_SHUTDOWN"] * 5 + ["NORMAL"]
    assert all(motor["state"] == "emergency_stopped" for motor in snapshots[2]["motors"])


def test_main_honours_max_ticks(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)
    script = _write_script(tmp_path / "long.txt", ["tick 50"])
    out = io.StringIO()

    exit_code = console.main(
        ["--signals", str(signals), "--script", str(script), "--max-ticks", "4", "--snapshot-json"],
        stdout=out,
    )

    assert exit_code == console.EXIT_OK
    assert len(out.getvalue().splitlines()) == 1 + 4


def test_main_reports_internal_fault(tmp_path: Path, monkeypatch: object) -> None:
    def _broken_tick(self, dt: float):
        raise SensorReadUnavailable("temp_1 produced a non-finite value")

    monkeypatch.setattr(SensorBank, "tick", _broken_tick)
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)
    script = _write_script(tmp_path / "one.txt", ["tick"])

    exit_code = console.main(["--signals", str(signals), "--script", str(script)], stdout=io.StringIO())

    assert exit_code == console.EXIT_INTERNAL_FAULT


def test_main_rejects_invalid_config(tmp_path: Path) -> None:
    config = _write_json(tmp_path / "plant.json", {"tick_period_s": -1})
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)

    exit_code = console.main(["--config", str(config), "--signals", str(signals)], stdout=io.StringIO())

    assert exit_code == console.EXIT_INTERNAL_FAULT


@pytest.mark.parametrize(
    "payload",
    [
        {"compatibility": {"requirements": [{"name": "os.family", "expected": "Windows"}]}},
        {"sensors": {"temperature": 5}},
        {"motors": {"max_sped": 1500.0}},
    ],
)
def test_main_maps_malformed_config_to_internal_fault(
    tmp_path: Path, payload: dict[str, object], capsys: pytest.CaptureFixture[str]
) -> None:
    config = _write_json(tmp_path / "plant.json", payload)
    signals = _write_json(tmp_path / "signals.json", _COMPATIBLE)

    exit_code = console.main(["--config", str(config), "--signals", str(signals)], stdout=io.StringIO())

    assert exit_code == console.EXIT_INTERNAL_FAULT
    assert "[ERROR] Configuration failed" in capsys.readouterr().err


def test_main_captures_signals(tmp_path: Path) -> None:
    signals = _write_json(tmp_path / "signals.json", {**_COMPATIBLE, "kernel.modern_abi": True})
    capture = tmp_path / "out" / "capture.json"

    console.main(
        ["--signals", str(signals), "--capture-signals", str(capture)],
        stdout=io.StringIO(),
    )

    assert json.loads(capture.read_text(encoding="utf-8"))["kernel.modern_abi"] is True


def test_interactive_console_stops_on_end_of_input() -> None:
    first_tick = threading.Event()
    input_done = threading.Event()

    def _lines():
        first_tick.wait(5.0)
        yield "status\n"
        yield "set motor_3 100\n"
        input_done.set()

    session = build_session(PlantConfig(tick_period_s=0.01), sleep=lambda _: input_done.wait(5.0))
    session.clock.subscribe(lambda snapshot: first_tick.set())
    verdict = CompatibilityClassifier(StaticEnvironmentProbe(_COMPATIBLE)).classify()
    out = io.StringIO()
    operator = console.OperatorConsole(out, show_ticks=False)
    operator.attach(session, verdict)

    operator.run_interactive(_lines(), max_ticks=10_000)

    assert session.clock.state == ClockState.STOPPED
    assert session.motors.status("motor_3").target_speed == 100.0
    assert "[t=" in out.getvalue()


def test_handle_line_reports_invalid_input_without_touching_plant() -> None:
    session = build_session(PlantConfig(), sleep=lambda _: None)
    verdict = CompatibilityClassifier(StaticEnvironmentProbe(_COMPATIBLE)).classify()
    out = io.StringIO()
    operator = console.OperatorConsole(out)
    operator.attach(session, verdict)
    before = session.clock.snapshot()

    operator.handle_line("set motor_1 lots")
    operator.handle_line("help")
    session.clock.apply_pending()

    assert session.clock.snapshot() == before
    assert "[ERROR] not a number: lots" in out.getvalue()
    assert "commands:" in out.getvalue()


def test_reader_status_uses_only_published_snapshots(monkeypatch: pytest.MonkeyPatch) -> None:
    session = build_session(PlantConfig(), sleep=lambda _: None)
    verdict = CompatibilityClassifier(StaticEnvironmentProbe(_COMPATIBLE)).classify()
    out = io.StringIO()
    operator = console.OperatorConsole(out, show_ticks=False)
    operator.attach(session, verdict)

    def _live_read(self):
        raise AssertionError("live sensor read from the input thread")

    with monkeypatch.context() as patch:
        patch.setattr(SensorBank, "readings", _live_read)
        operator.handle_line("status", published_only=True)
        operator.handle_line("diag", published_only=True)

    assert out.getvalue().count("[ERROR] no snapshot published yet") == 2

    session.clock.start()
    session.clock.tick()
    operator.handle_line("status", published_only=True)

    assert "[t=00001]" in out.getvalue()


def test_diag_without_verdict_raises_runtime_error() -> None:
    session = build_session(PlantConfig(), sleep=lambda _: None)
    verdict = CompatibilityClassifier(StaticEnvironmentProbe(_COMPATIBLE)).classify()
    operator = console.OperatorConsole(io.StringIO())
    operator.attach(session, verdict)
    operator._verdict = None

    with pytest.raises(RuntimeError, match="no compatibility verdict"):
        operator.handle_line("diag")
