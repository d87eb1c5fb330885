"""Text-mode operator console and process entrypoint for the plant simulator."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence, TextIO

from forlenza.compat import (
    CompatibilityClassifier,
    CompatibilityVerdict,
    EnvironmentProbe,
    HostEnvironmentProbe,
    StaticEnvironmentProbe,
    load_signal_snapshot,
    save_signal_snapshot,
)
from forlenza.config import PlantConfig, load_plant_config
from forlenza.diagnostics import DiagnosticReport, run_diagnostic
from forlenza.domain.errors import IncompatibleEnvironment, InvalidCommand
from forlenza.domain.models import ClockState, PlantSnapshot
from forlenza.sim import CommandOutcome, PlantSession, Shutdown, build_session, parse_command

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INTERNAL_FAULT = 2
EXIT_INCOMPATIBLE = 3

_HELP_TEXT = (
    "commands: set <motor_id> <rpm> | pause | resume | reset | estop [reason] | "
    "clear <motor_id> | force <sensor_id> <value> | release <sensor_id> | shutdown\n"
    "console:  status | diag | help | tick [n] (script mode only)"
)


class OperatorConsole:
    """Render plant state and forward operator lines to the simulation clock."""

    def __init__(self, stream: TextIO, *, json_lines: bool = False, show_ticks: bool = True) -> None:
        self._stream = stream
        self._json_lines = json_lines
        self._show_ticks = show_ticks
        self._lock = threading.Lock()
        self._session: PlantSession | None = None
        self._verdict: CompatibilityVerdict | None = None

    def attach(self, session: PlantSession, verdict: CompatibilityVerdict) -> None:
        """Subscribe to snapshots and command outcomes of one session."""
        self._session = session
        self._verdict = verdict
        if self._show_ticks:
            session.clock.subscribe(self.render_snapshot)
        session.clock.subscribe_outcomes(self.render_outcome)

    def render_verdict(self, report: Mapping[str, Any]) -> None:
        if self._json_lines:
            self._write(json.dumps({"verdict": dict(report)}, sort_keys=True))
            return
        if report["compatible"]:
            self._write("Forlenza Industrial Control System v2.1: connected to legacy PLCs")
            return
        lines = ["Forlenza Industrial Control System v2.1", "SYSTEM INCOMPATIBLE"]
        lines.extend(f"  - {reason}" for reason in report["reasons"])
        self._write("\n".join(lines))

    def render_snapshot(self, snapshot: PlantSnapshot) -> None:
        if self._json_lines:
            self._write(json.dumps(snapshot.to_jsonable(), sort_keys=True))
            return
        sensors = " ".join(
            f"{reading.sensor_id}={reading.value:.1f}{reading.unit}{'*' if reading.forced else ''}"
            for reading in snapshot.sensors
        )
        motors = " ".join(
            f"{status.motor_id}={status.state.value}@{status.current_speed:.0f}rpm"
            for status in snapshot.motors
        )
        line = f"[t={snapshot.tick:05d}] {snapshot.system_state.name:<18} | {sensors} | {motors}"
        if snapshot.interlock_reasons:
            line += "\n  ! " + "\n  ! ".join(snapshot.interlock_reasons)
        self._write(line)

    def render_outcome(self, outcome: CommandOutcome) -> None:
        if outcome.accepted:
            logger.debug("command applied: %r", outcome.command)
            return
        self._write_error(outcome.error or "command rejected")

    def render_diagnostic(self, report: DiagnosticReport) -> None:
        if self._json_lines:
            self._write(json.dumps({"diagnostic": report.to_jsonable()}, sort_keys=True))
            return
        lines = [f"=== DIAGNOSTIC {report.system_id} (tick {report.tick}) ==="]
        for check in report.checks:
            mark = "ok" if check.passed else "FAIL"
            lines.append(f"  [{mark:>4}] {check.name}: {check.detail}")
        lines.append("All systems operational" if report.passed else "Diagnostic found problems")
        self._write("\n".join(lines))

    def handle_line(self, line: str, *, published_only: bool = False) -> None:
        """Interpret one operator line; invalid input never touches the plant.

        With `published_only`, `status` and `diag` render the last published
        snapshot instead of reading the live banks.
        """
        session = self._require_session()
        text = line.strip()
        if not text or text.startswith("#"):
            return

        verb = text.split()[0].lower()
        if verb == "help":
            self._write(_HELP_TEXT)
            return
        if verb in ("status", "diag"):
            snapshot = self._current_snapshot(published_only=published_only)
            if snapshot is None:
                self._write_error("no snapshot published yet")
            elif verb == "status":
                self.render_snapshot(snapshot)
            else:
                self.render_diagnostic(run_diagnostic(self._require_verdict(), snapshot, session.config.sensor_specs))
            return

        try:
            session.clock.submit(parse_command(text))
        except InvalidCommand as exc:
            self._write_error(str(exc))

    def run_interactive(self, lines: Iterable[str], *, max_ticks: int | None = None) -> int:
        """Run the clock loop while a reader thread feeds operator lines."""
        session = self._require_session()
        reader = threading.Thread(
            target=self._feed_lines,
            args=(lines,),
            name="operator-input",
            daemon=True,
        )
        reader.start()
        return session.clock.run(max_ticks=max_ticks)

    def run_script(self, lines: Iterable[str], *, max_ticks: int | None = None) -> int:
        """Replay a command script; `tick [n]` advances simulated time."""
        session = self._require_session()
        clock = session.clock
        clock.start()
        executed = 0

        for line in lines:
            if clock.state == ClockState.STOPPED:
                break
            tokens = line.split()
            if tokens and tokens[0].lower() == "tick":
                count = self._parse_tick_count(tokens[1:])
                if count is None:
                    continue
                for _ in range(count):
                    clock.apply_pending()
                    if clock.state == ClockState.STOPPED:
                        break
                    if clock.state == ClockState.RUNNING:
                        clock.tick()
                        executed += 1
                    if max_ticks is not None and executed >= max_ticks:
                        clock.stop()
                        break
                continue
            self.handle_line(line)

        clock.apply_pending()
        clock.stop()
        return executed

    def _feed_lines(self, lines: Iterable[str]) -> None:
        session = self._require_session()
        for line in lines:
            if session.clock.state == ClockState.STOPPED:
                return
            self.handle_line(line, published_only=True)
        try:
            session.clock.submit(Shutdown())
        except InvalidCommand:
            logger.debug("console input ended after the clock stopped")

    def _parse_tick_count(self, args: list[str]) -> int | None:
        if not args:
            return 1
        try:
            count = int(args[0])
        except ValueError:
            self._write_error(f"tick expects an integer, got {args[0]}")
            return None
        if count <= 0:
            self._write_error("tick count must be > 0")
            return None
        return count

    def _current_snapshot(self, *, published_only: bool) -> PlantSnapshot | None:
        clock = self._require_session().clock
        if clock.last_snapshot is not None or published_only:
            return clock.last_snapshot
        return clock.snapshot()

    def _require_session(self) -> PlantSession:
        if self._session is None:
            raise RuntimeError("console is not attached to a plant session")
        return self._session

    def _require_verdict(self) -> CompatibilityVerdict:
        if self._verdict is None:
            raise RuntimeError("console has no compatibility verdict")
        return self._verdict

    def _write(self, text: str) -> None:
        with self._lock:
            print(text, file=self._stream, flush=True)

    def _write_error(self, message: str) -> None:
        if self._json_lines:
            self._write(json.dumps({"error": message}, sort_keys=True))
        else:
            self._write(f"[ERROR] {message}")


def build_parser() -> argparse.ArgumentParser:
    """Create parser for the operator console."""
    parser = argparse.ArgumentParser(
        prog="forlenza-console",
        description=(
            "Check host compatibility with the legacy Forlenza control system and, "
            "when compatible, run the simulated plant console."
        ),
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON plant configuration file.")
    parser.add_argument("--seed", type=int, default=None, help="Override the plant RNG seed.")
    parser.add_argument(
        "--tick-period",
        type=float,
        default=None,
        help="Override the tick period in seconds.",
    )
    parser.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="Stop gracefully after this many ticks.",
    )
    parser.add_argument(
        "--signals",
        type=Path,
        default=None,
        help="JSON environment snapshot used instead of probing the host.",
    )
    parser.add_argument(
        "--capture-signals",
        type=Path,
        default=None,
        help="Write the probed environment signals to this JSON file.",
    )
    parser.add_argument(
        "--script",
        type=Path,
        default=None,
        help="Replay operator commands from a file instead of reading stdin.",
    )
    parser.add_argument(
        "--snapshot-json",
        action="store_true",
        help="Emit verdict, snapshots and diagnostics as JSON lines.",
    )
    parser.add_argument(
        "--quiet-ticks",
        action="store_true",
        help="Do not render a snapshot after every tick.",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="WARNING",
    )
    return parser


def main(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    """CLI entrypoint for the operator console."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    in_stream = stdin if stdin is not None else sys.stdin
    out_stream = stdout if stdout is not None else sys.stdout

    try:
        config = _resolve_config(args)
        probe = _resolve_probe(args)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Configuration failed: {exc}", file=sys.stderr)
        return EXIT_INTERNAL_FAULT

    verdict = CompatibilityClassifier(probe, config.compatibility).classify()
    console = OperatorConsole(out_stream, json_lines=args.snapshot_json, show_ticks=not args.quiet_ticks)
    console.render_verdict(verdict.to_report())
    try:
        verdict.require_compatible()
    except IncompatibleEnvironment as exc:
        logger.info("%s", exc)
        return EXIT_INCOMPATIBLE

    try:
        session = build_session(config)
        console.attach(session, verdict)
        if args.script is not None:
            lines = args.script.read_text(encoding="utf-8").splitlines()
            executed = console.run_script(lines, max_ticks=args.max_ticks)
        else:
            executed = console.run_interactive(in_stream, max_ticks=args.max_ticks)
    except KeyboardInterrupt:
        logger.info("operator interrupted the console")
        return EXIT_OK
    except Exception as exc:
        print(f"[ERROR] Unrecoverable internal fault: {exc}", file=sys.stderr)
        return EXIT_INTERNAL_FAULT

    logger.info("console exited after %d ticks", executed)
    return EXIT_OK


def _resolve_config(args: argparse.Namespace) -> PlantConfig:
    config = load_plant_config(args.config) if args.config is not None else PlantConfig()
    overrides: dict[str, Any] = {}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.tick_period is not None:
        overrides["tick_period_s"] = args.tick_period
    if args.max_ticks is not None and args.max_ticks <= 0:
        raise ValueError("--max-ticks must be > 0")
    if not overrides:
        return config
    return replace(config, **overrides)


def _resolve_probe(args: argparse.Namespace) -> EnvironmentProbe:
    probe: StaticEnvironmentProbe | HostEnvironmentProbe
    if args.signals is not None:
        probe = load_signal_snapshot(args.signals)
    else:
        probe = HostEnvironmentProbe()
    if args.capture_signals is not None:
        save_signal_snapshot(args.capture_signals, probe.capture())
    return probe


if __name__ == "__main__":
    raise SystemExit(main())
