"""
External process supervision, using /bin/sh as the external tool.
"""
from pathlib import Path
import sys
import pytest

from amplugins.core.supervisor import ExternalProcessSupervisor, Ticker, parse_console_output

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="uses /bin/sh")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_ticker():
    clock = FakeClock()
    ticker = Ticker(20, clock=clock)
    assert not ticker.due()
    clock.now = 19.9
    assert not ticker.due()
    clock.now = 20.0
    assert ticker.due()
    # Re-armed by the previous tick
    assert not ticker.due()
    clock.now = 45.0
    ticker.reset()
    clock.now = 64.0
    assert not ticker.due()


def test_parse_console_output(tmp_path: Path):
    console = tmp_path / "console.txt"
    console.write_text(
        "\n"
        "MSGF v7097 (06/26/2012)\n"
        "Loading spectra\n"
        "Error: something went wrong\n"
        "Another ERROR line\n"
        "Done\n",
        encoding="utf-8",
    )
    info = parse_console_output(console, "MSGF")
    assert info.version == "MSGF v7097 (06/26/2012)"
    assert info.error_line == "Another ERROR line"
    assert info.line_count == 5


def test_version_only_in_first_lines(tmp_path: Path):
    console = tmp_path / "console.txt"
    console.write_text("a\nb\nc\nMSGF v1\n", encoding="utf-8")
    assert parse_console_output(console, "MSGF").version == ""
    assert parse_console_output(tmp_path / "missing.txt", "MSGF").line_count == 0


def test_launch_success(tmp_path: Path):
    sup = ExternalProcessSupervisor(tmp_path, "MSGF", version_prefix="MSGF", monitor_interval=0.25)
    ok = sup.launch("sh", ["-c", "echo 'MSGF v7097'; echo 'working on it'"])

    assert ok
    assert sup.exit_code == 0
    assert sup.console_info.version == "MSGF v7097"
    assert sup.console_file.read_text(encoding="utf-8").splitlines() == ["MSGF v7097", "working on it"]
    assert sup.script_path.name == "Run_MSGF.sh"
    assert "working on it" in sup.script_path.read_text(encoding="utf-8")


def test_launch_failure_reports_error_line(tmp_path: Path):
    sup = ExternalProcessSupervisor(tmp_path, "Tool", console_file=tmp_path / "Tool_Console.txt")
    ok = sup.launch("sh", ["-c", "echo 'Error: bad input' 1>&2; exit 3"])

    assert not ok
    assert sup.exit_code == 3
    assert sup.console_info.error_line == "Error: bad input"


def test_launch_missing_executable(tmp_path: Path):
    sup = ExternalProcessSupervisor(tmp_path, "Tool")
    assert not sup.launch(str(tmp_path / "no_such_tool"), [])
    assert sup.exit_code == 127


def test_callbacks_fire_while_running(tmp_path: Path):
    samples = []
    sup = ExternalProcessSupervisor(tmp_path, "Sleeper", monitor_interval=0.1)
    sup.add_callback(samples.append)
    assert sup.monitor_interval == 0.25

    assert sup.launch("sh", ["-c", "sleep 1"])
    assert len(samples) >= 2
    assert samples[-1].elapsed > samples[0].elapsed
    assert all(s.pid > 0 for s in samples)


def test_empty_console_file_removed(tmp_path: Path):
    sup = ExternalProcessSupervisor(tmp_path, "Quiet")
    assert sup.launch("sh", ["-c", "true"])
    assert not sup.console_file.exists()
