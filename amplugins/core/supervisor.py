"""
Launch an external tool through a generated command script and babysit it.

The supervisor blocks on the child process with bounded waits. Between waits it
samples resource usage with psutil and hands the sample to the registered
callbacks, so callers can poll output files for progress without a background
thread. Once the process exits, the console capture file is scanned for the
tool's version banner and for error lines.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
import logging
import shlex
import subprocess
import sys
import time

import psutil

from amplugins.core.utils import delete_file, slugify

MIN_MONITOR_INTERVAL = 0.25
DEFAULT_MONITOR_INTERVAL = 2.0
VERSION_SEARCH_LINES = 3


@dataclass
class ProcessStats:
    """Resource usage of the supervised process tree at one poll."""
    pid: int
    elapsed: float
    cpu_percent: float = 0.0
    memory_mb: float = 0.0


@dataclass
class ConsoleOutputInfo:
    """What could be learned from a tool's console output."""
    version: str = ""
    error_line: str = ""
    line_count: int = 0


class Ticker:
    """
    Fires at most once per interval. Polled from the supervisor callback to
    throttle slow work such as counting lines of an output file.
    """
    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last = clock()

    def due(self) -> bool:
        """True (and re-arms) if at least `interval` seconds passed since the last tick."""
        now = self._clock()
        if now - self._last >= self.interval:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        """Restart the interval from now."""
        self._last = self._clock()


def parse_console_output(
    path: Path,
    version_prefix: str = "",
    version_lines: int = VERSION_SEARCH_LINES,
) -> ConsoleOutputInfo:
    """
    Scan a console capture file.
    The version is the first line among the first `version_lines` lines that starts
    with `version_prefix`; the error is the last line containing "error".
    """
    info = ConsoleOutputInfo()
    path = Path(path)
    if not path.exists():
        return info

    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            text = line.strip()
            if not text:
                continue
            info.line_count += 1
            if (version_prefix and not info.version and info.line_count <= version_lines
                    and text.lower().startswith(version_prefix.lower())):
                info.version = text
            if "error" in text.lower():
                info.error_line = text
    return info


class ExternalProcessSupervisor:
    """
    Runs one external command at a time from a working directory.

    Usage:
        sup = ExternalProcessSupervisor(work_dir, "MSGF", console_file=...)
        sup.add_callback(on_poll)
        ok = sup.launch("java", ["-jar", "MSGF.jar", ...])
    """
    def __init__(
        self,
        work_dir: Path,
        tool_name: str,
        console_file: Path | None = None,
        monitor_interval: float = DEFAULT_MONITOR_INTERVAL,
        version_prefix: str = "",
        logger: logging.Logger | None = None,
    ):
        self.work_dir = Path(work_dir)
        self.tool_name = tool_name
        self.console_file = Path(console_file) if console_file else self.work_dir / f"{slugify(tool_name)}_ConsoleOutput.txt"
        self.monitor_interval = max(MIN_MONITOR_INTERVAL, monitor_interval)
        self.version_prefix = version_prefix
        self.logger = logger or logging.getLogger(__name__)
        self.exit_code: int | None = None
        self.console_info = ConsoleOutputInfo()
        self._callbacks: list[Callable[[ProcessStats], None]] = []

    def add_callback(self, callback: Callable[[ProcessStats], None]) -> None:
        """Register a function called between waits while the process runs."""
        self._callbacks.append(callback)

    @property
    def script_path(self) -> Path:
        """Location of the generated command script."""
        ext = ".bat" if sys.platform.startswith("win") else ".sh"
        return self.work_dir / f"Run_{slugify(self.tool_name)}{ext}"

    def command_line(self, executable: str, arguments: list[str]) -> str:
        """Render the command line as written to the script."""
        parts = [str(executable)] + [str(a) for a in arguments]
        if sys.platform.startswith("win"):
            return subprocess.list2cmdline(parts)
        return shlex.join(parts)

    def write_command_script(self, executable: str, arguments: list[str]) -> Path:
        """Write the command script the process is launched through."""
        script = self.script_path
        cmd = self.command_line(executable, arguments)
        if sys.platform.startswith("win"):
            script.write_text(f"@echo off\r\n{cmd}\r\n", encoding="utf-8")
        else:
            script.write_text(f"#!/bin/sh\n{cmd}\n", encoding="utf-8")
        return script

    def _sample(self, proc: "psutil.Process | None", pid: int, started: float) -> ProcessStats:
        stats = ProcessStats(pid=pid, elapsed=time.monotonic() - started)
        if proc is None:
            return stats
        try:
            tree = [proc] + proc.children(recursive=True)
            for p in tree:
                try:
                    stats.cpu_percent += p.cpu_percent(interval=None)
                    stats.memory_mb += p.memory_info().rss / (1024 * 1024)
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
        return stats

    def launch(self, executable: str, arguments: list[str], working_dir: Path | None = None) -> bool:
        """
        Run the command to completion. Returns True if it exited with code 0.
        """
        cwd = Path(working_dir) if working_dir else self.work_dir
        script = self.write_command_script(executable, arguments)
        if sys.platform.startswith("win"):
            cmd = ["cmd", "/c", str(script)]
        else:
            cmd = ["/bin/sh", str(script)]

        self.logger.info("Running %s: %s", self.tool_name, self.command_line(executable, arguments))
        self.exit_code = None
        started = time.monotonic()

        # 1. Launch, merging stdout and stderr into the console file
        try:
            with open(self.console_file, "w", encoding="utf-8") as console:
                proc = subprocess.Popen(cmd, cwd=cwd, stdout=console, stderr=subprocess.STDOUT)
                try:
                    ps_proc = psutil.Process(proc.pid)
                except psutil.NoSuchProcess:
                    ps_proc = None

                # 2. Bounded waits with callbacks in between
                while True:
                    try:
                        proc.wait(timeout=self.monitor_interval)
                        break
                    except subprocess.TimeoutExpired:
                        stats = self._sample(ps_proc, proc.pid, started)
                        for callback in self._callbacks:
                            callback(stats)
            self.exit_code = proc.returncode
        except OSError as e:
            self.logger.error("Unable to launch %s: %s", self.tool_name, e)
            return False

        # 3. Inspect the console output
        self.console_info = parse_console_output(self.console_file, self.version_prefix)
        if self.console_info.line_count == 0:
            delete_file(self.console_file, self.logger)
        if self.console_info.version:
            self.logger.info("%s version: %s", self.tool_name, self.console_info.version)

        if self.exit_code != 0:
            self.logger.error("%s exited with code %s", self.tool_name, self.exit_code)
            if self.console_info.error_line:
                self.logger.error("%s console error: %s", self.tool_name, self.console_info.error_line)
            return False
        return True
