"""Progress parsing for dd and the streaming command runner used by the cloner."""

from __future__ import annotations

import re
import select
import subprocess
from dataclasses import dataclass
from typing import IO, Callable, Optional, Sequence

from golden_installer.logging import EventLogger, LoggerFactory, ThrottledLogger

from .devices import human_size
from .exceptions import CommandError


log = LoggerFactory.for_clone()

_BYTES = re.compile(r"(\d+)\s+bytes")
_RATE = re.compile(r"(\d+(?:\.\d+)?)\s*([kKMG]i?B)/s")

_RATE_UNITS = {
    "kB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "KiB": 1024,
    "MiB": 1024**2,
    "GiB": 1024**3,
}


@dataclass(frozen=True)
class DDProgress:
    """One ``status=progress`` update from dd."""

    bytes_copied: int
    rate: Optional[float] = None  # bytes per second

    @property
    def rate_mbps(self) -> Optional[float]:
        if self.rate is None:
            return None
        return self.rate / (1024 * 1024)


def parse_dd_progress(line: str) -> Optional[DDProgress]:
    """Parse a dd progress or summary line.

    Example:
        "1073741824 bytes (1.1 GB, 1.0 GiB) copied, 12 s, 89.5 MB/s"
    """
    bytes_match = _BYTES.search(line)
    if not bytes_match:
        return None
    rate = None
    rate_match = _RATE.search(line)
    if rate_match:
        rate = float(rate_match.group(1)) * _RATE_UNITS.get(rate_match.group(2), 1)
    return DDProgress(bytes_copied=int(bytes_match.group(1)), rate=rate)


def format_eta(seconds):
    """Format ETA in HH:MM:SS or MM:SS format."""
    if seconds is None:
        return None
    seconds = int(seconds)
    if seconds < 0:
        return None
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_progress_line(progress: DDProgress, total_bytes: Optional[int] = None) -> str:
    """Human-readable progress, e.g. "Wrote 1.0GB 10.0% 85.0MB/s ETA 01:48"."""
    line = f"Wrote {human_size(progress.bytes_copied)}"
    if total_bytes:
        line += f" {(progress.bytes_copied / total_bytes) * 100:.1f}%"
    if progress.rate:
        line += f" {human_size(progress.rate)}/s"
        if total_bytes and progress.bytes_copied <= total_bytes:
            eta = format_eta((total_bytes - progress.bytes_copied) / progress.rate)
            if eta:
                line += f" ETA {eta}"
    return line


def run_with_streaming_progress(
    command: Sequence[str],
    *,
    stdin_source: Optional[IO] = None,
    total_bytes: Optional[int] = None,
    progress_callback: Optional[Callable[[DDProgress], None]] = None,
    interval_seconds: float = 5.0,
) -> subprocess.CompletedProcess:
    """Run ``command`` while parsing dd-style progress from its stderr.

    Progress is logged through a throttled logger so the console gets one
    update every ``interval_seconds``.

    Raises:
        CommandError: If the command exits non-zero.
    """
    command = [str(part) for part in command]
    progress_log = log.bind(tags=["clone", "progress"])
    throttled = ThrottledLogger(progress_log, interval_seconds=interval_seconds)
    log.debug(f"Running command: {' '.join(command)}")
    process = subprocess.Popen(
        command,
        stdin=stdin_source,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    stderr_lines = []
    last_progress = None
    while True:
        ready, _, _ = select.select([process.stderr], [], [], 1.0)
        line = None
        if ready:
            line = process.stderr.readline()
        if line:
            stderr_lines.append(line)
            log.bind(tags=["clone", "output"]).trace(f"stderr: {line.strip()}")
            progress = parse_dd_progress(line)
            if progress is not None:
                last_progress = progress
                if progress_callback:
                    progress_callback(progress)
                EventLogger.log_clone_progress(
                    progress_log, progress.bytes_copied, progress.rate_mbps
                )
                throttled.info("progress", format_progress_line(progress, total_bytes))
        if process.poll() is not None and not line:
            break
    remaining_stderr = process.stderr.read() if process.stderr else ""
    if remaining_stderr:
        stderr_lines.append(remaining_stderr)
    stdout_data = process.stdout.read() if process.stdout else ""
    process.wait()
    stderr_output = "".join(stderr_lines)
    if process.returncode != 0:
        raise CommandError(command, process.returncode, stderr_output, stdout_data)
    if last_progress is not None:
        log.info(format_progress_line(last_progress, total_bytes))
    return subprocess.CompletedProcess(
        command, process.returncode, stdout=stdout_data, stderr=stderr_output
    )
