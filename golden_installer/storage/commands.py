"""Command execution helpers shared by every tool adapter."""

from __future__ import annotations

import shutil
import subprocess
from typing import Iterable, Optional, Sequence

from golden_installer.logging import LoggerFactory

from .exceptions import CommandError


log = LoggerFactory.for_command()


def run_command(
    command: Sequence[str],
    check: bool = True,
    input_text: Optional[str] = None,
    log_output: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command and capture its output.

    Raises:
        CommandError: If check is True and the command exits non-zero or
            cannot be executed at all.
    """
    command = [str(part) for part in command]
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            input=input_text,
            text=True,
            capture_output=True,
        )
    except FileNotFoundError as error:
        if check:
            raise CommandError(command, 127, stderr=str(error)) from error
        log.debug(f"Command not found: {command[0]}")
        return subprocess.CompletedProcess(command, 127, stdout="", stderr=str(error))
    if result.stdout and log_output:
        log.bind(tags=["command", "output"]).trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.bind(tags=["command", "output"]).trace(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")
    if check and result.returncode != 0:
        raise CommandError(command, result.returncode, result.stderr or "", result.stdout or "")
    return result


def run_quiet(command: Sequence[str]) -> bool:
    """Run a cleanup command whose failure is expected and tolerated.

    Returns True when the command exited zero.
    """
    result = run_command(command, check=False, log_output=False)
    return result.returncode == 0


def missing_tools(tools: Iterable[str]) -> list[str]:
    """Return the tools from ``tools`` that are not on PATH, in order."""
    return [tool for tool in tools if shutil.which(tool) is None]
