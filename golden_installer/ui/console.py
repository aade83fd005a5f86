"""Console output and operator prompts.

The installer runs on the live system's text console, so all operator
interaction is plain stdout/stdin. Prompts take an ``input_func`` so callers
and tests can substitute the source of answers.
"""

from __future__ import annotations

import sys
from typing import Callable, Iterable, Optional, TextIO

from golden_installer.domain import Disk


InputFunc = Callable[[str], str]

RULE = "=" * 60


def display_lines(lines: Iterable[str], stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    for line in lines:
        stream.write(f"{line}\n")
    stream.flush()


def show_banner(version: str, auto: bool, stream: Optional[TextIO] = None) -> None:
    mode = "automatic" if auto else "interactive"
    display_lines(
        [RULE, f"  Golden image installer {version} ({mode} mode)", RULE],
        stream=stream,
    )


def confirm_destroy(
    disk: Disk, input_func: InputFunc = input, stream: Optional[TextIO] = None
) -> bool:
    """Ask the operator to type "yes" before the target is erased.

    Anything other than exactly "yes" (including end of input) declines.
    """
    display_lines(
        [
            "",
            "WARNING: ALL DATA ON THE FOLLOWING DISK WILL BE DESTROYED",
            f"  {disk.device_path}: {disk.format_label()}",
            "",
        ],
        stream=stream,
    )
    try:
        answer = input_func("Type 'yes' to continue: ")
    except EOFError:
        return False
    return answer.strip() == "yes"


def prompt_hostname(
    default: str, input_func: InputFunc = input
) -> str:
    try:
        answer = input_func(f"Enter hostname [{default}]: ")
    except EOFError:
        return default
    return answer.strip() or default


def wait_for_reboot(input_func: InputFunc = input) -> None:
    try:
        input_func("Press Enter to reboot...")
    except EOFError:
        pass


def show_completion(
    target: Optional[Disk],
    hostname: Optional[str],
    warnings: Iterable[str],
    auto: bool,
    stream: Optional[TextIO] = None,
) -> None:
    lines = [RULE, "  Installation complete", RULE]
    if target is not None:
        lines.append(f"  Target:   {target.device_path} ({target.format_label()})")
    if hostname:
        lines.append(f"  Hostname: {hostname}")
    warnings = list(warnings)
    if warnings:
        lines.append("")
        lines.append(f"  {len(warnings)} step(s) failed and were skipped:")
        lines.extend(f"    - {warning}" for warning in warnings)
    lines.append("")
    if auto:
        lines.append("  Automatic mode: the system is left running.")
    else:
        lines.append("  Remove the installation media before rebooting.")
    display_lines(lines, stream=stream)
