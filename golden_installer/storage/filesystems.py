"""ext4/vfat filesystem operations (blkid, e2fsck, tune2fs, resize2fs, wipefs)."""

from __future__ import annotations

import re
from typing import Optional

from golden_installer.logging import LoggerFactory

from .commands import run_command


log = LoggerFactory.for_filesystem()

# e2fsck exit status bits (see e2fsck(8))
FSCK_OK = 0
FSCK_CORRECTED = 1
FSCK_CORRECTED_REBOOT = 2
FSCK_UNCORRECTED = 4

_BLOCK_COUNT = re.compile(r"^Block count:\s*(\d+)", re.MULTILINE)
_BLOCK_SIZE = re.compile(r"^Block size:\s*(\d+)", re.MULTILINE)


def read_uuid(node: str) -> Optional[str]:
    """Filesystem UUID of ``node`` as reported by blkid, or None."""
    result = run_command(
        ["blkid", "-s", "UUID", "-o", "value", node], check=False, log_output=False
    )
    if result.returncode != 0:
        return None
    value = result.stdout.strip()
    return value or None


def check_filesystem(node: str) -> int:
    """Run a forced, auto-repairing e2fsck and return its exit status."""
    result = run_command(["e2fsck", "-f", "-y", node], check=False)
    return result.returncode


def describe_fsck_status(returncode: int) -> str:
    if returncode == FSCK_OK:
        return "clean"
    if returncode in (FSCK_CORRECTED, FSCK_CORRECTED_REBOOT):
        return "errors corrected"
    if returncode & FSCK_UNCORRECTED:
        return "errors left uncorrected"
    return f"check failed with exit status {returncode}"


def fsck_succeeded(returncode: int) -> bool:
    return returncode in (FSCK_OK, FSCK_CORRECTED, FSCK_CORRECTED_REBOOT)


def set_uuid(node: str, uuid: str) -> None:
    run_command(["tune2fs", "-U", uuid, node])


def resize_filesystem(node: str) -> None:
    """Grow an ext filesystem to fill its block device."""
    run_command(["resize2fs", node])


def parse_filesystem_size(output: str) -> Optional[int]:
    """Filesystem size in bytes from ``tune2fs -l`` output."""
    count = _BLOCK_COUNT.search(output)
    size = _BLOCK_SIZE.search(output)
    if not count or not size:
        return None
    return int(count.group(1)) * int(size.group(1))


def get_filesystem_size(node: str) -> Optional[int]:
    result = run_command(["tune2fs", "-l", node], check=False, log_output=False)
    if result.returncode != 0:
        return None
    return parse_filesystem_size(result.stdout)


def wipe_signatures(node: str) -> None:
    run_command(["wipefs", "-a", "-f", node])
