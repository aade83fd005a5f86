"""Zeroing of partition-table regions with dd."""

from __future__ import annotations

from typing import Optional

from golden_installer.logging import LoggerFactory

from .commands import run_command


log = LoggerFactory.for_disk()

BYTES_PER_MIB = 1024 * 1024


def build_zero_command(device_path: str, count_mib: int, seek_mib: int = 0) -> list[str]:
    command = [
        "dd",
        "if=/dev/zero",
        f"of={device_path}",
        "bs=1M",
        f"count={count_mib}",
    ]
    if seek_mib:
        command.append(f"seek={seek_mib}")
    command.append("conv=fsync")
    return command


def tail_seek_mib(size_bytes: int, wipe_mib: int) -> Optional[int]:
    """Offset of the trailing wipe region, or None for disks too small to need it.

    The trailing region is only zeroed when it cannot overlap the leading one.
    """
    seek_mib = size_bytes // BYTES_PER_MIB - wipe_mib
    if seek_mib > wipe_mib:
        return seek_mib
    return None


def zero_head(device_path: str, wipe_mib: int) -> None:
    """Zero the first ``wipe_mib`` MiB (protective MBR and primary GPT)."""
    run_command(build_zero_command(device_path, wipe_mib))
    log.debug(f"Zeroed first {wipe_mib} MiB of {device_path}")


def zero_tail(device_path: str, size_bytes: int, wipe_mib: int) -> bool:
    """Zero the last ``wipe_mib`` MiB (backup GPT); False when skipped."""
    seek_mib = tail_seek_mib(size_bytes, wipe_mib)
    if seek_mib is None:
        log.debug(f"{device_path} too small to zero its tail separately")
        return False
    run_command(build_zero_command(device_path, wipe_mib, seek_mib))
    log.debug(f"Zeroed last {wipe_mib} MiB of {device_path}")
    return True
