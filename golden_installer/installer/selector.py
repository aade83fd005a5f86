"""Target disk selection.

The selected disk is never the live boot medium. In automatic mode it is
also never attached over a removable transport (USB), so the stick the
installer was booted from, or any other stick, cannot be picked.
"""

from __future__ import annotations

import re
import time
from typing import Iterable, Optional

from golden_installer.config.settings import InstallerSettings
from golden_installer.domain import Disk, InstallContext, PartitionLayout
from golden_installer.logging import EventLogger, LoggerFactory
from golden_installer.storage import devices
from golden_installer.storage.exceptions import NoEligibleDeviceError, UserCancelledError
from golden_installer.ui import console


log = LoggerFactory.for_disk()


def eligible_disks(
    disks: Iterable[Disk], settings: InstallerSettings, auto: bool
) -> list[Disk]:
    """Filter ``disks`` down to installation candidates, keeping their order."""
    pattern = re.compile(settings.disk_name_pattern)
    candidates = []
    for disk in disks:
        if not pattern.match(disk.name):
            continue
        if disk.is_boot_device:
            log.debug(f"Skipping {disk.name}: live boot medium")
            continue
        if auto and disk.transport in settings.removable_transports:
            log.debug(f"Skipping {disk.name}: {disk.transport} disk in automatic mode")
            continue
        candidates.append(disk)
    return candidates


def choose_largest(candidates: Iterable[Disk]) -> Optional[Disk]:
    """Largest disk; on equal size the first enumerated wins."""
    best = None
    for disk in candidates:
        if best is None or disk.size_bytes > best.size_bytes:
            best = disk
    return best


def select_disk(
    disks: Iterable[Disk],
    settings: InstallerSettings,
    *,
    auto: bool,
    boot_device: Optional[str] = None,
) -> Disk:
    """Pick the target disk from an enumeration.

    Raises:
        NoEligibleDeviceError: If no candidate remains after filtering
    """
    target = choose_largest(eligible_disks(disks, settings, auto))
    if target is None:
        raise NoEligibleDeviceError(boot_device=boot_device, auto=auto)
    return target


def select_target(ctx: InstallContext, input_func: console.InputFunc = input) -> Disk:
    settings = ctx.settings
    ctx.boot_device = devices.get_boot_device(settings.live_medium_mounts)
    if ctx.boot_device:
        log.info(f"Live boot device: {ctx.boot_device}")
    else:
        log.warning("Live boot device could not be determined")

    disks = devices.list_disks(ctx.boot_device)
    for disk in disks:
        log.debug(f"Found disk {disk.format_label()}")

    target = select_disk(disks, settings, auto=ctx.auto, boot_device=ctx.boot_device)
    EventLogger.log_target_selected(log, target.device_path, target.size_bytes)

    if ctx.auto:
        log.warning(
            f"Automatic mode: {target.device_path} will be erased in "
            f"{settings.auto_confirm_delay_seconds:g} seconds"
        )
        time.sleep(settings.auto_confirm_delay_seconds)
    elif not console.confirm_destroy(target, input_func=input_func):
        raise UserCancelledError(target.device_path)

    ctx.target = target
    ctx.layout = PartitionLayout.for_disk(target)
    return target
