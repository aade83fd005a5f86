"""Block device discovery using lsblk, findmnt and blockdev.

Device Detection:
    Uses lsblk with JSON output to enumerate block devices and their properties:
    - Device name (e.g., sda, nvme0n1)
    - Size in bytes
    - Transport (sata, nvme, usb, virtio, ...)
    - Removable flag
    - Model string
    - Child partitions and their mountpoints

Boot Device Detection:
    The live environment is mounted from the installer medium at
    /run/live/medium (or /cdrom on older casper). findmnt resolves the
    source node of that mount and lsblk resolves its parent disk. The
    resulting disk name is what the disk selector must never pick.

All parsing of lsblk/findmnt/blockdev output lives in this module.
"""

from __future__ import annotations

import json
import re
from typing import Iterable, Optional

from golden_installer.domain import Disk
from golden_installer.logging import LoggerFactory

from .commands import run_command
from .exceptions import CommandError


log = LoggerFactory.for_disk()

LSBLK_COLUMNS = "NAME,TYPE,SIZE,MODEL,TRAN,RM,MOUNTPOINT,FSTYPE,PKNAME"
# Unit of blockdev --getsz, regardless of the device sector size
KERNEL_SECTOR_SIZE = 512


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def parse_lsblk_json(output: str) -> list[dict]:
    """Return the blockdevices list from ``lsblk -J`` output."""
    data = json.loads(output or "{}")
    return data.get("blockdevices", []) or []


def get_block_devices(device: Optional[str] = None) -> list[dict]:
    """Return block device data from lsblk.

    Raises:
        CommandError: If lsblk fails.
    """
    command = ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS]
    if device:
        command.append(device)
    result = run_command(command, log_output=False)
    try:
        return parse_lsblk_json(result.stdout)
    except json.JSONDecodeError as error:
        raise CommandError(command, 0, stderr=f"invalid lsblk JSON: {error}") from error


def get_children(device: dict) -> list[dict]:
    return device.get("children", []) or []


def list_disks(boot_device: Optional[str] = None) -> list[Disk]:
    """All devices of type disk, in lsblk enumeration order."""
    disks = []
    for device in get_block_devices():
        if device.get("type") != "disk":
            continue
        disks.append(Disk.from_lsblk_dict(device, boot_device=boot_device))
    return disks


def list_partition_nodes(device_path: str) -> list[str]:
    """Device nodes of every descendant of ``device_path`` (partitions, LVs).

    Returns an empty list when the device cannot be queried.
    """
    try:
        devices = get_block_devices(device_path)
    except CommandError as error:
        log.debug(f"Could not list partitions of {device_path}: {error}")
        return []
    nodes: list[str] = []

    def walk(entries: Iterable[dict]) -> None:
        for entry in entries:
            if entry.get("type") == "part":
                nodes.append(f"/dev/{entry['name']}")
            walk(get_children(entry))

    for device in devices:
        walk(get_children(device))
    return nodes


def find_mount_source(mountpoint: str) -> Optional[str]:
    """Source device of ``mountpoint`` according to findmnt, or None."""
    result = run_command(
        ["findmnt", "-J", "-n", "-o", "SOURCE", mountpoint], check=False, log_output=False
    )
    if result.returncode != 0 or not result.stdout.strip():
        return None
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError:
        return None
    filesystems = data.get("filesystems", []) or []
    if not filesystems:
        return None
    source = filesystems[0].get("source")
    if not source:
        return None
    # findmnt appends the subvolume/bind path in brackets, e.g. /dev/sdb1[/casper]
    return re.sub(r"\[.*\]$", "", source)


def get_parent_disk_name(node: str) -> str:
    """Whole-disk name for a partition node (/dev/sdb1 -> sdb).

    A node that has no parent (e.g. /dev/sr0) is its own disk.
    """
    result = run_command(["lsblk", "-n", "-o", "PKNAME", node], check=False, log_output=False)
    if result.returncode == 0:
        for line in result.stdout.splitlines():
            parent = line.strip()
            if parent:
                return parent
    return node.rsplit("/", 1)[-1]


def get_boot_device(live_mounts: Iterable[str]) -> Optional[str]:
    """Name of the disk the live environment was booted from, or None."""
    for mountpoint in live_mounts:
        source = find_mount_source(mountpoint)
        if source:
            disk = get_parent_disk_name(source)
            log.debug(f"Live medium {mountpoint} is on {source} (disk {disk})")
            return disk
    log.debug("Could not determine the live boot device")
    return None


def _blockdev_value(option: str, device_path: str) -> int:
    command = ["blockdev", option, device_path]
    output = run_command(command).stdout
    try:
        return int(output.strip())
    except ValueError as error:
        raise CommandError(command, 0, stderr=f"unexpected output {output!r}") from error


def get_logical_sector_size(device_path: str) -> int:
    """Logical sector size in bytes using ``blockdev --getss``."""
    sector_size = _blockdev_value("--getss", device_path)
    if sector_size <= 0:
        raise CommandError(
            ["blockdev", "--getss", device_path], 0, stderr=f"invalid sector size {sector_size}"
        )
    return sector_size


def get_device_size_sectors(device_path: str) -> int:
    """Device size in logical sectors, the unit sgdisk reports.

    ``blockdev --getsz`` always counts 512-byte units, so 4Kn disks report
    eight times their logical sector count there.
    """
    size_512 = _blockdev_value("--getsz", device_path)
    return size_512 * KERNEL_SECTOR_SIZE // get_logical_sector_size(device_path)


def flush_buffers(device_path: str) -> None:
    run_command(["blockdev", "--flushbufs", device_path])
