"""Mount management for the target root and its chroot bind mounts.

Functions:
    - is_mountpoint(): Check /proc/mounts for an active mountpoint
    - mount(): Mount a device (creating the mount directory)
    - unmount(): Unmount a path, optionally lazily or recursively
    - unmount_with_retry(): Normal unmount attempts followed by lazy unmount
    - mount_binds(): Bind-mount kernel interfaces into a chroot
    - unmount_binds(): Tear bind mounts down in reverse order
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Iterable, Optional, Union

from golden_installer.logging import LoggerFactory

from .commands import run_command, run_quiet
from .exceptions import CommandError


log = LoggerFactory.for_disk()

# Kernel interfaces a chroot needs for apt, update-initramfs and grub-install
BIND_MOUNTS = ("/dev", "/dev/pts", "/proc", "/sys", "/run")

PathLike = Union[str, Path]


def _validate_device(device: str) -> None:
    if not isinstance(device, str) or not device.startswith("/dev/"):
        raise ValueError(f"Invalid device path: {device}")
    if any(char in device for char in [";", "&", "|", "$", "`", "\n", "\r", " "]):
        raise ValueError(f"Device path contains invalid characters: {device}")


def list_mounts() -> list[tuple[str, str]]:
    """``(source, mountpoint)`` pairs from /proc/mounts in mount order."""
    mounts = []
    try:
        with open("/proc/mounts", "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1:
                    mounts.append((parts[0], parts[1]))
    except FileNotFoundError:
        return []
    return mounts


def volume_group_mountpoints(volume_group: str) -> list[str]:
    """Mountpoints of logical volumes in ``volume_group``, deepest first.

    Device-mapper names double the dashes inside VG and LV names, so
    /dev/mapper/vg0--data-lv belongs to "vg0-data", not to "vg0".
    """
    lv_prefix = f"/dev/{volume_group}/"
    mapper_prefix = f"/dev/mapper/{volume_group.replace('-', '--')}-"
    matches = []
    for source, target in list_mounts():
        if source.startswith(lv_prefix):
            matches.append(target)
        elif source.startswith(mapper_prefix) and not source[len(mapper_prefix):].startswith("-"):
            matches.append(target)
    return sorted(matches, key=lambda target: target.count("/"), reverse=True)


def is_mountpoint(path: PathLike) -> bool:
    target = str(path).rstrip("/") or "/"
    try:
        with open("/proc/mounts", "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1 and parts[1] == target:
                    return True
    except FileNotFoundError:
        return os.path.ismount(target)
    return False


def mount(device: str, target: PathLike, options: Optional[str] = None) -> None:
    """Mount ``device`` at ``target``, creating the directory first.

    Raises:
        ValueError: If the device path is invalid
        CommandError: If mount fails
    """
    _validate_device(device)
    Path(target).mkdir(parents=True, exist_ok=True)
    command = ["mount"]
    if options:
        command.extend(["-o", options])
    command.extend([device, str(target)])
    run_command(command)
    log.debug(f"Mounted {device} at {target}")


def bind_mount(source: PathLike, target: PathLike) -> None:
    Path(target).mkdir(parents=True, exist_ok=True)
    run_command(["mount", "--bind", str(source), str(target)])


def unmount(target: PathLike, *, lazy: bool = False, recursive: bool = False) -> None:
    command = ["umount"]
    if recursive:
        command.append("-R")
    if lazy:
        command.append("-l")
    command.append(str(target))
    run_command(command)


def unmount_quietly(target: PathLike, *, lazy: bool = False, recursive: bool = False) -> bool:
    """Unmount ``target`` ignoring failure; True when the command succeeded."""
    command = ["umount"]
    if recursive:
        command.append("-R")
    if lazy:
        command.append("-l")
    command.append(str(target))
    return run_quiet(command)


def swapoff_quietly(node: str) -> bool:
    return run_quiet(["swapoff", node])


def unmount_with_retry(
    target: PathLike, attempts: int = 3, delay_seconds: float = 1.0
) -> tuple[bool, bool]:
    """Unmount with retry and lazy-unmount fallback.

    Returns:
        Tuple of (success, used_lazy_unmount)
    """
    for attempt in range(1, attempts + 1):
        if not is_mountpoint(target):
            return True, False
        try:
            unmount(target)
            log.debug(f"Unmounted {target}")
            return True, False
        except CommandError as error:
            log.debug(f"Unmount attempt {attempt}/{attempts} of {target} failed: {error}")
        if attempt < attempts:
            time.sleep(delay_seconds)

    log.debug(f"Normal unmount of {target} failed, attempting lazy unmount...")
    try:
        unmount(target, lazy=True)
    except CommandError as error:
        log.debug(f"Lazy unmount of {target} failed: {error}")
        return False, False
    return True, True


def mount_binds(root: PathLike, sources: Iterable[str] = BIND_MOUNTS) -> list[Path]:
    """Bind-mount each source under ``root``; return the targets in mount order.

    If a bind fails, the ones already made are torn down before re-raising.
    """
    mounted: list[Path] = []
    try:
        for source in sources:
            target = Path(root) / source.lstrip("/")
            bind_mount(source, target)
            mounted.append(target)
    except CommandError:
        unmount_binds(mounted)
        raise
    return mounted


def unmount_binds(mounted: Iterable[Path]) -> list[Path]:
    """Lazily unmount bind mounts in reverse mount order.

    Returns the targets that could not be unmounted.
    """
    failed = []
    for target in reversed(list(mounted)):
        if not unmount_quietly(target, lazy=True):
            log.debug(f"Lazy unmount of {target} failed")
            failed.append(target)
    return failed
