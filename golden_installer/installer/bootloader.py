"""Boot repair inside a chroot of the installed system.

The golden image still carries the live environment's casper packages,
services and initramfs hooks. They are removed, the initramfs is rebuilt so
it references the regenerated UUIDs, and GRUB is reinstalled for UEFI.

Each step is best-effort: a failure is logged, recorded on the context and
reported at the end, and the remaining steps still run. A bind mount that
cannot be made aborts the run. Bind mounts and target mounts are always torn
down.
"""

from __future__ import annotations

import glob
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence

from golden_installer.config.settings import InstallerSettings
from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import mount
from golden_installer.storage.commands import run_command
from golden_installer.storage.partition_table import sync

from . import target
from .pipeline import apply_policy


log = LoggerFactory.for_chroot()

# Relative to the target root
CASPER_SCRIPT_PATTERNS = (
    "usr/share/initramfs-tools/scripts/casper*",
    "usr/share/initramfs-tools/scripts/*/casper*",
)

APT = ("env", "DEBIAN_FRONTEND=noninteractive", "apt-get")


def chroot_command(root: Path, argv: Sequence[str]) -> None:
    """Run ``argv`` inside ``root``; raises CommandError on failure."""
    run_command(["chroot", str(root), *argv])


def remove_casper_scripts(root: Path) -> list[Path]:
    """Delete casper initramfs hooks; return what was removed."""
    removed = []
    for pattern in CASPER_SCRIPT_PATTERNS:
        for match in sorted(glob.glob(str(root / pattern))):
            path = Path(match)
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            removed.append(path)
    if removed:
        log.debug(f"Removed casper scripts: {', '.join(str(path) for path in removed)}")
    return removed


def build_chroot_steps(
    settings: InstallerSettings, root: Path
) -> list[tuple[str, Callable[..., Any], tuple]]:
    """Ordered ``(name, callable, args)`` boot repair steps."""
    steps: list[tuple[str, Callable[..., Any], tuple]] = [
        (
            "purge live packages",
            chroot_command,
            (root, [*APT, "purge", "-y", *settings.live_packages]),
        ),
        ("autoremove packages", chroot_command, (root, [*APT, "autoremove", "-y"])),
        ("remove casper initramfs scripts", remove_casper_scripts, (root,)),
    ]
    for service in settings.live_services:
        for action in ("disable", "mask"):
            steps.append(
                (f"{action} {service}", chroot_command, (root, ["systemctl", action, service]))
            )
    steps.extend(
        [
            (
                "rebuild initramfs",
                chroot_command,
                (root, ["update-initramfs", "-u", "-k", "all"]),
            ),
            (
                "install grub",
                chroot_command,
                (
                    root,
                    [
                        "grub-install",
                        f"--target={settings.grub_target}",
                        "--efi-directory=/boot/efi",
                        f"--bootloader-id={settings.bootloader_id}",
                        "--recheck",
                    ],
                ),
            ),
            ("update grub", chroot_command, (root, ["update-grub"])),
        ]
    )
    return steps


@contextmanager
def chroot_binds(ctx: InstallContext) -> Iterator[list[Path]]:
    """Bind-mount kernel interfaces into the target root for the block's duration."""
    mounted = mount.mount_binds(ctx.mount_root)
    try:
        yield mounted
    finally:
        sync()
        for path in mount.unmount_binds(mounted):
            message = f"unmount {path}: still mounted"
            log.warning(message)
            ctx.record_warning(message)


def fix_bootloader(ctx: InstallContext) -> None:
    root = ctx.mount_root
    try:
        with chroot_binds(ctx):
            for name, func, args in build_chroot_steps(ctx.settings, root):
                log.info(f"Boot repair: {name}")
                apply_policy(ctx, name, StepPolicy.BEST_EFFORT, func, *args)
    finally:
        target.unmount_all(ctx)
