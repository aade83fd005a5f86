"""Mounting and unmounting of the installed system under the mount root."""

from __future__ import annotations

from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import lvm, mount

from .pipeline import apply_policy


log = LoggerFactory.for_disk()


def mount_root(ctx: InstallContext) -> None:
    """Mount the root logical volume at the mount root.

    A stale mount from an earlier stage or run is released first and the
    volume group is activated again, since earlier stages may have
    deactivated it.
    """
    settings = ctx.settings
    if mount.is_mountpoint(ctx.mount_root):
        log.debug(f"{ctx.mount_root} is still mounted, releasing it")
        mount.unmount_quietly(ctx.mount_root, recursive=True)
        ctx.mounts.clear()
    apply_policy(
        ctx, f"activate volume group {settings.volume_group}", StepPolicy.RETRYABLE,
        lvm.activate_volume_group, settings.volume_group,
    )
    mount.mount(settings.root_lv_path, ctx.mount_root)
    ctx.mounts.append(str(ctx.mount_root))


def mount_all(ctx: InstallContext) -> None:
    """Mount root, /boot and /boot/efi of the target, in that order."""
    layout = ctx.require_layout()
    mount_root(ctx)
    boot = ctx.target_path("boot")
    mount.mount(layout.boot, boot)
    ctx.mounts.append(str(boot))
    efi = ctx.target_path("boot/efi")
    mount.mount(layout.efi, efi, options=ctx.settings.efi_mount_options)
    ctx.mounts.append(str(efi))
    log.info(f"Mounted target filesystems under {ctx.mount_root}")


def unmount_all(ctx: InstallContext) -> None:
    """Unmount everything in ``ctx.mounts`` in reverse order.

    Failures are recorded on the context; the mount list is emptied either way.
    """
    settings = ctx.settings
    for target in reversed(ctx.mounts):
        success, used_lazy = mount.unmount_with_retry(
            target, settings.retry_attempts, settings.retry_delay_seconds
        )
        if not success:
            message = f"unmount {target}: still mounted"
            log.warning(message)
            ctx.record_warning(message)
        elif used_lazy:
            log.warning(f"{target} was busy and has been lazily unmounted")
    ctx.mounts.clear()
