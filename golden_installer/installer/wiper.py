"""Target disk wipe.

Releases everything that could hold the target open (mounts, swap, active
volume groups), then removes LVM, filesystem and partition-table signatures.
Cleanup of things that are already absent is silent, so wiping a clean disk
is a no-op apart from the zeroing. Only zeroing the leading region is fatal.
"""

from __future__ import annotations

from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import devices, erase, filesystems, lvm, mount
from golden_installer.storage.exceptions import CommandError, WipeError
from golden_installer.storage.partition_table import reread_partition_table, sync

from .pipeline import apply_policy, settle


log = LoggerFactory.for_disk()


def release_mounts(ctx: InstallContext) -> None:
    """Unmount leftovers of a previous run and the image's volume group."""
    vg = ctx.settings.volume_group
    mount.unmount_quietly(ctx.mount_root, recursive=True)
    for target in mount.volume_group_mountpoints(vg):
        log.debug(f"Unmounting {target} (volume group {vg})")
        mount.unmount_quietly(target)
    if lvm.volume_group_exists(vg):
        apply_policy(
            ctx, f"deactivate volume group {vg}", StepPolicy.BEST_EFFORT,
            lvm.deactivate_volume_group, vg,
        )


def release_partitions(nodes: list[str]) -> None:
    for node in nodes:
        mount.unmount_quietly(node)
        mount.swapoff_quietly(node)


def remove_lvm(ctx: InstallContext, device_path: str, nodes: list[str]) -> None:
    members = [device_path, *nodes]
    for vg in lvm.volume_groups_on(members):
        log.info(f"Removing volume group {vg} from {device_path}")
        apply_policy(
            ctx, f"deactivate volume group {vg}", StepPolicy.BEST_EFFORT,
            lvm.deactivate_volume_group, vg,
        )
        apply_policy(
            ctx, f"remove volume group {vg}", StepPolicy.BEST_EFFORT,
            lvm.remove_volume_group, vg,
        )
    for pv in lvm.physical_volumes_on(members):
        apply_policy(
            ctx, f"remove physical volume {pv}", StepPolicy.BEST_EFFORT,
            lvm.remove_physical_volume, pv,
        )


def wipe_signatures(ctx: InstallContext, device_path: str, nodes: list[str]) -> None:
    for node in [*nodes, device_path]:
        apply_policy(
            ctx, f"wipe signatures on {node}", StepPolicy.BEST_EFFORT,
            filesystems.wipe_signatures, node,
        )


def zero_partition_tables(ctx: InstallContext) -> None:
    target = ctx.require_target()
    wipe_mib = ctx.settings.wipe_mib
    try:
        erase.zero_head(target.device_path, wipe_mib)
    except CommandError as error:
        raise WipeError(
            f"Could not zero the partition table of {target.device_path}: {error}",
            device=target.device_path,
        ) from error
    apply_policy(
        ctx, f"zero backup partition table of {target.device_path}", StepPolicy.BEST_EFFORT,
        erase.zero_tail, target.device_path, target.size_bytes, wipe_mib,
    )


def wipe_target(ctx: InstallContext) -> None:
    target = ctx.require_target()
    device_path = target.device_path
    log.info(f"Wiping {device_path}")

    release_mounts(ctx)
    nodes = devices.list_partition_nodes(device_path)
    if nodes:
        log.debug(f"Existing partitions on {device_path}: {', '.join(nodes)}")
    release_partitions(nodes)
    remove_lvm(ctx, device_path, nodes)
    wipe_signatures(ctx, device_path, nodes)
    zero_partition_tables(ctx)

    sync()
    reread_partition_table(device_path)
    settle(ctx.settings.settle_seconds)
    log.info(f"{device_path} wiped")
