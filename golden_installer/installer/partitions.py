"""Grow the cloned partition, volume and filesystem stack to the whole disk.

The fix-up is a strict state machine over :class:`PartitionFixState`::

    CLONED -> GPT_EXTENDED -> LAST_PARTITION_RESIZED -> PV_RESIZED
           -> LV_EXTENDED -> FS_CHECKED -> FS_RESIZED

Each transition moves exactly one state forward. The partition table is
re-read and udev settled before the volume manager sees the new geometry.
"""

from __future__ import annotations

from typing import Callable

from golden_installer.domain import InstallContext, PartitionFixState, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import devices, filesystems, lvm, partition_table
from golden_installer.storage.devices import human_size
from golden_installer.storage.exceptions import CommandError, PartitionFixError

from .pipeline import apply_policy, settle


log = LoggerFactory.for_lvm()

LVM_PARTITION_NUMBER = 3


class PartitionFixer:
    def __init__(self, ctx: InstallContext):
        self.ctx = ctx
        self.settings = ctx.settings
        self.disk = ctx.require_target()
        self.layout = ctx.require_layout()

    @property
    def state(self) -> PartitionFixState:
        return self.ctx.fix_state

    def transition(self, new_state: PartitionFixState) -> None:
        """Move one state forward.

        Raises:
            PartitionFixError: If ``new_state`` is not the direct successor
        """
        if self.state.is_terminal:
            raise PartitionFixError(
                f"Partition fix-up already finished ({self.state.name})", state=self.state.name
            )
        expected = self.state.next_state()
        if new_state is not expected:
            raise PartitionFixError(
                f"Invalid transition {self.state.name} -> {new_state.name} "
                f"(expected {expected.name})",
                state=self.state.name,
            )
        self.ctx.fix_state = new_state
        log.info(f"Partition fix-up: {new_state.name}")

    def _step(self, new_state: PartitionFixState, action: Callable[[], None]) -> None:
        try:
            action()
        except CommandError as error:
            raise PartitionFixError(
                f"{new_state.name.replace('_', ' ').capitalize()} failed: {error}",
                state=self.state.name,
            ) from error
        self.transition(new_state)

    def extend_gpt(self) -> None:
        self._step(
            PartitionFixState.GPT_EXTENDED,
            lambda: partition_table.extend_gpt(self.disk.device_path),
        )

    def _recreate_last_partition(self) -> None:
        device_path = self.disk.device_path
        info = partition_table.get_partition_info(device_path, LVM_PARTITION_NUMBER)
        if info is None:
            raise PartitionFixError(
                f"Partition {LVM_PARTITION_NUMBER} not found on {device_path}",
                state=self.state.name,
            )
        log.debug(
            f"Partition {info.number} starts at sector {info.first_sector} "
            f"({info.size_sectors} sectors, "
            f"type {info.type_guid or 'unknown'})"
        )
        partition_table.recreate_partition_to_end(
            device_path, info, self.settings.fallback_lvm_type_code
        )
        partition_table.reread_partition_table(device_path)
        settle(self.settings.settle_seconds)

    def resize_last_partition(self) -> None:
        self._step(PartitionFixState.LAST_PARTITION_RESIZED, self._recreate_last_partition)

    def resize_pv(self) -> None:
        self._step(
            PartitionFixState.PV_RESIZED,
            lambda: lvm.resize_physical_volume(self.layout.lvm),
        )

    def _extend_root_lv(self) -> None:
        free_extents = lvm.get_free_extents(self.settings.volume_group)
        if free_extents == 0:
            log.info(f"No free extents in {self.settings.volume_group}, root already fills it")
            return
        lvm.extend_logical_volume(self.settings.root_lv_path)

    def extend_lv(self) -> None:
        self._step(PartitionFixState.LV_EXTENDED, self._extend_root_lv)

    def _check_root(self) -> None:
        returncode = filesystems.check_filesystem(self.settings.root_lv_path)
        status = filesystems.describe_fsck_status(returncode)
        if filesystems.fsck_succeeded(returncode):
            log.info(f"Root filesystem check: {status}")
            return
        message = f"Root filesystem check: {status}"
        log.warning(message)
        self.ctx.record_warning(message)

    def check_fs(self) -> None:
        apply_policy(self.ctx, "check root filesystem", StepPolicy.BEST_EFFORT, self._check_root)
        self.transition(PartitionFixState.FS_CHECKED)

    def resize_fs(self) -> None:
        self._step(
            PartitionFixState.FS_RESIZED,
            lambda: filesystems.resize_filesystem(self.settings.root_lv_path),
        )

    def verify(self) -> None:
        """Confirm the LVM partition reaches the end of the disk."""
        device_path = self.disk.device_path
        try:
            disk_sectors = devices.get_device_size_sectors(device_path)
            info = partition_table.get_partition_info(device_path, LVM_PARTITION_NUMBER)
        except CommandError as error:
            raise PartitionFixError(
                f"Could not verify partition layout: {error}", state=self.state.name
            ) from error
        if info is None or not partition_table.partition_reaches_end(info, disk_sectors):
            last = info.last_sector if info else "missing"
            raise PartitionFixError(
                f"Partition {LVM_PARTITION_NUMBER} ends at sector {last}, "
                f"disk ends at sector {disk_sectors - 1}",
                state=self.state.name,
            )
        fs_size = filesystems.get_filesystem_size(self.settings.root_lv_path)
        if fs_size is not None:
            log.info(f"Root filesystem size: {human_size(fs_size)}")

    def run(self) -> PartitionFixState:
        self.extend_gpt()
        self.resize_last_partition()
        self.resize_pv()
        self.extend_lv()
        self.check_fs()
        self.resize_fs()
        self.verify()
        return self.state


def fix_partitions(ctx: InstallContext) -> PartitionFixState:
    return PartitionFixer(ctx).run()
