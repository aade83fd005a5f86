"""Fresh filesystem UUIDs for /boot and /, and the mount table that uses them.

Every installation is cloned from the same golden image, so the UUIDs must
be regenerated or two installed machines would share them. The mount table is
always written from the UUIDs read back through blkid, never from the
generated values.
"""

from __future__ import annotations

import uuid

from golden_installer.domain import FilesystemIds, FstabEntry, InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import devices, filesystems
from golden_installer.storage.exceptions import CommandError, IdentityError
from golden_installer.storage.partition_table import sync

from . import target
from .pipeline import apply_policy, settle


log = LoggerFactory.for_filesystem()

FSTAB_HEADER = "# /etc/fstab - Generated by installer"


def assign_uuid(node: str, value: str) -> None:
    try:
        filesystems.set_uuid(node, value)
    except CommandError as error:
        raise IdentityError(f"Could not set UUID on {node}: {error}", device=node) from error


def read_back(node: str, label: str) -> str:
    value = filesystems.read_uuid(node)
    if not value:
        raise IdentityError(f"Could not read the {label} filesystem UUID from {node}", device=node)
    return value


def check_boot_filesystem(ctx: InstallContext, node: str) -> None:
    returncode = filesystems.check_filesystem(node)
    status = filesystems.describe_fsck_status(returncode)
    if filesystems.fsck_succeeded(returncode):
        log.info(f"Boot filesystem check: {status}")
        return
    message = f"Boot filesystem check: {status}"
    log.warning(message)
    ctx.record_warning(message)


def regenerate_ids(ctx: InstallContext) -> FilesystemIds:
    settings = ctx.settings
    layout = ctx.require_layout()
    root_node = settings.root_lv_path
    ids = FilesystemIds(generated_boot=str(uuid.uuid4()), generated_root=str(uuid.uuid4()))
    log.info(f"Generated boot UUID {ids.generated_boot}, root UUID {ids.generated_root}")

    apply_policy(
        ctx, "check boot filesystem", StepPolicy.BEST_EFFORT,
        check_boot_filesystem, ctx, layout.boot,
    )
    assign_uuid(layout.boot, ids.generated_boot)
    assign_uuid(root_node, ids.generated_root)

    sync()
    for node in (layout.boot, root_node):
        apply_policy(
            ctx, f"flush buffers of {node}", StepPolicy.BEST_EFFORT,
            devices.flush_buffers, node,
        )
    settle(settings.lvm_settle_seconds)

    ids.boot = read_back(layout.boot, "boot")
    ids.root = read_back(root_node, "root")
    ids.efi = read_back(layout.efi, "EFI")
    for name in ids.mismatches():
        message = f"{name} UUID read back differs from the generated one"
        log.warning(message)
        ctx.record_warning(message)
    log.info(f"Filesystem UUIDs: boot={ids.boot} root={ids.root} efi={ids.efi}")
    ctx.ids = ids
    return ids


def build_fstab_entries(ctx: InstallContext) -> list[FstabEntry]:
    settings = ctx.settings
    ids = ctx.ids
    if not ids.boot or not ids.efi:
        raise IdentityError("Filesystem UUIDs have not been read back yet")
    return [
        FstabEntry(settings.root_mapper_path, "/", settings.root_fstype, passno=1, gap=2),
        FstabEntry(f"UUID={ids.boot}", "/boot", settings.boot_fstype, passno=2, gap=3),
        FstabEntry(
            f"UUID={ids.efi}", "/boot/efi", "vfat", settings.efi_mount_options, passno=1, gap=8
        ),
    ]


def render_fstab(entries: list[FstabEntry]) -> str:
    lines = [FSTAB_HEADER, *(entry.render() for entry in entries)]
    return "\n".join(lines) + "\n"


def write_fstab(ctx: InstallContext) -> None:
    fstab_path = ctx.target_path("etc/fstab")
    content = render_fstab(build_fstab_entries(ctx))
    fstab_path.parent.mkdir(parents=True, exist_ok=True)
    fstab_path.write_text(content, encoding="utf-8")
    log.info(f"Wrote {fstab_path}")
    for line in content.splitlines():
        log.debug(f"fstab: {line}")


def regenerate_identity(ctx: InstallContext) -> None:
    regenerate_ids(ctx)
    target.mount_all(ctx)
    write_fstab(ctx)
