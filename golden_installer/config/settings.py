"""Settings storage for installer configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "GOLDEN_INSTALLER_SETTINGS_PATH",
        "/etc/golden-installer/settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_VOLUME_GROUP = "vg0"
DEFAULT_ROOT_LV = "root"
DEFAULT_MOUNT_ROOT = "/mnt/target"
DEFAULT_IMAGE_NAME = "system.img.gz"
DEFAULT_SETTLE_SECONDS = 2.0

DEFAULT_SETTINGS: dict[str, Any] = {
    "volume_group": DEFAULT_VOLUME_GROUP,
    "root_lv": DEFAULT_ROOT_LV,
    "mount_root": DEFAULT_MOUNT_ROOT,
    "image_name": DEFAULT_IMAGE_NAME,
    "installer_search_paths": [
        "/cdrom/installer",
        "/media/*/installer",
        "/run/live/medium/installer",
    ],
    "optical_devices": ["/dev/sr0", "/dev/cdrom"],
    "media_mount": "/mnt/installer_media",
    "live_medium_mounts": ["/run/live/medium", "/cdrom"],
    "disk_name_pattern": r"^(sd|nvme|vd)",
    "removable_transports": ["usb"],
    "wipe_mib": 10,
    "clone_block_size": "4M",
    "settle_seconds": DEFAULT_SETTLE_SECONDS,
    "lvm_settle_seconds": 1.0,
    "auto_confirm_delay_seconds": 3.0,
    "retry_attempts": 3,
    "retry_delay_seconds": 1.0,
    "fallback_lvm_type_code": "8e00",
    "root_fstype": "ext4",
    "boot_fstype": "ext4",
    "efi_mount_options": "umask=0077",
    "netplan_file": "00-installer-config.yaml",
    "interface_patterns": {"all-ethernet": "en*", "all-eth": "eth*"},
    "live_packages": ["casper", "lupin-casper"],
    "live_services": ["casper.service", "casper-md5check.service"],
    "grub_target": "x86_64-efi",
    "bootloader_id": "ubuntu",
    "hostname_prefix": "ubuntu",
    "default_hostname": "ubuntu-pc",
    "default_user": "ubuser",
    "default_uid": 1000,
    "default_gid": 1000,
    "post_install_script": "post-install-baremetal.sh",
    "autoinstall_token": "autoinstall",
    "stock_installer_token": "subiquity.autoinstallpath=",
    "autoinstall_lock": "/tmp/autoinstall.lock",
    "autoinstall_delay_seconds": 15.0,
    "sysfs_net_path": "/sys/class/net",
    "required_tools": [
        "lsblk",
        "findmnt",
        "blkid",
        "blockdev",
        "dd",
        "gzip",
        "wipefs",
        "sgdisk",
        "partprobe",
        "pvs",
        "vgs",
        "vgchange",
        "pvresize",
        "lvextend",
        "e2fsck",
        "resize2fs",
        "tune2fs",
        "udevadm",
        "mount",
        "umount",
        "chroot",
    ],
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Path | None = None) -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings(path: Path | None = None) -> None:
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value


@dataclass(frozen=True)
class InstallerSettings:
    """Immutable view of the settings store handed to every pipeline stage."""

    volume_group: str = DEFAULT_VOLUME_GROUP
    root_lv: str = DEFAULT_ROOT_LV
    mount_root: Path = Path(DEFAULT_MOUNT_ROOT)
    image_name: str = DEFAULT_IMAGE_NAME
    installer_search_paths: tuple[str, ...] = ()
    optical_devices: tuple[str, ...] = ()
    media_mount: Path = Path("/mnt/installer_media")
    live_medium_mounts: tuple[str, ...] = ()
    disk_name_pattern: str = r"^(sd|nvme|vd)"
    removable_transports: tuple[str, ...] = ("usb",)
    wipe_mib: int = 10
    clone_block_size: str = "4M"
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    lvm_settle_seconds: float = 1.0
    auto_confirm_delay_seconds: float = 3.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    fallback_lvm_type_code: str = "8e00"
    root_fstype: str = "ext4"
    boot_fstype: str = "ext4"
    efi_mount_options: str = "umask=0077"
    netplan_file: str = "00-installer-config.yaml"
    interface_patterns: tuple[tuple[str, str], ...] = ()
    live_packages: tuple[str, ...] = ()
    live_services: tuple[str, ...] = ()
    grub_target: str = "x86_64-efi"
    bootloader_id: str = "ubuntu"
    hostname_prefix: str = "ubuntu"
    default_hostname: str = "ubuntu-pc"
    default_user: str = "ubuser"
    default_uid: int = 1000
    default_gid: int = 1000
    post_install_script: str = "post-install-baremetal.sh"
    autoinstall_token: str = "autoinstall"
    stock_installer_token: str = "subiquity.autoinstallpath="
    autoinstall_lock: Path = Path("/tmp/autoinstall.lock")
    autoinstall_delay_seconds: float = 15.0
    sysfs_net_path: Path = Path("/sys/class/net")
    required_tools: tuple[str, ...] = ()

    @property
    def root_lv_path(self) -> str:
        """Device path of the root logical volume (e.g., /dev/vg0/root)."""
        return f"/dev/{self.volume_group}/{self.root_lv}"

    @property
    def root_mapper_path(self) -> str:
        """Device-mapper path used in the mount table (e.g., /dev/mapper/vg0-root)."""
        vg = self.volume_group.replace("-", "--")
        lv = self.root_lv.replace("-", "--")
        return f"/dev/mapper/{vg}-{lv}"

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> InstallerSettings:
        merged = dict(DEFAULT_SETTINGS)
        merged.update(values)
        return cls(
            volume_group=str(merged["volume_group"]),
            root_lv=str(merged["root_lv"]),
            mount_root=Path(merged["mount_root"]),
            image_name=str(merged["image_name"]),
            installer_search_paths=tuple(merged["installer_search_paths"]),
            optical_devices=tuple(merged["optical_devices"]),
            media_mount=Path(merged["media_mount"]),
            live_medium_mounts=tuple(merged["live_medium_mounts"]),
            disk_name_pattern=str(merged["disk_name_pattern"]),
            removable_transports=tuple(merged["removable_transports"]),
            wipe_mib=int(merged["wipe_mib"]),
            clone_block_size=str(merged["clone_block_size"]),
            settle_seconds=float(merged["settle_seconds"]),
            lvm_settle_seconds=float(merged["lvm_settle_seconds"]),
            auto_confirm_delay_seconds=float(merged["auto_confirm_delay_seconds"]),
            retry_attempts=max(1, int(merged["retry_attempts"])),
            retry_delay_seconds=float(merged["retry_delay_seconds"]),
            fallback_lvm_type_code=str(merged["fallback_lvm_type_code"]),
            root_fstype=str(merged["root_fstype"]),
            boot_fstype=str(merged["boot_fstype"]),
            efi_mount_options=str(merged["efi_mount_options"]),
            netplan_file=str(merged["netplan_file"]),
            interface_patterns=tuple(dict(merged["interface_patterns"]).items()),
            live_packages=tuple(merged["live_packages"]),
            live_services=tuple(merged["live_services"]),
            grub_target=str(merged["grub_target"]),
            bootloader_id=str(merged["bootloader_id"]),
            hostname_prefix=str(merged["hostname_prefix"]),
            default_hostname=str(merged["default_hostname"]),
            default_user=str(merged["default_user"]),
            default_uid=int(merged["default_uid"]),
            default_gid=int(merged["default_gid"]),
            post_install_script=str(merged["post_install_script"]),
            autoinstall_token=str(merged["autoinstall_token"]),
            stock_installer_token=str(merged["stock_installer_token"]),
            autoinstall_lock=Path(merged["autoinstall_lock"]),
            autoinstall_delay_seconds=float(merged["autoinstall_delay_seconds"]),
            sysfs_net_path=Path(merged["sysfs_net_path"]),
            required_tools=tuple(merged["required_tools"]),
        )


def get_installer_settings() -> InstallerSettings:
    return InstallerSettings.from_values(settings_store.values)


load_settings()
