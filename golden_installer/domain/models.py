"""Domain model for a single installer run.

Every object here is transient: it is discovered or created during one run
and exists afterwards only as on-disk state on the target machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from golden_installer.config.settings import InstallerSettings


# ==============================================================================
# Disk Domain
# ==============================================================================


@dataclass(frozen=True)
class Disk:
    """A whole-disk block device reported by lsblk."""

    name: str  # e.g., "sda", "nvme0n1"
    size_bytes: int
    transport: str | None = None  # e.g., "sata", "nvme", "usb"
    removable: bool = False
    model: str | None = None
    is_boot_device: bool = False

    @property
    def device_path(self) -> str:
        """Device node path (e.g., /dev/sda)."""
        return f"/dev/{self.name}"

    @property
    def partition_prefix(self) -> str:
        """Prefix partition numbers are appended to.

        Names ending in a digit (nvme0n1, mmcblk0, loop0) take a "p"
        separator; sd/vd style names take the number directly.
        """
        if self.name and self.name[-1].isdigit():
            return f"{self.device_path}p"
        return self.device_path

    def partition_node(self, number: int) -> str:
        return f"{self.partition_prefix}{number}"

    @property
    def size_gb(self) -> float:
        return self.size_bytes / (1024**3)

    def format_label(self) -> str:
        """Human-readable label, e.g. "sda 40.0GB (QEMU HARDDISK, sata)"."""
        label = f"{self.name} {self.size_gb:.1f}GB"
        details = [part for part in (self.model, self.transport) if part]
        if details:
            label += f" ({', '.join(details)})"
        return label

    @classmethod
    def from_lsblk_dict(cls, device: dict[str, Any], boot_device: str | None = None) -> Disk:
        """Convert an lsblk JSON entry to a Disk.

        Raises:
            KeyError: If the name key is missing
            ValueError: If size cannot be converted to int
        """
        name = device["name"]
        size_bytes = int(device.get("size") or 0)

        model = device.get("model")
        if model:
            model = model.strip()

        transport = device.get("tran")
        if transport:
            transport = transport.strip().lower()

        # lsblk reports rm as bool, int or "0"/"1" depending on version
        rm_value = device.get("rm")
        removable = rm_value in (True, 1, "1", "true")

        return cls(
            name=name,
            size_bytes=size_bytes,
            transport=transport or None,
            removable=removable,
            model=model or None,
            is_boot_device=boot_device is not None and name == boot_device,
        )


@dataclass(frozen=True)
class PartitionLayout:
    """Device nodes of the three partitions of the golden image."""

    efi: str
    boot: str
    lvm: str

    @classmethod
    def for_disk(cls, disk: Disk) -> PartitionLayout:
        return cls(
            efi=disk.partition_node(1),
            boot=disk.partition_node(2),
            lvm=disk.partition_node(3),
        )


@dataclass(frozen=True)
class PartitionInfo:
    """One GPT entry as reported by ``sgdisk -i``."""

    number: int
    first_sector: int
    last_sector: int
    type_guid: str
    name: str = ""

    @property
    def size_sectors(self) -> int:
        return self.last_sector - self.first_sector + 1


# ==============================================================================
# Identity Domain
# ==============================================================================


@dataclass
class FilesystemIds:
    """Generated and read-back filesystem identifiers."""

    generated_boot: str | None = None
    generated_root: str | None = None
    boot: str | None = None
    root: str | None = None
    efi: str | None = None

    def mismatches(self) -> list[str]:
        """Names of filesystems whose read-back UUID differs from the generated one."""
        problems = []
        if self.generated_boot and self.boot != self.generated_boot:
            problems.append("boot")
        if self.generated_root and self.root != self.generated_root:
            problems.append("root")
        return problems


@dataclass(frozen=True)
class FstabEntry:
    """A single mount-table line.

    ``gap`` is the run of spaces after the spec; the mount point column is
    padded to 12 characters.
    """

    spec: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0
    gap: int = 2

    def render(self) -> str:
        return (
            f"{self.spec}{' ' * self.gap}{self.mountpoint:<12}{self.fstype}  "
            f"{self.options}  {self.dump}  {self.passno}"
        )


# ==============================================================================
# Pipeline Domain
# ==============================================================================


class StepPolicy(Enum):
    """How a failure of a step is treated."""

    FATAL = "fatal"  # abort the run
    RETRYABLE = "retryable"  # retry, then abort
    BEST_EFFORT = "best_effort"  # log, record and continue


class PartitionFixState(Enum):
    """Progress of the partition fix-up, in strict order."""

    CLONED = 0
    GPT_EXTENDED = 1
    LAST_PARTITION_RESIZED = 2
    PV_RESIZED = 3
    LV_EXTENDED = 4
    FS_CHECKED = 5
    FS_RESIZED = 6

    @property
    def is_terminal(self) -> bool:
        return self is PartitionFixState.FS_RESIZED

    def next_state(self) -> PartitionFixState:
        if self.is_terminal:
            raise ValueError(f"{self.name} is terminal")
        return PartitionFixState(self.value + 1)


@dataclass
class InstallContext:
    """Explicit state threaded through every pipeline stage."""

    settings: InstallerSettings
    image_path: Path
    installer_dir: Path
    auto: bool = False
    hostname_override: Optional[str] = None
    boot_device: Optional[str] = None
    target: Optional[Disk] = None
    layout: Optional[PartitionLayout] = None
    ids: FilesystemIds = field(default_factory=FilesystemIds)
    fix_state: PartitionFixState = PartitionFixState.CLONED
    mounts: list[str] = field(default_factory=list)
    hostname: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def mount_root(self) -> Path:
        return self.settings.mount_root

    def target_path(self, relative: str) -> Path:
        """Path inside the mounted target root."""
        return self.mount_root / relative.lstrip("/")

    def record_warning(self, message: str) -> None:
        self.warnings.append(message)

    def require_target(self) -> Disk:
        if self.target is None:
            raise RuntimeError("No target disk has been selected")
        return self.target

    def require_layout(self) -> PartitionLayout:
        if self.layout is None:
            self.layout = PartitionLayout.for_disk(self.require_target())
        return self.layout
