"""
Pytest configuration and shared fixtures for golden-installer tests.

No test runs a real external tool: ``fake_runner`` replaces subprocess.run
underneath ``run_command`` and records every command line.
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from golden_installer.config.settings import InstallerSettings
from golden_installer.domain import Disk, InstallContext, PartitionLayout


# ==============================================================================
# Command Runner Fake
# ==============================================================================


class FakeRunner:
    """Stand-in for subprocess.run that records commands and returns canned output.

    Responses are matched on command prefix; the most recently registered
    match wins. Unmatched commands succeed with empty output.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.responses: List[Tuple[Tuple[str, ...], Any]] = []

    def on(self, *prefix, stdout="", stderr="", returncode=0, raises=None):
        response = raises if raises is not None else (returncode, stdout, stderr)
        self.responses.append((tuple(prefix), response))
        return self

    def __call__(self, command, input=None, text=True, capture_output=True, **kwargs):
        command = [str(part) for part in command]
        self.calls.append(command)
        for prefix, response in reversed(self.responses):
            if tuple(command[: len(prefix)]) == prefix:
                if isinstance(response, BaseException):
                    raise response
                returncode, stdout, stderr = response
                return subprocess.CompletedProcess(command, returncode, stdout, stderr)
        return subprocess.CompletedProcess(command, 0, "", "")

    def commands(self, *prefix) -> List[List[str]]:
        return [call for call in self.calls if tuple(call[: len(prefix)]) == prefix]

    def ran(self, *prefix) -> bool:
        return bool(self.commands(*prefix))

    def index(self, *prefix) -> int:
        """Position of the first call starting with ``prefix``."""
        for position, call in enumerate(self.calls):
            if tuple(call[: len(prefix)]) == prefix:
                return position
        raise AssertionError(f"{' '.join(prefix)} was never run")


@pytest.fixture
def fake_runner(mocker) -> FakeRunner:
    """
    Fixture replacing every external command with a recorder.

    shutil.which reports every tool as installed.
    """
    runner = FakeRunner()
    mocker.patch("golden_installer.storage.commands.subprocess.run", side_effect=runner)
    mocker.patch("shutil.which", side_effect=lambda name: f"/usr/sbin/{name}")
    return runner


# ==============================================================================
# Tool Output Fixtures
# ==============================================================================


@pytest.fixture
def lsblk_devices() -> List[Dict[str, Any]]:
    """
    Fixture providing ``lsblk -J -b`` block devices of a typical target PC
    booted from a USB installer stick.
    """
    return [
        {
            "name": "sda",
            "type": "disk",
            "size": 500107862016,
            "model": "Samsung SSD 860 ",
            "tran": "sata",
            "rm": False,
            "mountpoint": None,
            "fstype": None,
            "pkname": None,
            "children": [
                {"name": "sda1", "type": "part", "size": 536870912, "fstype": "vfat",
                 "mountpoint": None, "pkname": "sda"},
                {"name": "sda2", "type": "part", "size": 1073741824, "fstype": "ext4",
                 "mountpoint": None, "pkname": "sda"},
                {
                    "name": "sda3", "type": "part", "size": 498496110592,
                    "fstype": "LVM2_member", "mountpoint": None, "pkname": "sda",
                    "children": [
                        {"name": "vg0-root", "type": "lvm", "size": 498493358080,
                         "fstype": "ext4", "mountpoint": None, "pkname": "sda3"},
                    ],
                },
            ],
        },
        {
            "name": "nvme0n1",
            "type": "disk",
            "size": 1000204886016,
            "model": "WD Blue SN570 1TB",
            "tran": "nvme",
            "rm": False,
            "mountpoint": None,
            "fstype": None,
            "pkname": None,
        },
        {
            "name": "sdb",
            "type": "disk",
            "size": 2000398934016,
            "model": "Extreme Pro",
            "tran": "usb",
            "rm": True,
            "mountpoint": None,
            "fstype": None,
            "pkname": None,
            "children": [
                {"name": "sdb1", "type": "part", "size": 2000397885440,
                 "fstype": "iso9660", "mountpoint": "/run/live/medium", "pkname": "sdb"},
            ],
        },
        {"name": "loop0", "type": "loop", "size": 2147483648, "tran": None, "rm": False},
        {"name": "sr0", "type": "rom", "size": 1073741312, "tran": "sata", "rm": True},
    ]


@pytest.fixture
def lsblk_output(lsblk_devices) -> str:
    return json.dumps({"blockdevices": lsblk_devices})


@pytest.fixture
def sgdisk_info_output() -> str:
    """Fixture providing ``sgdisk -i 3`` output for the LVM partition of a 10 GiB image."""
    return (
        "Partition GUID code: E6D6D379-F507-44C2-A23C-238F2A3DF928 (Linux LVM)\n"
        "Partition unique GUID: 5B1C3E8A-4F2D-4C7E-9A1B-2D3E4F5A6B7C\n"
        "First sector: 3328000 (at 1.6 GiB)\n"
        "Last sector: 20969471 (at 10.0 GiB)\n"
        "Partition size: 17641472 sectors (8.4 GiB)\n"
        "Attribute flags: 0000000000000000\n"
        "Partition name: 'lvm'\n"
    )


@pytest.fixture
def sgdisk_info_resized() -> str:
    """``sgdisk -i 3`` after the partition has been grown on a 40 GiB disk."""
    return (
        "Partition GUID code: E6D6D379-F507-44C2-A23C-238F2A3DF928 (Linux LVM)\n"
        "Partition unique GUID: 5B1C3E8A-4F2D-4C7E-9A1B-2D3E4F5A6B7C\n"
        "First sector: 3328000 (at 1.6 GiB)\n"
        "Last sector: 83884031 (at 40.0 GiB)\n"
        "Partition size: 80556032 sectors (38.4 GiB)\n"
        "Attribute flags: 0000000000000000\n"
        "Partition name: 'lvm'\n"
    )


@pytest.fixture
def lvm_report():
    """Fixture returning a builder for LVM ``--reportformat json`` output."""

    def build(section: str, rows: List[Dict[str, str]]) -> str:
        return json.dumps({"report": [{section: rows}]})

    return build


# ==============================================================================
# Settings and Context Fixtures
# ==============================================================================


@pytest.fixture
def settings_factory(tmp_path):
    """
    Fixture returning a factory for InstallerSettings rooted in tmp_path.

    All settle and retry delays are zero so tests never sleep.
    """

    def factory(**overrides) -> InstallerSettings:
        values = {
            "mount_root": str(tmp_path / "target"),
            "media_mount": str(tmp_path / "installer_media"),
            "sysfs_net_path": str(tmp_path / "sys" / "class" / "net"),
            "autoinstall_lock": str(tmp_path / "autoinstall.lock"),
            "settle_seconds": 0,
            "lvm_settle_seconds": 0,
            "auto_confirm_delay_seconds": 0,
            "retry_delay_seconds": 0,
            "autoinstall_delay_seconds": 0,
        }
        values.update(overrides)
        return InstallerSettings.from_values(values)

    return factory


@pytest.fixture
def settings(settings_factory) -> InstallerSettings:
    return settings_factory()


@pytest.fixture
def target_disk() -> Disk:
    """A 40 GiB SATA disk."""
    return Disk(name="sda", size_bytes=40 * 1024**3, transport="sata", model="QEMU HARDDISK")


@pytest.fixture
def installer_dir(tmp_path) -> Path:
    """Installer media directory holding a (tiny) image."""
    directory = tmp_path / "cdrom" / "installer"
    directory.mkdir(parents=True)
    (directory / "system.img.gz").write_bytes(b"\x1f\x8b")
    return directory


@pytest.fixture
def context_factory(settings_factory, installer_dir, target_disk):
    """Fixture returning a factory for InstallContext with a selected 40 GiB target."""

    def factory(
        *,
        auto: bool = False,
        hostname_override: Optional[str] = None,
        with_target: bool = True,
        **setting_values,
    ) -> InstallContext:
        ctx = InstallContext(
            settings=settings_factory(**setting_values),
            image_path=installer_dir / "system.img.gz",
            installer_dir=installer_dir,
            auto=auto,
            hostname_override=hostname_override,
        )
        if with_target:
            ctx.target = target_disk
            ctx.layout = PartitionLayout.for_disk(target_disk)
        return ctx

    return factory


@pytest.fixture
def install_context(context_factory) -> InstallContext:
    return context_factory()
