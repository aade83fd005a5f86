"""Tests for block device discovery."""
import json

import pytest

from golden_installer.storage import devices
from golden_installer.storage.exceptions import CommandError


class TestHumanSize:
    @pytest.mark.parametrize(
        "size,expected",
        [
            (None, "0B"),
            (512, "512.0B"),
            (1024, "1.0KB"),
            (40 * 1024**3, "40.0GB"),
            (2 * 1024**4, "2.0TB"),
        ],
    )
    def test_formats(self, size, expected):
        assert devices.human_size(size) == expected


class TestGetBlockDevices:
    def test_parses_lsblk_json(self, fake_runner, lsblk_output):
        fake_runner.on("lsblk", stdout=lsblk_output)

        result = devices.get_block_devices()

        assert [device["name"] for device in result] == ["sda", "nvme0n1", "sdb", "loop0", "sr0"]
        assert fake_runner.calls[0] == ["lsblk", "-J", "-b", "-o", devices.LSBLK_COLUMNS]

    def test_single_device(self, fake_runner):
        fake_runner.on("lsblk", stdout=json.dumps({"blockdevices": []}))

        devices.get_block_devices("/dev/sda")

        assert fake_runner.calls[0][-1] == "/dev/sda"

    def test_invalid_json_raises(self, fake_runner):
        fake_runner.on("lsblk", stdout="not json")

        with pytest.raises(CommandError):
            devices.get_block_devices()

    def test_lsblk_failure_raises(self, fake_runner):
        fake_runner.on("lsblk", returncode=32, stderr="lsblk: failed")

        with pytest.raises(CommandError):
            devices.get_block_devices()


class TestListDisks:
    def test_only_disks_are_returned(self, fake_runner, lsblk_output):
        fake_runner.on("lsblk", stdout=lsblk_output)

        disks = devices.list_disks(boot_device="sdb")

        assert [disk.name for disk in disks] == ["sda", "nvme0n1", "sdb"]
        assert [disk.is_boot_device for disk in disks] == [False, False, True]
        assert disks[0].model == "Samsung SSD 860"
        assert disks[2].transport == "usb"
        assert disks[2].removable is True


class TestListPartitionNodes:
    def test_walks_partitions_only(self, fake_runner, lsblk_devices):
        fake_runner.on("lsblk", stdout=json.dumps({"blockdevices": [lsblk_devices[0]]}))

        nodes = devices.list_partition_nodes("/dev/sda")

        assert nodes == ["/dev/sda1", "/dev/sda2", "/dev/sda3"]

    def test_clean_disk_has_no_partitions(self, fake_runner, lsblk_devices):
        fake_runner.on("lsblk", stdout=json.dumps({"blockdevices": [lsblk_devices[1]]}))

        assert devices.list_partition_nodes("/dev/nvme0n1") == []

    def test_lsblk_failure_returns_empty(self, fake_runner):
        fake_runner.on("lsblk", returncode=32)

        assert devices.list_partition_nodes("/dev/sdz") == []


class TestBootDevice:
    def test_find_mount_source_strips_bind_path(self, fake_runner):
        fake_runner.on(
            "findmnt", stdout=json.dumps({"filesystems": [{"source": "/dev/sdb1[/casper]"}]})
        )

        assert devices.find_mount_source("/run/live/medium") == "/dev/sdb1"

    def test_find_mount_source_not_mounted(self, fake_runner):
        fake_runner.on("findmnt", returncode=1)

        assert devices.find_mount_source("/cdrom") is None

    def test_parent_disk_name(self, fake_runner):
        fake_runner.on("lsblk", "-n", "-o", "PKNAME", stdout="sdb\n")

        assert devices.get_parent_disk_name("/dev/sdb1") == "sdb"

    def test_parent_disk_name_for_whole_device(self, fake_runner):
        fake_runner.on("lsblk", "-n", "-o", "PKNAME", stdout="\n")

        assert devices.get_parent_disk_name("/dev/sr0") == "sr0"

    def test_falls_back_to_cdrom(self, fake_runner):
        fake_runner.on("findmnt", "-J", "-n", "-o", "SOURCE", "/run/live/medium", returncode=1)
        fake_runner.on(
            "findmnt", "-J", "-n", "-o", "SOURCE", "/cdrom",
            stdout=json.dumps({"filesystems": [{"source": "/dev/sr0"}]}),
        )
        fake_runner.on("lsblk", "-n", "-o", "PKNAME", stdout="\n")

        assert devices.get_boot_device(["/run/live/medium", "/cdrom"]) == "sr0"

    def test_unknown_boot_device(self, fake_runner):
        fake_runner.on("findmnt", returncode=1)

        assert devices.get_boot_device(["/run/live/medium", "/cdrom"]) is None


class TestBlockdev:
    def test_size_sectors(self, fake_runner):
        fake_runner.on("blockdev", "--getsz", stdout="83886080\n")
        fake_runner.on("blockdev", "--getss", stdout="512\n")

        assert devices.get_device_size_sectors("/dev/sda") == 83886080

    def test_size_sectors_4k_native(self, fake_runner):
        """Test a 40 GiB disk with 4096-byte logical sectors."""
        fake_runner.on("blockdev", "--getsz", stdout="83886080\n")
        fake_runner.on("blockdev", "--getss", stdout="4096\n")

        assert devices.get_device_size_sectors("/dev/sda") == 10485760

    def test_unexpected_output_raises(self, fake_runner):
        fake_runner.on("blockdev", "--getsz", stdout="garbage\n")

        with pytest.raises(CommandError):
            devices.get_device_size_sectors("/dev/sda")

    def test_zero_sector_size_raises(self, fake_runner):
        fake_runner.on("blockdev", "--getsz", stdout="83886080\n")
        fake_runner.on("blockdev", "--getss", stdout="0\n")

        with pytest.raises(CommandError):
            devices.get_device_size_sectors("/dev/sda")
