"""Tests for the LVM adapter."""
import pytest

from golden_installer.storage import lvm
from golden_installer.storage.exceptions import CommandError


class TestParseLvmReport:
    def test_rows_of_section(self, lvm_report):
        output = lvm_report("vg", [{"vg_name": "vg0"}, {"vg_name": "data"}])

        assert lvm.parse_lvm_report(output, "vg") == [{"vg_name": "vg0"}, {"vg_name": "data"}]

    def test_other_section_is_empty(self, lvm_report):
        assert lvm.parse_lvm_report(lvm_report("pv", [{"pv_name": "/dev/sda3"}]), "vg") == []

    @pytest.mark.parametrize("output", ["", "   ", "not json"])
    def test_garbage_is_empty(self, output):
        assert lvm.parse_lvm_report(output, "pv") == []


class TestQueries:
    def test_volume_group_exists(self, fake_runner, lvm_report):
        fake_runner.on("vgs", stdout=lvm_report("vg", [{"vg_name": "vg0"}]))

        assert lvm.volume_group_exists("vg0") is True

    def test_volume_group_missing(self, fake_runner):
        fake_runner.on("vgs", returncode=5, stderr='Volume group "vg0" not found')

        assert lvm.volume_group_exists("vg0") is False

    def test_volume_groups_on_ignores_exit_status(self, fake_runner, lvm_report):
        fake_runner.on(
            "pvs",
            returncode=5,
            stdout=lvm_report(
                "pv",
                [
                    {"pv_name": "/dev/sda3", "vg_name": "vg0"},
                    {"pv_name": "/dev/sda4", "vg_name": "vg0"},
                    {"pv_name": "/dev/sda5", "vg_name": ""},
                ],
            ),
        )

        assert lvm.volume_groups_on(["/dev/sda", "/dev/sda3", "/dev/sda4"]) == ["vg0"]
        assert lvm.physical_volumes_on(["/dev/sda3"]) == ["/dev/sda3", "/dev/sda4", "/dev/sda5"]

    def test_no_nodes_runs_nothing(self, fake_runner):
        assert lvm.volume_groups_on([]) == []
        assert lvm.physical_volumes_on([]) == []
        assert fake_runner.calls == []

    def test_free_extents(self, fake_runner, lvm_report):
        fake_runner.on("vgs", stdout=lvm_report("vg", [{"vg_free_count": "7680"}]))

        assert lvm.get_free_extents("vg0") == 7680

    def test_free_extents_missing_group(self, fake_runner, lvm_report):
        fake_runner.on("vgs", stdout=lvm_report("vg", []))

        with pytest.raises(CommandError):
            lvm.get_free_extents("vg0")


class TestCommands:
    def test_scan_tolerates_failure(self, fake_runner):
        fake_runner.on("vgscan", returncode=5)

        lvm.scan()

        assert fake_runner.calls == [["pvscan", "--cache"], ["vgscan"]]

    def test_activate_and_deactivate(self, fake_runner):
        lvm.activate_volume_group("vg0")
        lvm.deactivate_volume_group("vg0")

        assert fake_runner.calls == [["vgchange", "-ay", "vg0"], ["vgchange", "-an", "vg0"]]

    def test_resize_and_extend(self, fake_runner):
        lvm.resize_physical_volume("/dev/sda3")
        lvm.extend_logical_volume("/dev/vg0/root")

        assert fake_runner.calls == [
            ["pvresize", "/dev/sda3"],
            ["lvextend", "-l", "+100%FREE", "/dev/vg0/root"],
        ]

    def test_remove(self, fake_runner):
        lvm.remove_volume_group("vg0")
        lvm.remove_physical_volume("/dev/sda3")

        assert fake_runner.calls == [["vgremove", "-f", "vg0"], ["pvremove", "-f", "/dev/sda3"]]

    def test_activation_failure_raises(self, fake_runner):
        fake_runner.on("vgchange", returncode=5)

        with pytest.raises(CommandError):
            lvm.activate_volume_group("vg0")
