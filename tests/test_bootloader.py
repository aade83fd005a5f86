"""
Tests for boot repair inside the target chroot.

This test suite covers:
- Order of the chroot steps
- Removal of casper initramfs hooks
- Best-effort handling of failing steps
- Teardown of bind mounts and target mounts
"""

import pytest

from golden_installer.installer import bootloader
from golden_installer.storage.exceptions import CommandError


APT = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get"]


@pytest.fixture
def mounted_target(install_context, mocker):
    """Target root, /boot and /boot/efi are mounted."""
    mocker.patch("golden_installer.storage.mount.is_mountpoint", return_value=True)
    root = install_context.mount_root
    install_context.mounts.extend([str(root), str(root / "boot"), str(root / "boot/efi")])
    return install_context


class TestChrootSteps:
    def test_step_order(self, fake_runner, mounted_target):
        bootloader.fix_bootloader(mounted_target)

        assert [call[2:] for call in fake_runner.commands("chroot")] == [
            [*APT, "purge", "-y", "casper", "lupin-casper"],
            [*APT, "autoremove", "-y"],
            ["systemctl", "disable", "casper.service"],
            ["systemctl", "mask", "casper.service"],
            ["systemctl", "disable", "casper-md5check.service"],
            ["systemctl", "mask", "casper-md5check.service"],
            ["update-initramfs", "-u", "-k", "all"],
            [
                "grub-install", "--target=x86_64-efi", "--efi-directory=/boot/efi",
                "--bootloader-id=ubuntu", "--recheck",
            ],
            ["update-grub"],
        ]
        assert all(call[1] == str(mounted_target.mount_root)
                   for call in fake_runner.commands("chroot"))
        assert mounted_target.warnings == []

    def test_step_names(self, settings):
        names = [name for name, _, _ in bootloader.build_chroot_steps(settings, settings.mount_root)]

        assert names[:3] == [
            "purge live packages", "autoremove packages", "remove casper initramfs scripts",
        ]
        assert names[-3:] == ["rebuild initramfs", "install grub", "update grub"]

    def test_failing_step_does_not_stop_the_rest(self, fake_runner, mounted_target):
        root = str(mounted_target.mount_root)
        fake_runner.on("chroot", root, "grub-install", returncode=1,
                       stderr="grub-install: error: cannot find EFI directory.")

        bootloader.fix_bootloader(mounted_target)

        assert len(mounted_target.warnings) == 1
        assert mounted_target.warnings[0].startswith("install grub: ")
        assert fake_runner.ran("chroot", root, "update-grub")


class TestTeardown:
    def test_binds_then_target_unmounted(self, fake_runner, mounted_target):
        root = mounted_target.mount_root

        bootloader.fix_bootloader(mounted_target)

        last_chroot = max(i for i, call in enumerate(fake_runner.calls) if call[0] == "chroot")
        umounts = [call for call in fake_runner.calls[last_chroot:] if call[0] == "umount"]
        assert umounts == [
            ["umount", "-l", str(root / "run")],
            ["umount", "-l", str(root / "sys")],
            ["umount", "-l", str(root / "proc")],
            ["umount", "-l", str(root / "dev/pts")],
            ["umount", "-l", str(root / "dev")],
            ["umount", str(root / "boot/efi")],
            ["umount", str(root / "boot")],
            ["umount", str(root)],
        ]
        assert mounted_target.mounts == []

    def test_bind_failure_still_unmounts_target(self, fake_runner, mounted_target):
        fake_runner.on("mount", "--bind", "/sys", returncode=32)

        with pytest.raises(CommandError):
            bootloader.fix_bootloader(mounted_target)

        assert not fake_runner.ran("chroot")
        assert ["umount", str(mounted_target.mount_root)] in fake_runner.calls
        assert mounted_target.mounts == []

    def test_stuck_bind_mount_is_reported(self, fake_runner, mounted_target):
        proc = mounted_target.mount_root / "proc"
        fake_runner.on("umount", "-l", str(proc), returncode=32)

        bootloader.fix_bootloader(mounted_target)

        assert mounted_target.warnings == [f"unmount {proc}: still mounted"]


class TestCasperScripts:
    def test_removes_hooks(self, tmp_path):
        scripts = tmp_path / "usr/share/initramfs-tools/scripts"
        (scripts / "casper-bottom").mkdir(parents=True)
        (scripts / "casper-bottom" / "25adduser").write_text("#!/bin/sh\n")
        (scripts / "casper").write_text("#!/bin/sh\n")
        (scripts / "init-bottom").mkdir()
        (scripts / "init-bottom" / "casper-helper").write_text("#!/bin/sh\n")
        (scripts / "local").write_text("#!/bin/sh\n")

        removed = bootloader.remove_casper_scripts(tmp_path)

        assert len(removed) == 3
        assert sorted(path.name for path in scripts.iterdir()) == ["init-bottom", "local"]
        assert list((scripts / "init-bottom").iterdir()) == []

    def test_nothing_to_remove(self, tmp_path):
        assert bootloader.remove_casper_scripts(tmp_path) == []
