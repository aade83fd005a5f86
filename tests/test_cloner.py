"""
Tests for streaming the golden image onto the target.

This test suite covers:
- Decompressor and dd command construction
- Size estimates from the gzip trailer
- Error handling for both ends of the pipe
- The post-write rescan and volume group activation
"""

import gzip
from unittest.mock import Mock

import pytest

from golden_installer.installer import cloner
from golden_installer.storage.exceptions import CloneOperationError, CommandError


@pytest.fixture
def decompressor(mocker):
    process = Mock()
    process.returncode = 0
    popen = mocker.patch("golden_installer.installer.cloner.subprocess.Popen", return_value=process)
    return popen, process


class TestCommands:
    def test_prefers_pigz(self, fake_runner, tmp_path):
        assert cloner.decompressor_command(tmp_path / "system.img.gz") == [
            "/usr/sbin/pigz", "-dc", str(tmp_path / "system.img.gz"),
        ]

    def test_falls_back_to_gzip(self, mocker, tmp_path):
        mocker.patch(
            "golden_installer.installer.cloner.shutil.which",
            side_effect=lambda name: None if name == "pigz" else f"/bin/{name}",
        )

        assert cloner.decompressor_command(tmp_path / "img.gz")[0] == "/bin/gzip"

    def test_no_decompressor(self, mocker, tmp_path):
        mocker.patch("golden_installer.installer.cloner.shutil.which", return_value=None)

        with pytest.raises(CloneOperationError):
            cloner.decompressor_command(tmp_path / "img.gz")

    def test_dd_command(self):
        assert cloner.build_dd_command("/dev/nvme0n1", "8M") == [
            "dd", "of=/dev/nvme0n1", "bs=8M", "status=progress", "conv=fsync",
        ]


class TestUncompressedSize:
    def test_reads_trailer(self, tmp_path):
        image = tmp_path / "system.img.gz"
        image.write_bytes(gzip.compress(b"\0" * 100000))

        assert cloner.get_uncompressed_size(image) == 100000

    def test_implausible_trailer(self, tmp_path):
        image = tmp_path / "system.img.gz"
        image.write_bytes(b"x" * 100 + (5).to_bytes(4, "little"))

        assert cloner.get_uncompressed_size(image) is None

    def test_truncated_file(self, installer_dir):
        assert cloner.get_uncompressed_size(installer_dir / "system.img.gz") is None


class TestStreamImage:
    """Tests for stream_image()."""

    def test_pipes_decompressor_into_dd(self, fake_runner, decompressor, mocker, installer_dir):
        popen, process = decompressor
        stream = mocker.patch("golden_installer.installer.cloner.run_with_streaming_progress")
        image = installer_dir / "system.img.gz"

        cloner.stream_image(image, "/dev/sda", "4M")

        assert popen.call_args[0][0] == ["/usr/sbin/pigz", "-dc", str(image)]
        stream.assert_called_once_with(
            ["dd", "of=/dev/sda", "bs=4M", "status=progress", "conv=fsync"],
            stdin_source=process.stdout,
            total_bytes=None,
        )
        process.stdout.close.assert_called_once_with()
        process.wait.assert_called_once_with()

    def test_dd_failure(self, fake_runner, decompressor, mocker, installer_dir):
        _, process = decompressor
        mocker.patch(
            "golden_installer.installer.cloner.run_with_streaming_progress",
            side_effect=CommandError(["dd"], 1, stderr="No space left on device"),
        )

        with pytest.raises(CloneOperationError) as exc_info:
            cloner.stream_image(installer_dir / "system.img.gz", "/dev/sda")

        assert exc_info.value.device == "/dev/sda"
        assert "No space left on device" in str(exc_info.value)
        process.wait.assert_called_once_with()

    def test_decompressor_failure(self, fake_runner, decompressor, mocker, installer_dir):
        _, process = decompressor
        process.returncode = 1
        process.stderr.read.return_value = b"gzip: stdin: unexpected end of file\n"
        mocker.patch("golden_installer.installer.cloner.run_with_streaming_progress")

        with pytest.raises(CloneOperationError) as exc_info:
            cloner.stream_image(installer_dir / "system.img.gz", "/dev/sda")

        assert str(exc_info.value) == "Image decompression failed: gzip: stdin: unexpected end of file"


class TestCloneImage:
    """Tests for clone_image()."""

    def test_rescans_and_activates(self, fake_runner, install_context, mocker):
        stream = mocker.patch("golden_installer.installer.cloner.stream_image")

        cloner.clone_image(install_context)

        stream.assert_called_once_with(install_context.image_path, "/dev/sda", "4M")
        assert fake_runner.calls == [
            ["sync"],
            ["partprobe", "/dev/sda"],
            ["udevadm", "settle"],
            ["pvscan", "--cache"],
            ["vgscan"],
            ["vgchange", "-ay", "vg0"],
            ["udevadm", "settle"],
        ]

    def test_activation_is_retried(self, fake_runner, context_factory, mocker):
        mocker.patch("golden_installer.installer.cloner.stream_image")
        fake_runner.on("vgchange", returncode=5, stderr='Volume group "vg0" not found')
        ctx = context_factory(retry_attempts=2)

        with pytest.raises(CommandError):
            cloner.clone_image(ctx)

        assert len(fake_runner.commands("vgchange")) == 2

    def test_write_failure_stops_stage(self, fake_runner, install_context, mocker):
        mocker.patch(
            "golden_installer.installer.cloner.stream_image",
            side_effect=CloneOperationError("Writing image to /dev/sda failed"),
        )

        with pytest.raises(CloneOperationError):
            cloner.clone_image(install_context)
        assert fake_runner.calls == []
