"""Stream the compressed golden image onto the target disk."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional

from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import lvm
from golden_installer.storage.exceptions import CloneOperationError, CommandError
from golden_installer.storage.partition_table import reread_partition_table, sync
from golden_installer.storage.progress import run_with_streaming_progress

from .pipeline import apply_policy, settle


log = LoggerFactory.for_clone()


def decompressor_command(image_path: Path) -> list[str]:
    """pigz when available, gzip otherwise."""
    gzip_path = shutil.which("pigz") or shutil.which("gzip")
    if not gzip_path:
        raise CloneOperationError("gzip not found", image=str(image_path))
    return [gzip_path, "-dc", str(image_path)]


def build_dd_command(device_path: str, block_size: str = "4M") -> list[str]:
    return [
        "dd",
        f"of={device_path}",
        f"bs={block_size}",
        "status=progress",
        "conv=fsync",
    ]


def get_uncompressed_size(image_path: Path) -> Optional[int]:
    """Size recorded in the gzip trailer, or None when it cannot be trusted.

    The trailer stores the size modulo 2**32, so it is only used for progress
    estimates and only when it is at least the compressed size.
    """
    try:
        with open(image_path, "rb") as image_file:
            image_file.seek(-4, 2)
            size = int.from_bytes(image_file.read(4), "little")
    except OSError:
        return None
    if size < image_path.stat().st_size:
        return None
    return size


def stream_image(image_path: Path, device_path: str, block_size: str = "4M") -> None:
    """Decompress ``image_path`` straight onto ``device_path``.

    Raises:
        CloneOperationError: If decompression or dd fails
    """
    decompress_proc = subprocess.Popen(
        decompressor_command(image_path),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    error: Optional[CommandError] = None
    try:
        run_with_streaming_progress(
            build_dd_command(device_path, block_size),
            stdin_source=decompress_proc.stdout,
            total_bytes=get_uncompressed_size(image_path),
        )
    except CommandError as exc:
        error = exc
    finally:
        if decompress_proc.stdout:
            decompress_proc.stdout.close()
        decompress_proc.wait()
    if error:
        raise CloneOperationError(
            f"Writing image to {device_path} failed: {error}",
            image=str(image_path),
            device=device_path,
        ) from error
    if decompress_proc.returncode != 0:
        stderr = b""
        if decompress_proc.stderr:
            stderr = decompress_proc.stderr.read()
        message = stderr.decode(errors="replace").strip()
        detail = message.splitlines()[-1] if message else f"exit code {decompress_proc.returncode}"
        raise CloneOperationError(
            f"Image decompression failed: {detail}",
            image=str(image_path),
            device=device_path,
        )


def clone_image(ctx: InstallContext) -> None:
    target = ctx.require_target()
    settings = ctx.settings
    log.info(f"Writing {ctx.image_path.name} to {target.device_path}")
    stream_image(ctx.image_path, target.device_path, settings.clone_block_size)

    sync()
    reread_partition_table(target.device_path)
    settle(settings.settle_seconds)
    lvm.scan()
    apply_policy(
        ctx, f"activate volume group {settings.volume_group}", StepPolicy.RETRYABLE,
        lvm.activate_volume_group, settings.volume_group,
    )
    settle(settings.lvm_settle_seconds)
    log.info(f"Image written to {target.device_path}")
