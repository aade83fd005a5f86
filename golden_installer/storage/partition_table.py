"""GPT partition table operations through sgdisk.

All parsing of ``sgdisk --info`` output lives here.
"""

from __future__ import annotations

import re
import shutil
from typing import Optional

from golden_installer.domain import PartitionInfo
from golden_installer.logging import LoggerFactory

from .commands import run_command


log = LoggerFactory.for_disk()

# Backup GPT header (1 sector) + backup partition entry array (32 sectors) + last LBA
GPT_BACKUP_SECTORS = 34
# sgdisk aligns partition ends down to 1 MiB boundaries by default
ALIGNMENT_SECTORS = 2048
END_TOLERANCE_SECTORS = GPT_BACKUP_SECTORS + ALIGNMENT_SECTORS

_GUID_CODE = re.compile(r"^Partition GUID code:\s*([0-9A-Fa-f-]{36})", re.MULTILINE)
_FIRST_SECTOR = re.compile(r"^First sector:\s*(\d+)", re.MULTILINE)
_LAST_SECTOR = re.compile(r"^Last sector:\s*(\d+)", re.MULTILINE)
_NAME = re.compile(r"^Partition name:\s*'(.*)'\s*$", re.MULTILINE)


def parse_partition_info(output: str, number: int) -> Optional[PartitionInfo]:
    """Parse ``sgdisk -i N`` output.

    Returns None when the partition does not exist or the output lacks the
    sector fields.
    """
    if "does not exist" in output:
        return None
    first = _FIRST_SECTOR.search(output)
    last = _LAST_SECTOR.search(output)
    if not first or not last:
        return None
    guid = _GUID_CODE.search(output)
    name = _NAME.search(output)
    return PartitionInfo(
        number=number,
        first_sector=int(first.group(1)),
        last_sector=int(last.group(1)),
        type_guid=guid.group(1).upper() if guid else "",
        name=name.group(1) if name else "",
    )


def get_partition_info(device_path: str, number: int) -> Optional[PartitionInfo]:
    output = run_command(["sgdisk", "-i", str(number), device_path], log_output=False).stdout
    return parse_partition_info(output, number)


def extend_gpt(device_path: str) -> None:
    """Move the backup GPT structures to the true end of the disk."""
    run_command(["sgdisk", "-e", device_path])


def build_recreate_command(
    device_path: str, info: PartitionInfo, fallback_type_code: str = "8e00"
) -> list[str]:
    """sgdisk invocation that deletes partition N and recreates it to disk end.

    sgdisk applies the options in order and writes the table once, so the
    partition is never left deleted on disk.
    """
    number = info.number
    type_code = info.type_guid or fallback_type_code
    command = [
        "sgdisk",
        "-d",
        str(number),
        "-n",
        f"{number}:{info.first_sector}:0",
        "-t",
        f"{number}:{type_code}",
    ]
    if info.name:
        command.extend(["-c", f"{number}:{info.name}"])
    command.append(device_path)
    return command


def recreate_partition_to_end(
    device_path: str, info: PartitionInfo, fallback_type_code: str = "8e00"
) -> None:
    run_command(build_recreate_command(device_path, info, fallback_type_code))


def partition_reaches_end(info: PartitionInfo, disk_sectors: int) -> bool:
    """True when ``info`` ends within sgdisk's alignment tolerance of the disk end."""
    last_sector = disk_sectors - 1
    gap = last_sector - info.last_sector
    return 0 <= gap <= END_TOLERANCE_SECTORS


def reread_partition_table(device_path: str) -> bool:
    """Force kernel to re-read partition table."""
    if shutil.which("partprobe"):
        result = run_command(["partprobe", device_path], check=False)
        if result.returncode == 0:
            return True
        log.debug(f"partprobe {device_path} failed: {result.stderr.strip()}")
    if shutil.which("blockdev"):
        result = run_command(["blockdev", "--rereadpt", device_path], check=False)
        return result.returncode == 0
    return False


def settle_udev() -> None:
    """Wait for udev to settle."""
    if shutil.which("udevadm"):
        run_command(["udevadm", "settle"], check=False)


def sync() -> None:
    run_command(["sync"], check=False)
