"""Custom exceptions for installer operations.

This module defines a hierarchy of exceptions so every fatal condition the
installer can hit carries a specific type and a readable message.

Exception Hierarchy:
    InstallerError (base)
        ├── PreconditionError
        │   ├── PrivilegeError
        │   ├── MissingToolError
        │   └── ImageNotFoundError
        ├── CommandError
        ├── DiskSelectionError
        │   ├── NoEligibleDeviceError
        │   └── UserCancelledError
        ├── WipeError
        ├── CloneOperationError
        ├── PartitionFixError
        ├── IdentityError
        └── HostnameError

Usage:
    from golden_installer.storage.exceptions import NoEligibleDeviceError

    if not candidates:
        raise NoEligibleDeviceError(boot_device="sdb", auto=True)
"""

from __future__ import annotations

from typing import Optional, Sequence


class InstallerError(Exception):
    """Base exception for all installer operations."""


class PreconditionError(InstallerError):
    """A requirement for starting the installation is not met."""


class PrivilegeError(PreconditionError):
    """The installer is not running as root."""

    def __init__(self, euid: int):
        self.euid = euid
        super().__init__(f"This installer must be run as root (effective uid {euid})")


class MissingToolError(PreconditionError):
    """One or more required external tools are not on PATH."""

    def __init__(self, tools: Sequence[str]):
        self.tools = list(tools)
        super().__init__(f"Missing required tools: {', '.join(self.tools)}")


class ImageNotFoundError(PreconditionError):
    """The compressed system image could not be located."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"System image not found: {location}")


class CommandError(InstallerError):
    """An external tool exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stderr: str = "",
        stdout: str = "",
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = (stderr or stdout or "").strip()
        message = f"Command failed ({' '.join(self.command)}) with exit code {returncode}"
        if detail:
            message += f": {detail.splitlines()[-1]}"
        super().__init__(message)


class DiskSelectionError(InstallerError):
    """Base exception for target disk selection."""


class NoEligibleDeviceError(DiskSelectionError):
    """No disk is left after excluding the boot medium (and removable disks)."""

    def __init__(self, boot_device: Optional[str] = None, auto: bool = False):
        self.boot_device = boot_device
        self.auto = auto
        msg = "No eligible target disk found"
        if boot_device:
            msg += f" (boot device {boot_device} excluded)"
        if auto:
            msg += "; removable disks are skipped in automatic mode"
        super().__init__(msg)


class UserCancelledError(DiskSelectionError):
    """The operator declined the destructive confirmation."""

    def __init__(self, device: str):
        self.device = device
        super().__init__(f"Installation cancelled by user; {device} left untouched")


class WipeError(InstallerError):
    """The target disk could not be wiped."""

    def __init__(self, message: str, device: str = None):
        self.device = device
        super().__init__(message)


class CloneOperationError(InstallerError):
    """Streaming the image onto the target failed."""

    def __init__(self, message: str, image: str = None, device: str = None):
        self.image = image
        self.device = device
        super().__init__(message)


class PartitionFixError(InstallerError):
    """Growing the partition, volume or filesystem failed."""

    def __init__(self, message: str, state: str = None):
        self.state = state
        super().__init__(message)


class IdentityError(InstallerError):
    """Filesystem identifiers could not be assigned or read back."""

    def __init__(self, message: str, device: str = None):
        self.device = device
        super().__init__(message)


class HostnameError(InstallerError):
    """The requested hostname is not a valid RFC 1123 hostname."""

    def __init__(self, hostname: str):
        self.hostname = hostname
        super().__init__(f"Invalid hostname: {hostname!r}")
