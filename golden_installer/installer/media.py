"""Preconditions and installer media discovery.

Nothing in this module writes to a disk. Every check here must pass before
the first destructive stage runs.
"""

from __future__ import annotations

import glob
import os
from pathlib import Path
from typing import Optional

from golden_installer.config.settings import InstallerSettings
from golden_installer.logging import LoggerFactory
from golden_installer.storage.commands import missing_tools
from golden_installer.storage.exceptions import (
    CommandError,
    ImageNotFoundError,
    MissingToolError,
    PrivilegeError,
)
from golden_installer.storage.mount import mount, unmount_quietly


log = LoggerFactory.for_system()


def check_privileges() -> None:
    euid = os.geteuid()
    if euid != 0:
        raise PrivilegeError(euid)


def check_tools(settings: InstallerSettings) -> None:
    missing = missing_tools(settings.required_tools)
    if missing:
        raise MissingToolError(missing)


def find_installer_dir(settings: InstallerSettings) -> Optional[Path]:
    """First search path (glob patterns allowed) that holds the image."""
    for pattern in settings.installer_search_paths:
        for candidate in sorted(glob.glob(pattern)):
            path = Path(candidate)
            if (path / settings.image_name).is_file():
                log.debug(f"Found installer files in {path}")
                return path
    return None


def mount_optical_media(settings: InstallerSettings) -> Optional[Path]:
    """Mount the first optical device carrying the installer directory."""
    for device in settings.optical_devices:
        if not Path(device).exists():
            continue
        try:
            mount(device, settings.media_mount, options="ro")
        except CommandError as error:
            log.debug(f"Could not mount {device}: {error}")
            continue
        candidate = settings.media_mount / "installer"
        if (candidate / settings.image_name).is_file():
            log.info(f"Mounted installer media {device} at {settings.media_mount}")
            return candidate
        unmount_quietly(settings.media_mount)
    return None


def locate_image(
    settings: InstallerSettings, image_override: Optional[str] = None
) -> tuple[Path, Path]:
    """Return ``(installer_dir, image_path)``.

    Raises:
        ImageNotFoundError: If the image is in none of the search locations
    """
    if image_override:
        image_path = Path(image_override)
        if not image_path.is_file():
            raise ImageNotFoundError(str(image_path))
        return image_path.parent, image_path

    installer_dir = find_installer_dir(settings) or mount_optical_media(settings)
    if installer_dir is None:
        searched = [*settings.installer_search_paths, *settings.optical_devices]
        raise ImageNotFoundError(f"{settings.image_name} (searched {', '.join(searched)})")
    return installer_dir, installer_dir / settings.image_name


def check_preconditions(
    settings: InstallerSettings, image_override: Optional[str] = None
) -> tuple[Path, Path]:
    """Verify privilege, tools and image; return ``(installer_dir, image_path)``."""
    check_privileges()
    check_tools(settings)
    installer_dir, image_path = locate_image(settings, image_override)
    log.info(f"Using image {image_path}")
    return installer_dir, image_path
