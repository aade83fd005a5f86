"""Netplan configuration for the installed system: DHCP on every wired NIC."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from golden_installer.config.settings import InstallerSettings
from golden_installer.domain import InstallContext
from golden_installer.logging import LoggerFactory


log = LoggerFactory.for_system()

NETPLAN_DIR = "etc/netplan"


def build_netplan_config(settings: InstallerSettings) -> dict[str, Any]:
    """netplan document matching each interface name pattern.

    Every interface is optional so boot never waits for a link.
    """
    ethernets = {
        name: {
            "match": {"name": pattern},
            "dhcp4": True,
            "dhcp6": True,
            "optional": True,
        }
        for name, pattern in settings.interface_patterns
    }
    return {
        "network": {
            "version": 2,
            "renderer": "networkd",
            "ethernets": ethernets,
        }
    }


def render_netplan(config: dict[str, Any]) -> str:
    return yaml.safe_dump(config, default_flow_style=False, sort_keys=False)


def write_network_config(ctx: InstallContext) -> Path:
    path = ctx.target_path(NETPLAN_DIR) / ctx.settings.netplan_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_netplan(build_netplan_config(ctx.settings)), encoding="utf-8")
    # netplan warns about world-readable configuration files
    os.chmod(path, 0o600)
    log.info(f"Wrote network configuration {path}")
    return path
