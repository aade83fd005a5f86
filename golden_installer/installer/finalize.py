"""Hostname, post-install helper and completion report."""

from __future__ import annotations

import os
import re
import shutil
import sys
import time
from pathlib import Path
from typing import Optional

from golden_installer.config.settings import InstallerSettings
from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import LoggerFactory
from golden_installer.storage import lvm
from golden_installer.storage.commands import run_command
from golden_installer.storage.exceptions import HostnameError
from golden_installer.storage.partition_table import sync
from golden_installer.ui import console

from . import target
from .pipeline import apply_policy


log = LoggerFactory.for_system()

_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
HOSTS_LOOPBACK = "127.0.1.1"
EMPTY_MAC = "00:00:00:00:00:00"


def validate_hostname(hostname: str) -> str:
    """Return ``hostname`` if it is a valid RFC 1123 host name.

    Raises:
        HostnameError: If any label is empty, too long, starts or ends with
            a hyphen, or contains other characters than letters, digits and
            hyphens
    """
    if not hostname or len(hostname) > 253:
        raise HostnameError(hostname)
    if not all(_LABEL.match(label) for label in hostname.split(".")):
        raise HostnameError(hostname)
    return hostname


def _ifindex(interface: Path) -> int:
    try:
        return int((interface / "ifindex").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return sys.maxsize


def first_ethernet_mac(sysfs_net_path: Path) -> Optional[str]:
    """MAC address of the first ``e*`` interface in ifindex order, or None.

    This is the order ``ip link`` lists interfaces in. Interfaces without a
    readable ifindex sort last, by name.
    """
    try:
        interfaces = sorted(
            (path for path in sysfs_net_path.iterdir() if path.name.startswith("e")),
            key=lambda path: (_ifindex(path), path.name),
        )
    except OSError:
        return None
    for interface in interfaces:
        try:
            address = (interface / "address").read_text(encoding="utf-8").strip().lower()
        except OSError:
            continue
        if address and address != EMPTY_MAC:
            return address
    return None


def derive_hostname(settings: InstallerSettings, now: Optional[float] = None) -> str:
    """``<prefix>-<last 6 MAC hex digits>``, or the epoch time when no NIC is found."""
    mac = first_ethernet_mac(settings.sysfs_net_path)
    if mac:
        suffix = mac.replace(":", "")[-6:]
    else:
        seconds = int(now if now is not None else time.time())
        suffix = f"{seconds % 10000:04d}"
    return f"{settings.hostname_prefix}-{suffix}"


def prompt_valid_hostname(default: str, input_func: console.InputFunc = input) -> str:
    """Prompt until the operator enters a valid hostname.

    An invalid default is rejected with HostnameError rather than offered again.
    """
    while True:
        hostname = console.prompt_hostname(default, input_func=input_func)
        try:
            return validate_hostname(hostname)
        except HostnameError as error:
            if hostname == default:
                raise
            log.warning(f"{error}")
            console.display_lines([f"{error}. Use letters, digits and hyphens."])


def resolve_hostname(ctx: InstallContext, input_func: console.InputFunc = input) -> str:
    """Override, then the derived name in automatic mode, then the operator's answer.

    Raises:
        HostnameError: If the override or the derived name is invalid
    """
    settings = ctx.settings
    if ctx.hostname_override:
        hostname = validate_hostname(ctx.hostname_override)
    elif ctx.auto:
        hostname = validate_hostname(derive_hostname(settings))
    else:
        hostname = prompt_valid_hostname(settings.default_hostname, input_func=input_func)
    ctx.hostname = hostname
    return hostname


def rewrite_hosts(content: str, hostname: str) -> str:
    """Point the 127.0.1.1 entry at ``hostname``, adding it when missing."""
    entry = f"{HOSTS_LOOPBACK}\t{hostname}"
    lines = content.splitlines()
    replaced = False
    for index, line in enumerate(lines):
        if line.split(maxsplit=1)[:1] == [HOSTS_LOOPBACK]:
            lines[index] = entry
            replaced = True
    if not replaced:
        lines.append(entry)
    return "\n".join(lines) + "\n"


def write_hostname(ctx: InstallContext, hostname: str) -> None:
    hostname_path = ctx.target_path("etc/hostname")
    hostname_path.parent.mkdir(parents=True, exist_ok=True)
    hostname_path.write_text(f"{hostname}\n", encoding="utf-8")

    hosts_path = ctx.target_path("etc/hosts")
    current = hosts_path.read_text(encoding="utf-8") if hosts_path.exists() else ""
    hosts_path.write_text(rewrite_hosts(current, hostname), encoding="utf-8")
    log.info(f"Hostname set to {hostname}")


def copy_post_install(ctx: InstallContext) -> Optional[Path]:
    """Copy the post-install helper into the default user's home, if shipped."""
    settings = ctx.settings
    source = ctx.installer_dir / settings.post_install_script
    if not source.is_file():
        log.debug(f"No post-install helper at {source}")
        return None
    home = ctx.target_path(f"home/{settings.default_user}")
    home.mkdir(parents=True, exist_ok=True)
    destination = home / source.name
    shutil.copy2(source, destination)
    os.chown(destination, settings.default_uid, settings.default_gid)
    os.chmod(destination, 0o755)
    log.info(f"Copied {source.name} to /home/{settings.default_user}/")
    return destination


def finalize(ctx: InstallContext, input_func: console.InputFunc = input) -> None:
    hostname = resolve_hostname(ctx, input_func=input_func)
    target.mount_root(ctx)
    try:
        write_hostname(ctx, hostname)
        apply_policy(
            ctx, "copy post-install helper", StepPolicy.BEST_EFFORT, copy_post_install, ctx
        )
    finally:
        sync()
        target.unmount_all(ctx)
    vg = ctx.settings.volume_group
    apply_policy(
        ctx, f"deactivate volume group {vg}", StepPolicy.BEST_EFFORT,
        lvm.deactivate_volume_group, vg,
    )


def complete(ctx: InstallContext, input_func: console.InputFunc = input) -> None:
    """Print the completion report; in attended mode wait for Enter and reboot."""
    console.show_completion(ctx.target, ctx.hostname, ctx.warnings, ctx.auto)
    if ctx.warnings:
        log.warning(f"Installation finished with {len(ctx.warnings)} skipped step(s)")
    else:
        log.success("Installation finished")
    if ctx.auto:
        return
    console.wait_for_reboot(input_func=input_func)
    log.info("Rebooting")
    run_command(["reboot"])
