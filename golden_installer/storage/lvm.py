"""LVM operations (pvs, vgs, vgchange, pvresize, lvextend).

Queries use ``--reportformat json`` so no column parsing is needed.
"""

from __future__ import annotations

import json
from typing import Iterable

from golden_installer.logging import LoggerFactory

from .commands import run_command, run_quiet
from .exceptions import CommandError


log = LoggerFactory.for_lvm()


def parse_lvm_report(output: str, section: str) -> list[dict]:
    """Rows of ``section`` ("pv", "vg", "lv") from an LVM JSON report."""
    if not output or not output.strip():
        return []
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return []
    rows: list[dict] = []
    for report in data.get("report", []) or []:
        rows.extend(report.get(section, []) or [])
    return rows


def volume_group_exists(volume_group: str) -> bool:
    result = run_command(
        ["vgs", "--reportformat", "json", "-o", "vg_name", volume_group],
        check=False,
        log_output=False,
    )
    if result.returncode != 0:
        return False
    names = {row.get("vg_name", "").strip() for row in parse_lvm_report(result.stdout, "vg")}
    return volume_group in names


def _physical_volume_rows(nodes: Iterable[str]) -> list[dict]:
    # pvs exits non-zero when some of the nodes are not PVs but still
    # reports the ones that are, so the exit status is ignored
    nodes = list(nodes)
    if not nodes:
        return []
    result = run_command(
        ["pvs", "--reportformat", "json", "-o", "pv_name,vg_name", *nodes],
        check=False,
        log_output=False,
    )
    return parse_lvm_report(result.stdout, "pv")


def physical_volumes_on(nodes: Iterable[str]) -> list[str]:
    """The subset of ``nodes`` that carry an LVM physical volume label."""
    return [
        row["pv_name"].strip()
        for row in _physical_volume_rows(nodes)
        if (row.get("pv_name") or "").strip()
    ]


def volume_groups_on(nodes: Iterable[str]) -> list[str]:
    """Names of volume groups with a physical volume on any of ``nodes``."""
    names = set()
    for row in _physical_volume_rows(nodes):
        name = (row.get("vg_name") or "").strip()
        if name:
            names.add(name)
    return sorted(names)


def get_free_extents(volume_group: str) -> int:
    output = run_command(
        ["vgs", "--reportformat", "json", "-o", "vg_free_count", volume_group],
        log_output=False,
    ).stdout
    rows = parse_lvm_report(output, "vg")
    if not rows:
        raise CommandError(["vgs", volume_group], 0, stderr="volume group missing from report")
    return int(str(rows[0].get("vg_free_count", "0")).strip() or 0)


def scan() -> None:
    """Make LVM notice volume groups on freshly written disks."""
    run_quiet(["pvscan", "--cache"])
    run_quiet(["vgscan"])


def activate_volume_group(volume_group: str) -> None:
    run_command(["vgchange", "-ay", volume_group])
    log.debug(f"Activated volume group {volume_group}")


def deactivate_volume_group(volume_group: str) -> None:
    run_command(["vgchange", "-an", volume_group])
    log.debug(f"Deactivated volume group {volume_group}")


def remove_volume_group(volume_group: str) -> None:
    run_command(["vgremove", "-f", volume_group])


def remove_physical_volume(node: str) -> None:
    run_command(["pvremove", "-f", node])


def resize_physical_volume(node: str) -> None:
    run_command(["pvresize", node])


def extend_logical_volume(lv_path: str) -> None:
    """Grow ``lv_path`` over 100% of the free extents of its volume group."""
    run_command(["lvextend", "-l", "+100%FREE", lv_path])
