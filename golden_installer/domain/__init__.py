"""Domain models for a single installer run."""

from __future__ import annotations

from .models import (
    Disk,
    FilesystemIds,
    FstabEntry,
    InstallContext,
    PartitionFixState,
    PartitionInfo,
    PartitionLayout,
    StepPolicy,
)


__all__ = [
    "Disk",
    "FilesystemIds",
    "FstabEntry",
    "InstallContext",
    "PartitionFixState",
    "PartitionInfo",
    "PartitionLayout",
    "StepPolicy",
]
