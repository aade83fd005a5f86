"""Kernel command line flags understood by the boot wrapper."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from golden_installer.config.settings import InstallerSettings


PROC_CMDLINE = Path("/proc/cmdline")


@dataclass(frozen=True)
class KernelCommandLine:
    tokens: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> KernelCommandLine:
        return cls(tokens=tuple(text.split()))

    @classmethod
    def read(cls, path: Path = PROC_CMDLINE) -> KernelCommandLine:
        try:
            return cls.parse(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return cls(tokens=())

    def has_flag(self, flag: str) -> bool:
        """True for a bare ``flag`` token or a ``flag=value`` token."""
        return any(token == flag or token.startswith(f"{flag}=") for token in self.tokens)

    def has_prefix(self, prefix: str) -> bool:
        return any(token.startswith(prefix) for token in self.tokens)

    def autoinstall(self, settings: InstallerSettings) -> bool:
        return self.has_flag(settings.autoinstall_token)

    def stock_installer_disabled(self, settings: InstallerSettings) -> bool:
        return self.has_prefix(settings.stock_installer_token)
