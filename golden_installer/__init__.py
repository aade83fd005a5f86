"""Offline installer that clones a golden Ubuntu disk image onto a target disk."""

from .__version__ import __version__

__all__ = ["__version__"]
