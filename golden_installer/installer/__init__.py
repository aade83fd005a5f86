"""Installer pipeline stages."""
