"""Operator-facing console output and prompts."""
