"""Offline analysis of a stopped member's bbolt backend (no network)."""

from .analysis import analyze_offline, to_backend_file_name

__all__ = ["analyze_offline", "to_backend_file_name"]
