"""Connectivity monitoring."""

from .monitor import NetworkMonitor

__all__ = ["NetworkMonitor"]
