"""Capture triage: classify free-form captures into calendar, todo and note."""

__version__ = "0.1.0"
