"""Configuration for the triage service."""

from .settings import Settings

__all__ = ["Settings"]
