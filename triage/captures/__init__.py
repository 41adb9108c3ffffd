"""Captures: raw user input awaiting or having received classification."""

from .models import Capture, CaptureStatus, ContainerType, Priority
from .repository import CaptureRepository

__all__ = [
    "Capture",
    "CaptureRepository",
    "CaptureStatus",
    "ContainerType",
    "Priority",
]
