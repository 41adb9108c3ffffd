"""Preference memory: learned keyword associations."""

from .keywords import detect_people, detect_projects, extract_keywords
from .manager import PreferenceMemory
from .models import MemoryKind, PreferenceEntry
from .repository import PreferenceRepository

__all__ = [
    "MemoryKind",
    "PreferenceEntry",
    "PreferenceMemory",
    "PreferenceRepository",
    "detect_people",
    "detect_projects",
    "extract_keywords",
]
