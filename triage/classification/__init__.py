"""Classification of capture text into containers."""

from .engine import ClassificationEngine, parse_classification
from .models import Classification

__all__ = ["Classification", "ClassificationEngine", "parse_classification"]
