"""Conversion of captures into typed entities."""

from .associations import AssociationBuilder
from .service import ConversionEngine

__all__ = ["AssociationBuilder", "ConversionEngine"]
