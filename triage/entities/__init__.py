"""Typed entities: calendar events, todo items and notes."""

from .models import CalendarEvent, Note, TodoItem, TypedEntity
from .repository import EntityRepository

__all__ = ["CalendarEvent", "EntityRepository", "Note", "TodoItem", "TypedEntity"]
