"""
Adapters layer - Calendar data sources.
"""

from .file_store import FileCalendarStore

__all__ = ["FileCalendarStore"]
