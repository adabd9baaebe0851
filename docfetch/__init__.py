"""Normalize files, git repositories and web sites into one content collection."""

__version__ = "0.1.0"

from .fetch import create_source, fetch_content
from .sources import ContentCollection, ContentItem, SourceConfig

__all__ = [
    "ContentCollection",
    "ContentItem",
    "SourceConfig",
    "create_source",
    "fetch_content",
]
