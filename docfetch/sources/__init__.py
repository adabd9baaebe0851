from .base import CollectionMetadata, CollectionStats, ContentCollection, ContentItem, Source
from .blame import BlameEntry, BlameParser, parse_blame
from .config import FileOptions, GitOptions, SourceConfig, UrlOptions
from .errors import (
    CleanupError,
    ConfigurationError,
    DiscoveryError,
    GitCommandError,
    ItemError,
    SourceError,
)
from .filesystem import FilesystemSource
from .git import CommitInfo, GitMetadata, GitSource
from .web import WebCrawlSource

__all__ = [
    "BlameEntry",
    "BlameParser",
    "CleanupError",
    "CollectionMetadata",
    "CollectionStats",
    "CommitInfo",
    "ConfigurationError",
    "ContentCollection",
    "ContentItem",
    "DiscoveryError",
    "FileOptions",
    "FilesystemSource",
    "GitCommandError",
    "GitMetadata",
    "GitOptions",
    "GitSource",
    "ItemError",
    "Source",
    "SourceConfig",
    "SourceError",
    "UrlOptions",
    "WebCrawlSource",
    "parse_blame",
]
