"""Pick the right source for a config and fetch it."""

import logging
from typing import Any

from .sources import (
    ContentCollection,
    FilesystemSource,
    GitSource,
    Source,
    SourceConfig,
    WebCrawlSource,
)

logger = logging.getLogger(__name__)

SOURCES: dict[str, type[Source]] = {
    "file": FilesystemSource,
    "git": GitSource,
    "url": WebCrawlSource,
}


def create_source(config: SourceConfig) -> Source:
    source_cls = SOURCES.get(config.type or "")
    if source_cls is None:
        raise ValueError(f"Unknown source type: {config.type!r}")
    return source_cls(config)


async def fetch_content(config: SourceConfig | dict[str, Any]) -> ContentCollection:
    """Fetch one source.

    Accepts either a SourceConfig or the plain mapping a DSL layer hands over.
    Failures inside the fetch are recorded on the collection stats rather than
    raised; only an unknown source type raises.
    """
    if isinstance(config, dict):
        config = SourceConfig.from_dict(config)

    source = create_source(config)
    collection = await source.fetch()

    stats = collection.metadata.stats
    if stats.errors:
        logger.warning(
            "Fetched %d of %d items from %s with %d errors",
            stats.processed_items, stats.total_items, config.location, stats.errors,
        )
    else:
        logger.info("Fetched %d items from %s", stats.processed_items, config.location)
    return collection
