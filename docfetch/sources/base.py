"""Base source interface."""

import base64
import copy
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from .config import SourceConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def make_id(key: str) -> str:
    """Stable, reversible item id for a path or URL."""
    return base64.b64encode(key.encode("utf-8")).decode("ascii")


@dataclass
class ContentItem:
    id: str
    type: str
    content: str
    path: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectionStats:
    total_items: int
    processed_items: int
    errors: int


@dataclass
class CollectionMetadata:
    timestamp: float
    source: SourceConfig
    stats: CollectionStats


@dataclass
class ContentCollection:
    items: list[ContentItem]
    metadata: CollectionMetadata

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class FetchLedger:
    """Errors seen by one source instance, plus the collection builder.

    Sources hold one of these instead of inheriting shared mutable state.
    """

    def __init__(self, config: SourceConfig):
        self.config = config
        self._errors: list[Exception] = []

    def add(self, error: Exception) -> None:
        logger.warning("%s source %r: %s", self.config.type, self.config.location, error)
        self._errors.append(error)

    def extend(self, errors: list[Exception]) -> None:
        for error in errors:
            self.add(error)

    @property
    def errors(self) -> list[Exception]:
        return list(self._errors)

    def check_common(self) -> bool:
        if not self.config.location:
            self.add(ConfigurationError("Source location is required"))
            return False
        if not self.config.type:
            self.add(ConfigurationError("Source type is required"))
            return False
        return True

    async def passes(self, validate: Callable[[], Awaitable[bool]]) -> bool:
        """Run a validator; a validator that crashes counts as a failed check."""
        try:
            return await validate()
        except Exception as e:
            self.add(ConfigurationError(f"Invalid configuration: {e}"))
            return False

    def collection(self, items: list[ContentItem], total_items: int) -> ContentCollection:
        return ContentCollection(
            items=items,
            metadata=CollectionMetadata(
                timestamp=time.time(),
                source=copy.deepcopy(self.config),
                stats=CollectionStats(
                    total_items=total_items,
                    processed_items=len(items),
                    errors=len(self._errors),
                ),
            ),
        )


class Source(ABC):
    @abstractmethod
    async def fetch(self) -> ContentCollection:
        """Fetch everything this source points at. Never raises."""
        ...

    @abstractmethod
    async def validate(self) -> bool:
        """Check the config, recording an error for each problem found."""
        ...

    @abstractmethod
    def get_errors(self) -> list[Exception]:
        """Snapshot of every error recorded so far."""
        ...
