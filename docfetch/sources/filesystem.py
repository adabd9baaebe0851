"""Filesystem source - reads matching files under a local directory."""

import asyncio
import base64
import logging
from datetime import datetime
from fnmatch import fnmatch
from pathlib import Path

import aiofiles

from .base import ContentCollection, ContentItem, FetchLedger, Source, make_id
from .config import FileOptions, SourceConfig, coerce_options
from .errors import ConfigurationError, DiscoveryError, ItemError, SourceError

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = ["**/*"]

# Encoding names accepted in configs, mapped to Python codecs.
# "base64" is not a text codec: the raw bytes come back base64-encoded.
SUPPORTED_ENCODINGS = {
    "utf-8": "utf-8",
    "utf8": "utf-8",
    "ascii": "ascii",
    "utf16le": "utf-16-le",
    "ucs2": "utf-16-le",
    "latin1": "latin-1",
    "base64": "base64",
}

TYPE_MAP = {
    ".txt": "text",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml", ".yml": "yaml",
    ".xml": "xml",
    ".html": "html", ".htm": "html",
    ".css": "css",
    ".js": "javascript",
    ".ts": "typescript",
    ".jsx": "jsx",
    ".tsx": "tsx",
    ".csv": "csv",
}


def file_type(path: str | Path) -> str:
    return TYPE_MAP.get(Path(path).suffix.lower(), "unknown")


class FilesystemSource(Source):
    def __init__(self, config: SourceConfig):
        self.config = config
        self.options = coerce_options(config.options, FileOptions)
        self.path = Path(config.location).resolve() if config.location else None
        self._ledger = FetchLedger(config)

    @property
    def encoding(self) -> str:
        return self.options.encoding or "utf-8"

    def get_errors(self) -> list[Exception]:
        return self._ledger.errors

    async def fetch(self) -> ContentCollection:
        if not await self._ledger.passes(self.validate):
            return self._ledger.collection([], 0)

        try:
            files = self._find_files()
            items = await self._read_files(files)
        except SourceError as e:
            self._ledger.add(e)
            return self._ledger.collection([], 0)
        except Exception as e:
            self._ledger.add(DiscoveryError(f"Failed to scan {self.path}: {e}"))
            return self._ledger.collection([], 0)

        logger.info("Read %d of %d files under %s", len(items), len(files), self.path)
        return self._ledger.collection(items, len(files))

    async def validate(self) -> bool:
        if not self._ledger.check_common():
            return False

        if not Path(self.config.location).exists():
            self._ledger.add(DiscoveryError(f"Source path does not exist: {self.config.location}"))
            return False

        encoding = self.options.encoding
        if encoding and (not isinstance(encoding, str) or encoding.lower() not in SUPPORTED_ENCODINGS):
            self._ledger.add(ConfigurationError(f"Unsupported encoding: {encoding}"))
            return False

        return True

    def _find_files(self) -> list[Path]:
        # Sorted so repeated fetches of an unchanged tree come back in the same order
        candidates = sorted(
            item for item in self.path.rglob("*")
            if item.is_file() and not self._should_ignore(item)
        )

        files = []
        seen = set()
        for pattern in self.options.include or DEFAULT_INCLUDE:
            for item in candidates:
                if item in seen:
                    continue
                if not self._matches_patterns(item, [pattern]):
                    continue
                if self.options.exclude and self._matches_patterns(item, self.options.exclude):
                    continue
                seen.add(item)
                files.append(item)
        return files

    def _should_ignore(self, path: Path) -> bool:
        # Hidden files and directories (.git included) are never matched
        rel_path = path.relative_to(self.path)
        return any(part.startswith(".") for part in rel_path.parts)

    def _matches_patterns(self, path: Path, patterns: list[str]) -> bool:
        rel_path = path.relative_to(self.path).as_posix()
        for p in patterns:
            if fnmatch(rel_path, p) or fnmatch(path.name, p):
                return True
            # "**/" also matches zero directories
            if p.startswith("**/") and fnmatch(rel_path, p[3:]):
                return True
        return False

    async def _read_files(self, files: list[Path]) -> list[ContentItem]:
        semaphore = asyncio.Semaphore(100)

        async def read_file(file_path: Path) -> ContentItem | ItemError:
            async with semaphore:
                try:
                    return await self._read_file(file_path)
                except Exception as e:
                    return ItemError(f"Failed to read {file_path}: {e}")

        results = await asyncio.gather(*[read_file(f) for f in files])

        # Errors are recorded in discovery order, not completion order
        items = []
        for result in results:
            if isinstance(result, ItemError):
                self._ledger.add(result)
            else:
                items.append(result)
        return items

    async def _read_file(self, file_path: Path) -> ContentItem:
        stat = file_path.stat()
        encoding = self.encoding
        codec = SUPPORTED_ENCODINGS[encoding.lower()]

        if codec == "base64":
            async with aiofiles.open(file_path, "rb") as f:
                content = base64.b64encode(await f.read()).decode("ascii")
        else:
            async with aiofiles.open(file_path, "r", encoding=codec, errors="replace", newline="") as f:
                content = await f.read()

        rel_path = file_path.relative_to(self.path).as_posix()
        logger.debug("Read %s (%d bytes)", rel_path, stat.st_size)
        return ContentItem(
            id=make_id(rel_path),
            type=file_type(file_path),
            content=content,
            path=rel_path,
            metadata={
                "size": stat.st_size,
                "created": datetime.fromtimestamp(getattr(stat, "st_birthtime", stat.st_ctime)),
                "modified": datetime.fromtimestamp(stat.st_mtime),
                "format": self.options.format or "auto",
                "encoding": encoding,
            },
        )
