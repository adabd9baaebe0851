"""Source configuration - what to fetch and how."""

from dataclasses import dataclass, field, fields
from typing import Any, Literal, TypeVar

SourceType = Literal["file", "git", "url"]


@dataclass
class FileOptions:
    format: str | None = None
    encoding: str | None = None
    include: list[str] | None = None
    exclude: list[str] | None = None


@dataclass
class GitOptions:
    branch: str | None = None
    depth: int | Literal["full"] | None = None
    include: list[str] | None = None
    exclude: list[str] | None = None
    submodules: bool = False
    history: bool = False


@dataclass
class UrlOptions:
    depth: int = 0
    filter: list[str] | None = None
    limit: int | None = None
    timeout: int | None = None  # milliseconds
    respect_robots_txt: bool = False
    concurrency: int | None = None


SourceOptions = FileOptions | GitOptions | UrlOptions

OPTIONS_BY_TYPE: dict[str, type] = {
    "file": FileOptions,
    "git": GitOptions,
    "url": UrlOptions,
}

# Spellings a DSL layer may hand us for snake_case fields
_ALIASES = {"respectRobotsTxt": "respect_robots_txt"}

T = TypeVar("T", FileOptions, GitOptions, UrlOptions)


def coerce_options(options: Any, cls: type[T]) -> T:
    """Return `options` as a `cls` instance.

    The wrong variant, a plain mapping or None are all accepted: fields that
    `cls` declares are copied over when present, anything else is dropped and
    missing fields fall back to their defaults.
    """
    if isinstance(options, cls):
        return options
    if options is None:
        return cls()

    known = {f.name for f in fields(cls)}
    if isinstance(options, dict):
        values = {_ALIASES.get(k, k): v for k, v in options.items()}
    else:
        values = {name: getattr(options, name, None) for name in known}

    kwargs = {k: v for k, v in values.items() if k in known and v is not None}
    return cls(**kwargs)


@dataclass
class SourceConfig:
    type: SourceType | None
    location: str
    options: SourceOptions | None = field(default=None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceConfig":
        source_type = data.get("type")
        options = data.get("options")
        option_cls = OPTIONS_BY_TYPE.get(source_type or "")
        if option_cls is not None:
            options = coerce_options(options, option_cls)
        return cls(type=source_type, location=data.get("location") or "", options=options)
