"""Errors recorded by sources.

Sources never raise these out of `fetch()`. They are collected on the source
instance and counted in the collection stats so callers can decide whether a
partial result is good enough.
"""


class SourceError(RuntimeError):
    """Base error for everything a source records."""


class ConfigurationError(SourceError):
    """The source config is unusable; raised before any I/O."""


class DiscoveryError(SourceError):
    """The source as a whole could not be enumerated (missing root, failed clone)."""


class GitCommandError(DiscoveryError):
    """A git subprocess exited non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str):
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


class ItemError(SourceError):
    """One item (file, metadata lookup, page) failed; the run goes on without it."""


class CleanupError(SourceError):
    """A temporary resource could not be released."""
