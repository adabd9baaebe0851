"""Git repository source - clones into a throwaway workspace."""

import asyncio
import logging
import os
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from .base import ContentCollection, ContentItem, FetchLedger, Source
from .blame import BlameEntry, parse_blame
from .config import FileOptions, GitOptions, SourceConfig, coerce_options
from .errors import CleanupError, ConfigurationError, DiscoveryError, GitCommandError, ItemError, SourceError
from .filesystem import FilesystemSource

logger = logging.getLogger(__name__)

HTTPS_PATTERN = re.compile(r"^https://\S+\.git$")
SSH_PATTERN = re.compile(r"^[\w.-]+@[^\s:/]+:\S+\.git$")
LOCAL_PATTERN = re.compile(r"^(/|\./|\.\./).+$")

# hash, ISO date, subject, author name, author email; NUL separated
LOG_FORMAT = "%H%x00%aI%x00%s%x00%an%x00%ae"


def is_valid_git_url(url: str) -> bool:
    return any(p.match(url) for p in (HTTPS_PATTERN, SSH_PATTERN, LOCAL_PATTERN))


@dataclass
class CommitInfo:
    hash: str
    date: str
    message: str
    author_name: str
    author_email: str


@dataclass
class GitMetadata:
    last_commit: CommitInfo | None = None
    blame: dict[str, BlameEntry] | None = None


def parse_commit(output: str) -> CommitInfo | None:
    fields = output.strip("\n").split("\x00")
    if len(fields) != 5:
        return None
    return CommitInfo(*fields)


async def run_git(*args: str, cwd: str | Path | None = None) -> str:
    """Run git and return stdout; raise GitCommandError on a non-zero exit."""
    binary = os.environ.get("DOCFETCH_GIT", "git")
    logger.debug("Running %s %s (cwd=%s)", binary, " ".join(args), cwd)
    process = await asyncio.create_subprocess_exec(
        binary, *args,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        # Never block on a credential prompt
        env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise GitCommandError(list(args), process.returncode, stderr.decode(errors="replace"))
    return stdout.decode("utf-8", errors="replace")


class GitSource(Source):
    def __init__(self, config: SourceConfig):
        self.config = config
        self.options = coerce_options(config.options, GitOptions)
        # Path of the most recent workspace; it is gone once fetch() returns
        self.workspace: Path | None = None
        self._ledger = FetchLedger(config)

    def get_errors(self) -> list[Exception]:
        return self._ledger.errors

    async def fetch(self) -> ContentCollection:
        if not await self._ledger.passes(self.validate):
            return self._ledger.collection([], 0)

        try:
            async with self._workspace() as workspace:
                await self._clone(workspace)

                file_source = FilesystemSource(SourceConfig(
                    type="file",
                    location=str(workspace),
                    options=FileOptions(include=self.options.include, exclude=self.options.exclude),
                ))
                result = await file_source.fetch()
                self._ledger.extend(file_source.get_errors())

                items = await self._annotate(workspace, result.items)
        except SourceError as e:
            self._ledger.add(e)
            return self._ledger.collection([], 0)
        except Exception as e:
            self._ledger.add(DiscoveryError(f"Failed to fetch repository {self.config.location}: {e}"))
            return self._ledger.collection([], 0)

        logger.info("Fetched %d files from %s", len(items), self.config.location)
        return self._ledger.collection(items, result.metadata.stats.total_items)

    async def validate(self) -> bool:
        if not self._ledger.check_common():
            return False

        if not is_valid_git_url(self.config.location):
            self._ledger.add(ConfigurationError("Invalid Git URL provided"))
            return False

        return True

    async def _git(self, *args: str, cwd: str | Path | None = None) -> str:
        return await run_git(*args, cwd=cwd)

    @asynccontextmanager
    async def _workspace(self):
        workspace = Path(tempfile.mkdtemp(prefix="docfetch-repo-", dir=os.environ.get("DOCFETCH_TMPDIR")))
        self.workspace = workspace
        try:
            yield workspace
        finally:
            self._cleanup(workspace)

    def _cleanup(self, workspace: Path) -> None:
        try:
            shutil.rmtree(workspace)
        except Exception as e:
            self._ledger.add(CleanupError(f"Failed to remove workspace {workspace}: {e}"))

    def _clone_args(self, workspace: Path) -> list[str]:
        args = ["clone", "--no-checkout"]

        depth = self.options.depth
        # "full", None and 0 all mean the whole history
        if isinstance(depth, int) and not isinstance(depth, bool) and depth > 0:
            args += ["--depth", str(depth)]

        if self.options.branch:
            args += ["--branch", self.options.branch]

        if not self.options.submodules:
            args.append("--no-recurse-submodules")

        args += [self.config.location, str(workspace)]
        return args

    async def _clone(self, workspace: Path) -> None:
        await self._git(*self._clone_args(workspace))

        if self.options.branch:
            await self._git("checkout", self.options.branch, cwd=workspace)

        # The clone has no index yet, so populate it and the tree from HEAD.
        # This runs before submodule init, which needs .gitmodules on disk.
        await self._git("checkout", "HEAD", "--", ".", cwd=workspace)

        if self.options.submodules:
            await self._git("submodule", "init", cwd=workspace)
            await self._git("submodule", "update", cwd=workspace)

    async def _annotate(self, workspace: Path, items: list[ContentItem]) -> list[ContentItem]:
        semaphore = asyncio.Semaphore(16)

        async def annotate(item: ContentItem) -> ContentItem:
            async with semaphore:
                return await self._add_git_metadata(workspace, item)

        return list(await asyncio.gather(*[annotate(item) for item in items]))

    async def _add_git_metadata(self, workspace: Path, item: ContentItem) -> ContentItem:
        lookups = [self._git("log", "-1", f"--format={LOG_FORMAT}", "--", item.path, cwd=workspace)]
        if self.options.history:
            lookups.append(self._git("blame", "--porcelain", "--", item.path, cwd=workspace))

        # Wait for every lookup so none outlives the workspace
        outputs = await asyncio.gather(*lookups, return_exceptions=True)
        failure = next((o for o in outputs if isinstance(o, BaseException)), None)
        if failure is not None:
            self._ledger.add(ItemError(f"Failed to read git metadata for {item.path}: {failure}"))
            git_metadata = GitMetadata()
        else:
            git_metadata = GitMetadata(
                last_commit=parse_commit(outputs[0]),
                blame=parse_blame(outputs[1]) if self.options.history else None,
            )

        return replace(item, metadata={**item.metadata, "git": git_metadata})
