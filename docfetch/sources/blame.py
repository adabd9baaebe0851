"""Parser for `git blame --porcelain` output.

Porcelain output repeats a commit's full header block only the first time the
commit shows up in a file. Later lines from the same commit get a bare hash
line with no headers. The parser therefore keeps one pending block and only
records it when the next hash line (or the end of input) arrives, and only if
every field is present. Bare continuation blocks are dropped, so they can
neither overwrite nor duplicate an entry.
"""

import re
from dataclasses import dataclass

HASH_LINE = re.compile(r"^[0-9a-f]{40}")


@dataclass
class BlameEntry:
    author: str
    email: str
    timestamp: int
    summary: str


@dataclass
class _PendingCommit:
    hash: str
    author: str | None = None
    email: str | None = None
    timestamp: int | None = None
    summary: str | None = None

    def is_complete(self) -> bool:
        return bool(self.hash and self.author and self.email and self.timestamp and self.summary)


class BlameParser:
    def __init__(self):
        self.entries: dict[str, BlameEntry] = {}
        self._pending: _PendingCommit | None = None

    def feed(self, line: str) -> None:
        if HASH_LINE.match(line):
            self._flush()
            self._pending = _PendingCommit(hash=line[:40])
            return

        pending = self._pending
        if pending is None:
            return

        if line.startswith("author "):
            pending.author = line[len("author "):]
        elif line.startswith("author-mail "):
            pending.email = line[len("author-mail "):].strip("<>")
        elif line.startswith("author-time "):
            try:
                pending.timestamp = int(line[len("author-time "):])
            except ValueError:
                pending.timestamp = None
        elif line.startswith("summary "):
            pending.summary = line[len("summary "):]

    def finish(self) -> dict[str, BlameEntry]:
        self._flush()
        return self.entries

    def _flush(self) -> None:
        pending = self._pending
        self._pending = None
        if pending is not None and pending.is_complete():
            self.entries[pending.hash] = BlameEntry(
                author=pending.author,
                email=pending.email,
                timestamp=pending.timestamp,
                summary=pending.summary,
            )


def parse_blame(output: str) -> dict[str, BlameEntry]:
    parser = BlameParser()
    for line in output.splitlines():
        parser.feed(line)
    return parser.finish()
